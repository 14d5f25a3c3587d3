"""Title ID Resolver - match Steam / Switch / 3DS title ids and game names to a game catalog."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("title-id-resolver")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.1.0"
