from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable

import yaml
from sqlalchemy import and_, event, false, func, or_
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..clients.parse import as_app_id, as_title_id
from ..config import CATALOG
from ..errors import CatalogQueryFailed, ValidationError
from ..providers import resolve_platform_id
from ..schema import BatchFilters, CatalogGame, CatalogListing, ExternalIdentifier, PlatformId
from .db import build_engine, create_all, make_session_factory, session_scope
from .models import Emulator, Game, GameExternalId, Listing, System


def _as_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _canonical_external_id(platform: PlatformId, value: Any) -> str:
    canonical = as_app_id(value) if platform is PlatformId.STEAM else as_title_id(value)
    if canonical is None:
        raise ValidationError(f"Invalid {platform.value} id in catalog record: {value!r}")
    return canonical


def _external_id_records(raw: Any) -> list[tuple[PlatformId, str]]:
    """`{platform: id | [ids]}` from a seed record, canonicalized."""
    if not raw:
        return []
    if not isinstance(raw, dict):
        raise ValidationError("external_ids must be a mapping of platform -> id(s)")
    out: list[tuple[PlatformId, str]] = []
    for platform, values in raw.items():
        pid = resolve_platform_id(platform)
        for value in values if isinstance(values, list) else [values]:
            out.append((pid, _canonical_external_id(pid, value)))
    return out


class CatalogStore:
    """
    Read side of the game catalog used by batch resolution, plus seeding helpers.

    `match_many` answers a whole batch with one SQL statement; `stats["sql_statements"]`
    counts every statement the engine executes so callers can verify that bound.
    """

    def __init__(self, engine: Engine, *, approved_status: str = CATALOG.approved_status):
        self.engine = engine
        self.approved_status = approved_status
        self._session_factory = make_session_factory(engine)
        self.stats: dict[str, int] = {
            "match_many_calls": 0,
            "sql_statements": 0,
        }
        event.listen(engine, "before_cursor_execute", self._count_statement)

    @classmethod
    def from_url(cls, database_url: str = CATALOG.database_url, *, create: bool = True) -> CatalogStore:
        engine = build_engine(database_url)
        if create:
            create_all(engine)
        return cls(engine)

    def _count_statement(self, conn, cursor, statement, parameters, context, executemany) -> None:
        self.stats["sql_statements"] += 1

    # ----------------------------
    # Batch lookup
    # ----------------------------

    def match_many(
        self,
        normalized_terms: Iterable[str],
        filters: BatchFilters,
        *,
        external_ids: Iterable[ExternalIdentifier] = (),
    ) -> list[CatalogGame]:
        """
        Approved games whose normalized title is one of `normalized_terms`, or that store one
        of `external_ids`, each with at most `filters.max_listings_per_game` approved
        listings, newest first. Matched external ids are reported on `CatalogGame.external_ids`.

        The emulator filter narrows listings (case-insensitive name), not games. NSFW games are
        excluded unless `filters.show_nsfw`. Always exactly one SQL statement.
        """
        terms = sorted({t for t in normalized_terms if t})
        wanted: dict[PlatformId, set[str]] = defaultdict(set)
        for ext in external_ids:
            wanted[resolve_platform_id(ext.platform_id)].add(str(ext.raw_id))
        self.stats["match_many_calls"] += 1
        try:
            with session_scope(self._session_factory) as db:
                rows = self._match_query(db, terms, wanted, filters).all()
        except SQLAlchemyError as e:
            logging.error(f"[CATALOG] Batch query failed: {type(e).__name__}: {e}")
            raise CatalogQueryFailed(f"Catalog query failed: {type(e).__name__}") from e

        games: dict[str, dict[str, Any]] = {}
        for row in rows:
            entry = games.get(row.id)
            if entry is None:
                entry = {
                    "id": row.id,
                    "title": row.title,
                    "system_id": row.system_id,
                    "approval_status": row.status,
                    "is_nsfw": bool(row.is_erotic),
                    "image_url": row.image_url,
                    "listings": {},
                    "external_ids": {},
                }
                games[row.id] = entry
            # One row per (listing, matched external id) pair.
            if row.listing_id is not None and row.listing_id not in entry["listings"]:
                entry["listings"][row.listing_id] = CatalogListing(
                    id=row.listing_id,
                    emulator=row.emulator,
                    created_at=row.listing_created_at,
                    device=row.device,
                    notes=row.notes,
                )
            if row.ext_id is not None:
                entry["external_ids"].setdefault(
                    (row.ext_platform_id, row.ext_id),
                    ExternalIdentifier(platform_id=PlatformId(row.ext_platform_id), raw_id=row.ext_id),
                )
        logging.debug(
            f"[CATALOG] {len(terms)} terms, {sum(len(v) for v in wanted.values())} ids "
            f"-> {len(games)} games"
        )
        return [
            CatalogGame(
                **{
                    **g,
                    "listings": tuple(g["listings"].values()),
                    "external_ids": tuple(g["external_ids"].values()),
                }
            )
            for g in games.values()
        ]

    def _match_query(
        self, db: Session, terms: list[str], wanted: dict[PlatformId, set[str]], filters: BatchFilters
    ):
        ext_condition = or_(
            false(),
            *[
                and_(GameExternalId.platform_id == pid.value, GameExternalId.external_id.in_(sorted(ids)))
                for pid, ids in sorted(wanted.items(), key=lambda kv: kv[0].value)
            ],
        )
        matched_ext = (
            db.query(
                GameExternalId.game_id.label("game_id"),
                GameExternalId.platform_id.label("ext_platform_id"),
                GameExternalId.external_id.label("ext_id"),
            )
            .filter(ext_condition)
            .subquery()
        )
        ext_game_ids = db.query(GameExternalId.game_id).filter(ext_condition).scalar_subquery()
        game_matches = or_(Game.normalized_title.in_(terms), Game.id.in_(ext_game_ids))
        matched_ids = db.query(Game.id).filter(game_matches)

        ranked = (
            db.query(
                Listing.id.label("listing_id"),
                Listing.game_id.label("game_id"),
                Listing.device.label("device"),
                Listing.notes.label("notes"),
                Listing.created_at.label("listing_created_at"),
                Emulator.name.label("emulator"),
                func.row_number()
                .over(
                    partition_by=Listing.game_id,
                    order_by=(Listing.created_at.desc(), Listing.id.desc()),
                )
                .label("rn"),
            )
            .outerjoin(Emulator, Listing.emulator_id == Emulator.id)
            .filter(Listing.status == self.approved_status)
            .filter(Listing.game_id.in_(matched_ids.scalar_subquery()))
        )
        emulator = (filters.emulator_name or "").strip()
        if emulator:
            ranked = ranked.filter(func.lower(Emulator.name) == emulator.lower())
        ranked = ranked.subquery()

        q = (
            db.query(
                Game.id,
                Game.title,
                Game.system_id,
                Game.status,
                Game.is_erotic,
                Game.image_url,
                ranked.c.listing_id,
                ranked.c.emulator,
                ranked.c.device,
                ranked.c.notes,
                ranked.c.listing_created_at,
                matched_ext.c.ext_platform_id,
                matched_ext.c.ext_id,
            )
            .outerjoin(
                ranked,
                and_(ranked.c.game_id == Game.id, ranked.c.rn <= int(filters.max_listings_per_game)),
            )
            .outerjoin(matched_ext, matched_ext.c.game_id == Game.id)
            .filter(game_matches)
            .filter(Game.status == self.approved_status)
        )
        if not filters.show_nsfw:
            q = q.filter(Game.is_erotic.is_(False))
        return q.order_by(Game.id, ranked.c.rn, matched_ext.c.ext_id)

    # ----------------------------
    # Seeding
    # ----------------------------

    def add_games(self, records: Iterable[dict[str, Any]]) -> list[str]:
        """
        Insert games (and their systems, emulators and listings) from plain dicts.

        Record keys: title, system (default "pc"), status (default approved), is_nsfw,
        image_url, external_ids {platform: id | [ids]},
        listings[{emulator, device, notes, status, created_at}].
        """
        ids: list[str] = []
        with session_scope(self._session_factory) as db:
            systems: dict[str, System] = {}
            emulators: dict[str, Emulator] = {}
            for record in records:
                system = self._get_system(db, systems, str(record.get("system") or "pc"))
                game = Game(
                    title=str(record["title"]),
                    system=system,
                    status=str(record.get("status") or self.approved_status),
                    is_erotic=bool(record.get("is_nsfw", False)),
                    image_url=record.get("image_url"),
                )
                if record.get("id"):
                    game.id = str(record["id"])
                for platform, external_id in _external_id_records(record.get("external_ids")):
                    game.external_ids.append(
                        GameExternalId(platform_id=platform.value, external_id=external_id)
                    )
                for item in record.get("listings") or []:
                    emulator_name = str(item.get("emulator") or "").strip()
                    game.listings.append(
                        Listing(
                            emulator=self._get_emulator(db, emulators, emulator_name)
                            if emulator_name
                            else None,
                            device=item.get("device"),
                            notes=item.get("notes"),
                            status=str(item.get("status") or self.approved_status),
                            created_at=_as_datetime(item.get("created_at")) or datetime.utcnow(),
                        )
                    )
                db.add(game)
                db.flush()
                ids.append(game.id)
        logging.info(f"[CATALOG] Added {len(ids)} games")
        return ids

    def add_game(self, title: str, **record: Any) -> str:
        return self.add_games([{"title": title, **record}])[0]

    def load_fixture(self, path: str | Path) -> list[str]:
        """Seed from a YAML file with a top-level `games:` list (see `add_games`)."""
        p = Path(path)
        with open(p, encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        games = raw.get("games") if isinstance(raw, dict) else None
        if not isinstance(games, list):
            raise ValueError(f"Catalog fixture must contain a `games` list: {p}")
        return self.add_games(games)

    @staticmethod
    def _get_system(db: Session, seen: dict[str, System], system_id: str) -> System:
        system = seen.get(system_id) or db.get(System, system_id)
        if system is None:
            system = System(id=system_id, name=system_id.upper())
            db.add(system)
        seen[system_id] = system
        return system

    @staticmethod
    def _get_emulator(db: Session, seen: dict[str, Emulator], name: str) -> Emulator:
        key = name.lower()
        emulator = seen.get(key)
        if emulator is None:
            emulator = (
                db.query(Emulator).filter(func.lower(Emulator.name) == key).one_or_none()
            )
        if emulator is None:
            emulator = Emulator(name=name)
            db.add(emulator)
            db.flush()
        seen[key] = emulator
        return emulator

    def format_cache_stats(self) -> str:
        s = self.stats
        return f"catalog match_many={s['match_many_calls']} sql={s['sql_statements']}"
