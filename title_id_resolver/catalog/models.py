import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship, validates

from ..utils.matching import normalize_title
from .db import Base


def generate_id() -> str:
    return str(uuid.uuid4())


class System(Base):
    __tablename__ = "systems"

    id = Column(String(40), primary_key=True)
    name = Column(String(120), nullable=False)

    games = relationship("Game", back_populates="system", cascade="all, delete")


class Emulator(Base):
    __tablename__ = "emulators"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(120), unique=True, nullable=False)

    listings = relationship("Listing", back_populates="emulator")


class Game(Base):
    __tablename__ = "games"

    id = Column(String(36), primary_key=True, default=generate_id)
    title = Column(String(255), nullable=False)
    # Matching key; maintained from `title`, never edited directly.
    normalized_title = Column(String(255), index=True, nullable=False)
    system_id = Column(String(40), ForeignKey("systems.id"), nullable=False)
    status = Column(String(20), default="PENDING", nullable=False)
    is_erotic = Column(Boolean, default=False, nullable=False)
    image_url = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    system = relationship("System", back_populates="games")
    listings = relationship("Listing", back_populates="game", cascade="all, delete")
    external_ids = relationship("GameExternalId", back_populates="game", cascade="all, delete")

    @validates("title")
    def _sync_normalized_title(self, key, value):
        self.normalized_title = normalize_title(value).cleaned
        return value


class Listing(Base):
    __tablename__ = "listings"

    id = Column(String(36), primary_key=True, default=generate_id)
    game_id = Column(String(36), ForeignKey("games.id"), index=True, nullable=False)
    emulator_id = Column(String(36), ForeignKey("emulators.id"), nullable=True)
    device = Column(String(120), nullable=True)
    notes = Column(Text, nullable=True)
    status = Column(String(20), default="PENDING", nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    game = relationship("Game", back_populates="listings")
    emulator = relationship("Emulator", back_populates="listings")


class GameExternalId(Base):
    """A platform identifier (Steam App ID, Nintendo title ID) known to belong to a game."""

    __tablename__ = "game_external_ids"
    __table_args__ = (UniqueConstraint("platform_id", "external_id", name="uq_game_external_id"),)

    id = Column(String(36), primary_key=True, default=generate_id)
    game_id = Column(String(36), ForeignKey("games.id"), index=True, nullable=False)
    platform_id = Column(String(20), nullable=False)
    external_id = Column(String(40), nullable=False)

    game = relationship("Game", back_populates="external_ids")
