"""
vaultless - Install Seeds

Two random identifiers created once per installation and mixed into every
derivation. They are the only long-lived state vaultless keeps.

Database structure:
- install_seeds: exactly one row (install_seed, user_seed, created_at)
"""

import logging
import os
import sqlite3
import time
import uuid
from dataclasses import dataclass
from typing import Optional

from . import config
from .errors import MissingInstallSeeds

logger = logging.getLogger(__name__)


SCHEMA = """
CREATE TABLE IF NOT EXISTS install_seeds (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    install_seed TEXT NOT NULL,
    user_seed TEXT NOT NULL,
    created_at INTEGER NOT NULL
);
"""

PRAGMAS = """
PRAGMA journal_mode=WAL;
PRAGMA synchronous=FULL;
PRAGMA secure_delete=ON;
"""


@dataclass(frozen=True)
class InstallSeeds:
    install_seed: str
    user_seed: str

    @classmethod
    def generate(cls) -> "InstallSeeds":
        return cls(str(uuid.uuid4()), str(uuid.uuid4()))

    @classmethod
    def empty(cls) -> "InstallSeeds":
        return cls("", "")

    @property
    def is_complete(self) -> bool:
        return bool(self.install_seed) and bool(self.user_seed)


def resolve_seeds(seeds: Optional[InstallSeeds], strict: bool = config.STRICT_SEEDS) -> InstallSeeds:
    """
    Decide what to derive with when seeds are missing.

    strict: refuse (MissingInstallSeeds).
    relaxed: derive with empty strings. Output is still salted by the
    master secret and domain, only the per-install hardening is lost.
    """
    if seeds is not None and seeds.is_complete:
        return seeds
    if strict:
        raise MissingInstallSeeds("Install seeds are missing; initialize or recover them first")
    logger.warning("Install seeds missing; deriving without per-install hardening")
    if seeds is None:
        return InstallSeeds.empty()
    return InstallSeeds(seeds.install_seed or "", seeds.user_seed or "")


class SeedStore:
    """
    SQLite-backed home of the install seeds.

    Usage:
        store = SeedStore("~/.vaultless/seeds.db")
        seeds = store.initialize()     # first run writes, later runs read
        seeds = store.load()
    """

    def __init__(self, db_path: str = config.DEFAULT_SEED_DB):
        self.db_path = os.path.expanduser(db_path)

    def initialize(self) -> InstallSeeds:
        """Create the seeds if (and only if) none exist yet."""
        existing = self.load()
        if existing is not None:
            return existing
        seeds = InstallSeeds.generate()
        self._write(seeds)
        logger.info("Installation seeds generated and stored")
        return seeds

    def load(self) -> Optional[InstallSeeds]:
        if not os.path.exists(self.db_path):
            return None
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT install_seed, user_seed FROM install_seeds WHERE id = 1"
            ).fetchone()
        finally:
            conn.close()
        if not row:
            return None
        return InstallSeeds(row["install_seed"], row["user_seed"])

    def created_at(self) -> Optional[int]:
        """Epoch seconds the seeds were first written here, or None."""
        if not os.path.exists(self.db_path):
            return None
        conn = self._connect()
        try:
            row = conn.execute("SELECT created_at FROM install_seeds WHERE id = 1").fetchone()
        finally:
            conn.close()
        return row["created_at"] if row else None

    def restore(self, seeds: InstallSeeds) -> None:
        """
        Put recovered seeds into this store.

        Raises:
            ValueError: a different pair is already installed
        """
        existing = self.load()
        if existing == seeds:
            return
        if existing is not None:
            raise ValueError("A different set of install seeds already exists here")
        self._write(seeds)
        logger.info("Installation seeds restored from recovery shares")

    def _write(self, seeds: InstallSeeds) -> None:
        d = os.path.dirname(self.db_path)
        if d:
            os.makedirs(d, exist_ok=True)
        conn = self._connect()
        try:
            conn.execute(
                """INSERT INTO install_seeds (id, install_seed, user_seed, created_at)
                   VALUES (1, ?, ?, ?)""",
                (seeds.install_seed, seeds.user_seed, int(time.time()))
            )
            conn.commit()
        finally:
            conn.close()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.executescript(PRAGMAS)
        conn.executescript(SCHEMA)
        return conn
