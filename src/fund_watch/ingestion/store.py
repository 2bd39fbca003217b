"""Storage backend: Protocol definition, SQLite implementation, factory."""

from __future__ import annotations

import json
import logging
from datetime import date, datetime, timezone
from pathlib import Path
from typing import ClassVar, Protocol, runtime_checkable

import aiosqlite

from fund_watch.core.config import StorageConfig
from fund_watch.core.exceptions import StorageError, StoreUnavailableError
from fund_watch.core.models import (
    GuildSetting,
    InstrumentKey,
    Observation,
    Performances,
    PriceStatistics,
    StorageBackend,
    Subscription,
)

logger = logging.getLogger(__name__)

_OBSERVATION_COLUMNS = (
    "id, instrument_key, price, price_date, fetched_at, "
    "performances_json, annual_cost_ratio"
)


@runtime_checkable
class StorageProtocol(Protocol):
    """Abstract storage interface for fund-watch data."""

    async def get_latest_observation(
        self, instrument_key: InstrumentKey
    ) -> Observation | None: ...
    async def get_previous_observation(
        self, instrument_key: InstrumentKey
    ) -> Observation | None: ...
    async def get_observation_history(
        self, instrument_key: InstrumentKey, limit: int = 50
    ) -> list[Observation]: ...
    async def upsert_observation(self, observation: Observation) -> None: ...
    async def get_statistics(self, instrument_key: InstrumentKey) -> PriceStatistics: ...
    async def add_subscription(
        self, instrument_key: InstrumentKey, guild_id: str, channel_id: str
    ) -> bool: ...
    async def remove_subscription(
        self, instrument_key: InstrumentKey, guild_id: str, channel_id: str
    ) -> bool: ...
    async def list_subscriptions(
        self, instrument_key: InstrumentKey | None = None
    ) -> list[Subscription]: ...
    async def is_subscribed(
        self, instrument_key: InstrumentKey, guild_id: str, channel_id: str
    ) -> bool: ...
    async def count_subscriptions(
        self, instrument_key: InstrumentKey | None = None
    ) -> int: ...
    async def get_ping_role(self, guild_id: str) -> str | None: ...
    async def set_ping_role(self, guild_id: str, role_id: str | None) -> None: ...
    async def initialize(self) -> None: ...
    async def close(self) -> None: ...
    async def health_check(self) -> bool: ...


class SqliteStore:
    """SQLite implementation of the storage protocol.

    Uses aiosqlite for async access, WAL mode for file databases, and a
    version-tracked migration system. Every write is committed before the
    method returns.

    Observation rows are unique per (instrument_key, price_date). SQLite
    treats NULLs as distinct under UNIQUE, so observations without a price
    date accumulate as separate rows. Every write, including an in-place
    overwrite, takes the next `seq`; "latest" means highest `seq`.
    """

    _MIGRATIONS: ClassVar[dict[int, tuple[str, list[str]]]] = {
        1: (
            "Initial schema",
            [
                """CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT DEFAULT (datetime('now'))
                )""",
                """CREATE TABLE IF NOT EXISTS subscriptions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    instrument_key TEXT NOT NULL,
                    guild_id TEXT NOT NULL,
                    channel_id TEXT NOT NULL,
                    subscribed_at TEXT NOT NULL,
                    UNIQUE(instrument_key, guild_id, channel_id)
                )""",
                """CREATE TABLE IF NOT EXISTS price_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    instrument_key TEXT NOT NULL,
                    price REAL NOT NULL,
                    price_date TEXT,
                    fetched_at TEXT NOT NULL,
                    performances_json TEXT,
                    annual_cost_ratio REAL,
                    UNIQUE(instrument_key, price_date)
                )""",
                "CREATE INDEX IF NOT EXISTS idx_subscriptions_instrument ON subscriptions(instrument_key)",
                "CREATE INDEX IF NOT EXISTS idx_subscriptions_guild ON subscriptions(guild_id)",
                "CREATE INDEX IF NOT EXISTS idx_price_history_instrument ON price_history(instrument_key, id)",
            ],
        ),
        2: (
            "Guild settings",
            [
                """CREATE TABLE IF NOT EXISTS guild_settings (
                    guild_id TEXT PRIMARY KEY,
                    ping_role_id TEXT
                )""",
            ],
        ),
        3: (
            "Write sequence for observations",
            [
                "ALTER TABLE price_history ADD COLUMN seq INTEGER",
                "UPDATE price_history SET seq = id",
                "CREATE INDEX IF NOT EXISTS idx_price_history_seq ON price_history(instrument_key, seq)",
            ],
        ),
    }

    def __init__(self, config: StorageConfig) -> None:
        self._path = config.sqlite_path
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open connection, enable WAL + FK, run migrations."""
        try:
            if self._path != ":memory:":
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            self._db = await aiosqlite.connect(self._path)
            self._db.row_factory = aiosqlite.Row
            if self._path != ":memory:":
                await self._db.execute("PRAGMA journal_mode=WAL")
            await self._db.execute("PRAGMA foreign_keys=ON")
            current = await self._get_schema_version()
            await self._apply_migrations(current)
            await self._db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to initialize SQLite store: {e}",
                context={"operation": "initialize", "path": self._path},
            ) from e

    async def close(self) -> None:
        """Flush pending writes and close. Safe to call more than once."""
        if self._db is not None:
            await self._db.commit()
            await self._db.close()
            self._db = None

    async def health_check(self) -> bool:
        if self._db is None:
            return False
        try:
            async with self._db.execute("SELECT 1") as cursor:
                row = await cursor.fetchone()
            return row is not None
        except Exception:
            return False

    def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            raise StoreUnavailableError(
                "Store is not initialized",
                context={"operation": "connect", "path": self._path},
            )
        return self._db

    # --- Schema Migration ---

    async def _get_schema_version(self) -> int:
        try:
            async with self._db.execute(
                "SELECT MAX(version) FROM schema_version"
            ) as cursor:
                row = await cursor.fetchone()
            return row[0] if row[0] is not None else 0
        except aiosqlite.OperationalError:
            return 0

    async def _apply_migrations(self, current_version: int) -> None:
        for version in sorted(self._MIGRATIONS.keys()):
            if version <= current_version:
                continue
            desc, statements = self._MIGRATIONS[version]
            logger.info("Applying migration %d: %s", version, desc)
            for sql in statements:
                await self._db.execute(sql)
            await self._db.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )

    # --- Observation Operations ---

    async def get_latest_observation(
        self, instrument_key: InstrumentKey
    ) -> Observation | None:
        """Most recently written observation, regardless of price date."""
        return await self._get_observation_at(instrument_key, offset=0)

    async def get_previous_observation(
        self, instrument_key: InstrumentKey
    ) -> Observation | None:
        """Second most recently written observation."""
        return await self._get_observation_at(instrument_key, offset=1)

    async def _get_observation_at(
        self, instrument_key: InstrumentKey, offset: int
    ) -> Observation | None:
        try:
            async with self._conn().execute(
                f"""SELECT {_OBSERVATION_COLUMNS} FROM price_history
                    WHERE instrument_key = ?
                    ORDER BY seq DESC LIMIT 1 OFFSET ?""",
                (str(instrument_key), offset),
            ) as cursor:
                row = await cursor.fetchone()
            return self._row_to_observation(row) if row is not None else None
        except Exception as e:
            if isinstance(e, StorageError):
                raise
            raise StorageError(
                f"Failed to get observation: {e}",
                context={"operation": "query", "table": "price_history"},
            ) from e

    async def get_observation_history(
        self, instrument_key: InstrumentKey, limit: int = 50
    ) -> list[Observation]:
        """Observations for one instrument, most recently written first."""
        try:
            async with self._conn().execute(
                f"""SELECT {_OBSERVATION_COLUMNS} FROM price_history
                    WHERE instrument_key = ?
                    ORDER BY seq DESC LIMIT ?""",
                (str(instrument_key), limit),
            ) as cursor:
                rows = await cursor.fetchall()
            return [self._row_to_observation(r) for r in rows]
        except Exception as e:
            if isinstance(e, StorageError):
                raise
            raise StorageError(
                f"Failed to get observation history: {e}",
                context={"operation": "query", "table": "price_history"},
            ) from e

    async def upsert_observation(self, observation: Observation) -> None:
        """Insert, or overwrite in place the row with the same price date.

        Either way the row takes the next write sequence, so an overwritten
        row becomes the latest observation.
        """
        try:
            db = self._conn()
            await db.execute(
                """INSERT INTO price_history
                   (instrument_key, price, price_date, fetched_at,
                    performances_json, annual_cost_ratio, seq)
                   VALUES (?, ?, ?, ?, ?, ?,
                           (SELECT COALESCE(MAX(seq), 0) + 1 FROM price_history))
                   ON CONFLICT(instrument_key, price_date) DO UPDATE SET
                       price = excluded.price,
                       fetched_at = excluded.fetched_at,
                       performances_json = excluded.performances_json,
                       annual_cost_ratio = excluded.annual_cost_ratio,
                       seq = excluded.seq""",
                (
                    str(observation.instrument_key),
                    observation.price,
                    observation.price_date.isoformat() if observation.price_date else None,
                    observation.fetched_at.isoformat(),
                    _encode_performances(observation.performances),
                    observation.annual_cost_ratio,
                ),
            )
            await db.commit()
        except Exception as e:
            if isinstance(e, StorageError):
                raise
            raise StorageError(
                f"Failed to save observation: {e}",
                context={
                    "operation": "upsert",
                    "table": "price_history",
                    "instrument_key": str(observation.instrument_key),
                },
            ) from e

    async def get_statistics(self, instrument_key: InstrumentKey) -> PriceStatistics:
        try:
            async with self._conn().execute(
                """SELECT COUNT(*) AS count, MIN(price) AS lowest,
                          MAX(price) AS highest, AVG(price) AS average
                   FROM price_history WHERE instrument_key = ?""",
                (str(instrument_key),),
            ) as cursor:
                row = await cursor.fetchone()
            if row["count"] == 0:
                return PriceStatistics(count=0)

            async with self._conn().execute(
                f"""SELECT {_OBSERVATION_COLUMNS} FROM price_history
                    WHERE instrument_key = ?
                    ORDER BY seq ASC LIMIT 1""",
                (str(instrument_key),),
            ) as cursor:
                earliest_row = await cursor.fetchone()

            return PriceStatistics(
                count=row["count"],
                lowest=row["lowest"],
                highest=row["highest"],
                average=row["average"],
                latest=await self.get_latest_observation(instrument_key),
                earliest=self._row_to_observation(earliest_row),
            )
        except Exception as e:
            if isinstance(e, StorageError):
                raise
            raise StorageError(
                f"Failed to compute statistics: {e}",
                context={"operation": "query", "table": "price_history"},
            ) from e

    # --- Subscription Operations ---

    async def add_subscription(
        self, instrument_key: InstrumentKey, guild_id: str, channel_id: str
    ) -> bool:
        """Subscribe a channel. Returns False if it was already subscribed."""
        try:
            db = self._conn()
            async with db.execute(
                """INSERT INTO subscriptions
                   (instrument_key, guild_id, channel_id, subscribed_at)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT(instrument_key, guild_id, channel_id) DO NOTHING""",
                (
                    str(instrument_key),
                    guild_id,
                    channel_id,
                    datetime.now(timezone.utc).isoformat(),
                ),
            ) as cursor:
                inserted = cursor.rowcount > 0
            await db.commit()
            return inserted
        except Exception as e:
            if isinstance(e, StorageError):
                raise
            raise StorageError(
                f"Failed to add subscription: {e}",
                context={"operation": "insert", "table": "subscriptions"},
            ) from e

    async def remove_subscription(
        self, instrument_key: InstrumentKey, guild_id: str, channel_id: str
    ) -> bool:
        """Unsubscribe a channel. Returns False if there was nothing to remove."""
        try:
            db = self._conn()
            async with db.execute(
                """DELETE FROM subscriptions
                   WHERE instrument_key = ? AND guild_id = ? AND channel_id = ?""",
                (str(instrument_key), guild_id, channel_id),
            ) as cursor:
                removed = cursor.rowcount > 0
            await db.commit()
            return removed
        except Exception as e:
            if isinstance(e, StorageError):
                raise
            raise StorageError(
                f"Failed to remove subscription: {e}",
                context={"operation": "delete", "table": "subscriptions"},
            ) from e

    async def list_subscriptions(
        self, instrument_key: InstrumentKey | None = None
    ) -> list[Subscription]:
        try:
            query = "SELECT * FROM subscriptions WHERE 1=1"
            params: list = []
            if instrument_key is not None:
                query += " AND instrument_key = ?"
                params.append(str(instrument_key))
            query += " ORDER BY id ASC"
            async with self._conn().execute(query, params) as cursor:
                rows = await cursor.fetchall()
            return [self._row_to_subscription(r) for r in rows]
        except Exception as e:
            if isinstance(e, StorageError):
                raise
            raise StorageError(
                f"Failed to list subscriptions: {e}",
                context={"operation": "query", "table": "subscriptions"},
            ) from e

    async def is_subscribed(
        self, instrument_key: InstrumentKey, guild_id: str, channel_id: str
    ) -> bool:
        try:
            async with self._conn().execute(
                """SELECT 1 FROM subscriptions
                   WHERE instrument_key = ? AND guild_id = ? AND channel_id = ?""",
                (str(instrument_key), guild_id, channel_id),
            ) as cursor:
                row = await cursor.fetchone()
            return row is not None
        except Exception as e:
            if isinstance(e, StorageError):
                raise
            raise StorageError(
                f"Failed to check subscription: {e}",
                context={"operation": "query", "table": "subscriptions"},
            ) from e

    async def count_subscriptions(
        self, instrument_key: InstrumentKey | None = None
    ) -> int:
        try:
            query = "SELECT COUNT(*) FROM subscriptions"
            params: list = []
            if instrument_key is not None:
                query += " WHERE instrument_key = ?"
                params.append(str(instrument_key))
            async with self._conn().execute(query, params) as cursor:
                row = await cursor.fetchone()
            return row[0]
        except Exception as e:
            if isinstance(e, StorageError):
                raise
            raise StorageError(
                f"Failed to count subscriptions: {e}",
                context={"operation": "query", "table": "subscriptions"},
            ) from e

    # --- Guild Settings ---

    async def get_guild_setting(self, guild_id: str) -> GuildSetting | None:
        try:
            async with self._conn().execute(
                "SELECT guild_id, ping_role_id FROM guild_settings WHERE guild_id = ?",
                (guild_id,),
            ) as cursor:
                row = await cursor.fetchone()
            if row is None:
                return None
            return GuildSetting(guild_id=row["guild_id"], ping_role_id=row["ping_role_id"])
        except Exception as e:
            if isinstance(e, StorageError):
                raise
            raise StorageError(
                f"Failed to get guild setting: {e}",
                context={"operation": "query", "table": "guild_settings"},
            ) from e

    async def get_ping_role(self, guild_id: str) -> str | None:
        """Role to mention in this guild's updates, or None if not configured."""
        setting = await self.get_guild_setting(guild_id)
        return setting.ping_role_id if setting is not None else None

    async def set_ping_role(self, guild_id: str, role_id: str | None) -> None:
        """Set the guild's ping role. None removes the setting."""
        try:
            db = self._conn()
            if role_id is None:
                await db.execute(
                    "DELETE FROM guild_settings WHERE guild_id = ?", (guild_id,)
                )
            else:
                await db.execute(
                    """INSERT INTO guild_settings (guild_id, ping_role_id)
                       VALUES (?, ?)
                       ON CONFLICT(guild_id) DO UPDATE SET
                           ping_role_id = excluded.ping_role_id""",
                    (guild_id, role_id),
                )
            await db.commit()
        except Exception as e:
            if isinstance(e, StorageError):
                raise
            raise StorageError(
                f"Failed to set ping role: {e}",
                context={"operation": "upsert", "table": "guild_settings"},
            ) from e

    # --- Row Mapping Helpers ---

    @staticmethod
    def _row_to_observation(row: aiosqlite.Row) -> Observation:
        return Observation(
            instrument_key=InstrumentKey(row["instrument_key"]),
            price=row["price"],
            price_date=(
                date.fromisoformat(row["price_date"]) if row["price_date"] else None
            ),
            fetched_at=datetime.fromisoformat(row["fetched_at"]),
            performances=_decode_performances(row["performances_json"]),
            annual_cost_ratio=row["annual_cost_ratio"],
        )

    @staticmethod
    def _row_to_subscription(row: aiosqlite.Row) -> Subscription:
        return Subscription(
            instrument_key=InstrumentKey(row["instrument_key"]),
            guild_id=row["guild_id"],
            channel_id=row["channel_id"],
            subscribed_at=datetime.fromisoformat(row["subscribed_at"]),
        )


def _encode_performances(performances: Performances) -> str | None:
    if not performances:
        return None
    return json.dumps({str(year): value for year, value in sorted(performances.items())})


def _decode_performances(raw: str | None) -> Performances:
    if not raw:
        return {}
    return {int(year): float(value) for year, value in json.loads(raw).items()}


async def create_store(config: StorageConfig) -> SqliteStore:
    """Create and initialize a storage backend based on configuration."""
    if config.backend == StorageBackend.SQLITE:
        store = SqliteStore(config)
        await store.initialize()
        return store
    raise StorageError(
        f"Unsupported storage backend: {config.backend}",
        context={"operation": "create_store", "backend": str(config.backend)},
    )
