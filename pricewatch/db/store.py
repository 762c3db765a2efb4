"""SQLite alert store for pricewatch."""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Iterator, Optional

from pricewatch.clock import ensure_utc, utc_now
from pricewatch.errors import NotFound, StorageUnavailable
from pricewatch.models import CronAlert, PriceAlert

logger = logging.getLogger(__name__)


def _ts(value: datetime) -> str:
    """Serialize a timestamp so that string order equals time order."""
    return ensure_utc(value).isoformat(timespec="microseconds")


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return ensure_utc(datetime.fromisoformat(value))


def _row_to_price_alert(row: sqlite3.Row) -> PriceAlert:
    return PriceAlert(
        id=row["id"],
        owner_key=row["owner_key"],
        destination=row["destination"],
        symbol=row["symbol"],
        token=row["token"],
        target_price=row["target_price"],
        suppressed=bool(row["suppressed"]),
        cooldown_until=_parse_ts(row["cooldown_until"]),
        created_at=_parse_ts(row["created_at"]),
        updated_at=_parse_ts(row["updated_at"]),
    )


def _row_to_cron_alert(row: sqlite3.Row) -> CronAlert:
    return CronAlert(
        id=row["id"],
        destination=row["destination"],
        symbol=row["symbol"],
        token=row["token"],
        cron_expression=row["cron_expression"],
        active=bool(row["active"]),
        created_at=_parse_ts(row["created_at"]),
        updated_at=_parse_ts(row["updated_at"]),
        last_triggered_at=_parse_ts(row["last_triggered_at"]),
        next_trigger_at=_parse_ts(row["next_trigger_at"]),
    )


PRICE_ALERT_COLUMNS = """
    id, owner_key, destination, symbol, token, target_price,
    suppressed, cooldown_until, created_at, updated_at
"""

CRON_ALERT_COLUMNS = """
    id, destination, symbol, token, cron_expression, active,
    created_at, updated_at, last_triggered_at, next_trigger_at
"""


class AlertStore:
    """SQLite-backed store for price alerts and cron alerts.

    Every public operation runs in its own transaction. Writes are
    serialized through a single lock, and the database runs in WAL mode so
    concurrent readers only ever observe committed rows.
    """

    REQUIRED_TABLES = [
        "price_alerts",
        "cron_alerts",
    ]

    def __init__(self, db_path: Path, busy_timeout: float = 5.0):
        """Initialize the store.

        Args:
            db_path: Path to the SQLite database file.
            busy_timeout: Seconds SQLite waits on a locked database.

        Raises:
            StorageUnavailable: If the database cannot be opened or migrated.
        """
        self.db_path = Path(db_path)
        self.busy_timeout = busy_timeout
        self._write_lock = threading.Lock()
        self._ensure_db_dir()
        self._init_schema()

    def _ensure_db_dir(self) -> None:
        """Ensure the database directory exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection."""
        conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _read(self) -> Iterator[sqlite3.Cursor]:
        """Yield a cursor for a read-only query."""
        try:
            conn = self._get_connection()
        except sqlite3.Error as e:
            raise StorageUnavailable(f"Cannot open {self.db_path}: {e}") from e
        try:
            yield conn.cursor()
        except sqlite3.Error as e:
            raise StorageUnavailable(str(e)) from e
        finally:
            conn.close()

    @contextmanager
    def _write(self) -> Iterator[sqlite3.Cursor]:
        """Yield a cursor inside a serialized write transaction."""
        with self._write_lock:
            try:
                conn = self._get_connection()
            except sqlite3.Error as e:
                raise StorageUnavailable(f"Cannot open {self.db_path}: {e}") from e
            try:
                yield conn.cursor()
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise StorageUnavailable(str(e)) from e
            except Exception:
                conn.rollback()
                raise
            finally:
                conn.close()

    def _init_schema(self) -> None:
        """Initialize database schema on first run."""
        with self._write() as cursor:
            cursor.execute("PRAGMA journal_mode=WAL")

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS price_alerts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    owner_key TEXT NOT NULL,
                    destination TEXT NOT NULL,
                    symbol TEXT NOT NULL,
                    token TEXT NOT NULL,
                    target_price REAL NOT NULL,
                    suppressed INTEGER NOT NULL DEFAULT 0,
                    cooldown_until TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_price_alerts_match
                ON price_alerts (suppressed, target_price)
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS cron_alerts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    destination TEXT NOT NULL,
                    symbol TEXT NOT NULL,
                    token TEXT NOT NULL,
                    cron_expression TEXT NOT NULL,
                    active INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    last_triggered_at TEXT,
                    next_trigger_at TEXT NOT NULL
                )
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_cron_alerts_due
                ON cron_alerts (active, next_trigger_at)
            """)
        logger.debug("Alert store ready at %s", self.db_path)

    def get_tables(self) -> list[str]:
        """Get list of all tables in the database."""
        with self._read() as cursor:
            cursor.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%'"
            )
            return [row["name"] for row in cursor.fetchall()]

    # ==================== Price alerts ====================

    def create_price_alert(
        self,
        owner_key: str,
        destination: str,
        symbol: str,
        token: str,
        target_price: float,
        now: Optional[datetime] = None,
    ) -> PriceAlert:
        """Insert a new, unsuppressed price alert.

        Args:
            owner_key: Opaque key of the creator.
            destination: Notification target.
            symbol: User-facing symbol.
            token: Resolved feed token.
            target_price: Watched price.
            now: Creation time, defaults to the current time.

        Returns:
            The stored alert.
        """
        created = _ts(now or utc_now())
        with self._write() as cursor:
            cursor.execute(
                """
                INSERT INTO price_alerts
                (owner_key, destination, symbol, token, target_price,
                 suppressed, cooldown_until, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, 0, ?, ?, ?)
                """,
                (owner_key, destination, symbol, token, target_price, created, created, created),
            )
            cursor.execute(
                f"SELECT {PRICE_ALERT_COLUMNS} FROM price_alerts WHERE id = ?",
                (cursor.lastrowid,),
            )
            return _row_to_price_alert(cursor.fetchone())

    def get_price_alert(self, alert_id: int) -> PriceAlert:
        """Get a price alert by ID.

        Raises:
            NotFound: If no alert has this ID.
        """
        with self._read() as cursor:
            cursor.execute(
                f"SELECT {PRICE_ALERT_COLUMNS} FROM price_alerts WHERE id = ?",
                (alert_id,),
            )
            row = cursor.fetchone()
        if row is None:
            raise NotFound("price alert", alert_id)
        return _row_to_price_alert(row)

    def list_alerts(self, destination: Optional[str] = None) -> list[PriceAlert]:
        """List price alerts, optionally only those for one destination."""
        with self._read() as cursor:
            if destination is not None:
                cursor.execute(
                    f"""
                    SELECT {PRICE_ALERT_COLUMNS} FROM price_alerts
                    WHERE destination = ?
                    ORDER BY id
                    """,
                    (destination,),
                )
            else:
                cursor.execute(f"SELECT {PRICE_ALERT_COLUMNS} FROM price_alerts ORDER BY id")
            return [_row_to_price_alert(row) for row in cursor.fetchall()]

    def find_matching(
        self,
        lower_bound: float,
        upper_bound: float,
        token: Optional[str] = None,
    ) -> list[PriceAlert]:
        """Find unsuppressed alerts whose target lies in ``[lower_bound, upper_bound]``.

        Args:
            lower_bound: Inclusive lower price.
            upper_bound: Inclusive upper price.
            token: If given, only alerts on this token are returned.
        """
        query = f"""
            SELECT {PRICE_ALERT_COLUMNS} FROM price_alerts
            WHERE suppressed = 0 AND target_price BETWEEN ? AND ?
        """
        params: tuple = (lower_bound, upper_bound)
        if token is not None:
            query += " AND token = ?"
            params += (token,)
        with self._read() as cursor:
            cursor.execute(query + " ORDER BY id", params)
            return [_row_to_price_alert(row) for row in cursor.fetchall()]

    def apply_cooldown(self, alert_id: int, now: datetime, window: timedelta) -> None:
        """Suppress an alert until ``now + window``.

        Raises:
            NotFound: If the alert no longer exists.
        """
        with self._write() as cursor:
            cursor.execute(
                """
                UPDATE price_alerts
                SET suppressed = 1, cooldown_until = ?, updated_at = ?
                WHERE id = ?
                """,
                (_ts(now + window), _ts(now), alert_id),
            )
            updated = cursor.rowcount
        if updated == 0:
            raise NotFound("price alert", alert_id)

    def expire_cooldowns(self, now: datetime) -> int:
        """Clear suppression on every alert whose cooldown has passed.

        Returns:
            Number of alerts released.
        """
        with self._write() as cursor:
            cursor.execute(
                """
                UPDATE price_alerts
                SET suppressed = 0, cooldown_until = NULL, updated_at = ?
                WHERE suppressed = 1 AND cooldown_until <= ?
                """,
                (_ts(now), _ts(now)),
            )
            return cursor.rowcount

    def list_distinct_tokens(self) -> set[str]:
        """Tokens referenced by price alerts (the feed subscriptions needed)."""
        with self._read() as cursor:
            cursor.execute("SELECT DISTINCT token FROM price_alerts")
            return {row["token"] for row in cursor.fetchall()}

    # ==================== Cron alerts ====================

    def create_cron_alert(
        self,
        destination: str,
        symbol: str,
        token: str,
        cron_expression: str,
        next_trigger_at: datetime,
        now: Optional[datetime] = None,
    ) -> CronAlert:
        """Insert a new active cron alert.

        ``next_trigger_at`` must already be computed from a validated
        expression; the store does not parse schedules.
        """
        created = _ts(now or utc_now())
        with self._write() as cursor:
            cursor.execute(
                """
                INSERT INTO cron_alerts
                (destination, symbol, token, cron_expression, active,
                 created_at, updated_at, last_triggered_at, next_trigger_at)
                VALUES (?, ?, ?, ?, 1, ?, ?, NULL, ?)
                """,
                (destination, symbol, token, cron_expression, created, created, _ts(next_trigger_at)),
            )
            cursor.execute(
                f"SELECT {CRON_ALERT_COLUMNS} FROM cron_alerts WHERE id = ?",
                (cursor.lastrowid,),
            )
            return _row_to_cron_alert(cursor.fetchone())

    def get_cron_alert(self, alert_id: int) -> CronAlert:
        """Get a cron alert by ID, active or not.

        Raises:
            NotFound: If no alert has this ID.
        """
        with self._read() as cursor:
            cursor.execute(
                f"SELECT {CRON_ALERT_COLUMNS} FROM cron_alerts WHERE id = ?",
                (alert_id,),
            )
            row = cursor.fetchone()
        if row is None:
            raise NotFound("cron alert", alert_id)
        return _row_to_cron_alert(row)

    def list_cron_alerts(self, destination: Optional[str] = None) -> list[CronAlert]:
        """List active cron alerts, optionally only those for one destination."""
        with self._read() as cursor:
            if destination is not None:
                cursor.execute(
                    f"""
                    SELECT {CRON_ALERT_COLUMNS} FROM cron_alerts
                    WHERE active = 1 AND destination = ?
                    ORDER BY id
                    """,
                    (destination,),
                )
            else:
                cursor.execute(
                    f"SELECT {CRON_ALERT_COLUMNS} FROM cron_alerts WHERE active = 1 ORDER BY id"
                )
            return [_row_to_cron_alert(row) for row in cursor.fetchall()]

    def due_cron_alerts(self, now: datetime) -> list[CronAlert]:
        """Active cron alerts whose next trigger is at or before ``now``."""
        with self._read() as cursor:
            cursor.execute(
                f"""
                SELECT {CRON_ALERT_COLUMNS} FROM cron_alerts
                WHERE active = 1 AND next_trigger_at <= ?
                ORDER BY next_trigger_at, id
                """,
                (_ts(now),),
            )
            return [_row_to_cron_alert(row) for row in cursor.fetchall()]

    def mark_cron_fired(self, alert_id: int, next_trigger_at: datetime, now: datetime) -> None:
        """Record a firing and advance the schedule.

        Raises:
            NotFound: If the alert no longer exists.
        """
        with self._write() as cursor:
            cursor.execute(
                """
                UPDATE cron_alerts
                SET last_triggered_at = ?, next_trigger_at = ?, updated_at = ?
                WHERE id = ?
                """,
                (_ts(now), _ts(next_trigger_at), _ts(now), alert_id),
            )
            updated = cursor.rowcount
        if updated == 0:
            raise NotFound("cron alert", alert_id)

    def deactivate_cron_alert(self, alert_id: int, now: Optional[datetime] = None) -> None:
        """Soft-delete a cron alert; it stays fetchable by ID.

        Raises:
            NotFound: If the alert does not exist.
        """
        with self._write() as cursor:
            cursor.execute(
                "UPDATE cron_alerts SET active = 0, updated_at = ? WHERE id = ?",
                (_ts(now or utc_now()), alert_id),
            )
            updated = cursor.rowcount
        if updated == 0:
            raise NotFound("cron alert", alert_id)

    def delete_cron_alert(self, alert_id: int) -> None:
        """Remove a cron alert permanently.

        Raises:
            NotFound: If the alert does not exist.
        """
        with self._write() as cursor:
            cursor.execute("DELETE FROM cron_alerts WHERE id = ?", (alert_id,))
            deleted = cursor.rowcount
        if deleted == 0:
            raise NotFound("cron alert", alert_id)

    # ==================== Stats ====================

    def get_stats(self) -> dict:
        """Get database statistics.

        Returns:
            Dictionary with table record counts.
        """
        with self._read() as cursor:
            stats = {}
            for table in self.REQUIRED_TABLES:
                cursor.execute(f"SELECT COUNT(*) as count FROM {table}")
                stats[table] = cursor.fetchone()["count"]
            cursor.execute("SELECT COUNT(*) as count FROM price_alerts WHERE suppressed = 1")
            stats["suppressed"] = cursor.fetchone()["count"]
            cursor.execute("SELECT COUNT(*) as count FROM cron_alerts WHERE active = 1")
            stats["active_cron"] = cursor.fetchone()["count"]
            return stats
