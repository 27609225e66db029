import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from infrastructure.database.ops.devices import DeviceOperations
from infrastructure.database.ops.notifications import NotificationOperations
from infrastructure.database.ops.schedules import ScheduleOperations

logger = logging.getLogger(__name__)


class SQLiteDatabaseHandler(
    DeviceOperations,
    ScheduleOperations,
    NotificationOperations,
):
    """Thread-safe SQLite handler with one connection per thread.

    Connections run in autocommit mode; multi-statement work goes through
    :meth:`transaction`, which issues ``BEGIN IMMEDIATE`` so the write lock
    is taken up front and a busy database fails after ``timeout`` seconds
    instead of waiting forever.
    """

    def __init__(self, database_path: str, *, timeout: float = 5.0) -> None:
        self._database_path = database_path
        self._timeout = timeout
        self._local = threading.local()

        if database_path != ":memory:" and not database_path.startswith("file:"):
            db_path = Path(database_path)
            if not db_path.parent.exists():
                db_path.parent.mkdir(parents=True, exist_ok=True)
                logger.info("Created database directory: %s", db_path.parent)

    # --- Lifecycle ------------------------------------------------------------
    def init_app(self) -> None:
        self.create_tables()

    def get_db(self) -> sqlite3.Connection:
        connection: Optional[sqlite3.Connection] = getattr(self._local, "connection", None)
        if connection is None:
            connection = self._open_connection()
            self._local.connection = connection
        return connection

    def _open_connection(self) -> sqlite3.Connection:
        connection = sqlite3.connect(
            self._database_path,
            timeout=self._timeout,
            check_same_thread=False,
            isolation_level=None,
            uri=self._database_path.startswith("file:"),
        )
        try:
            connection.row_factory = sqlite3.Row
            self._configure_connection(connection)
            return connection
        except Exception:
            connection.close()
            raise

    def _configure_connection(self, connection: sqlite3.Connection) -> None:
        """Configure SQLite connection.

        - WAL mode: readers (the schedule tick) never block the ingest writer
        - NORMAL synchronous: safe with WAL
        - foreign keys on: schedules and values follow their registration
        - busy timeout: bounded wait for the write lock
        """
        connection.execute("PRAGMA journal_mode=WAL")
        connection.execute("PRAGMA synchronous=NORMAL")
        connection.execute("PRAGMA foreign_keys=ON")
        connection.execute(f"PRAGMA busy_timeout={int(self._timeout * 1000)}")

    def close_db(self, _e: Optional[BaseException] = None) -> None:
        connection: Optional[sqlite3.Connection] = getattr(self._local, "connection", None)
        if connection is not None:
            connection.close()
            delattr(self._local, "connection")

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        conn = self.get_db()
        try:
            yield conn
        finally:
            if conn.in_transaction:
                conn.commit()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the block atomically: commit on success, roll back on any exception.

        Nested use joins the outer transaction.
        """
        conn = self.get_db()
        if conn.in_transaction:
            yield conn
            return

        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            conn.rollback()
            raise
        else:
            conn.commit()

    # --- Schema ----------------------------------------------------------------
    def create_tables(self) -> None:
        """Creates the necessary tables in the database if they do not already exist."""
        try:
            with self.connection() as db:
                # Template catalog
                db.execute(
                    """
                    CREATE TABLE IF NOT EXISTS DeviceTemplates (
                        template_id INTEGER PRIMARY KEY AUTOINCREMENT,
                        abbreviation TEXT NOT NULL,
                        model TEXT NOT NULL UNIQUE,
                        kind TEXT,
                        brand TEXT,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                    """
                )
                db.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Parameters (
                        parameter_id INTEGER PRIMARY KEY AUTOINCREMENT,
                        name TEXT NOT NULL,
                        type TEXT NOT NULL
                    )
                    """
                )
                db.execute(
                    """
                    CREATE TABLE IF NOT EXISTS DeviceTemplateParameters (
                        template_id INTEGER NOT NULL,
                        parameter_id INTEGER NOT NULL,
                        initial_value TEXT,
                        position INTEGER DEFAULT 0,
                        PRIMARY KEY (template_id, parameter_id),
                        FOREIGN KEY (template_id) REFERENCES DeviceTemplates(template_id) ON DELETE CASCADE,
                        FOREIGN KEY (parameter_id) REFERENCES Parameters(parameter_id) ON DELETE CASCADE
                    )
                    """
                )

                # Registered controllers
                db.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Registrations (
                        registration_id INTEGER PRIMARY KEY AUTOINCREMENT,
                        owner_id INTEGER,
                        template_id INTEGER NOT NULL,
                        topic TEXT NOT NULL,
                        serial_number TEXT NOT NULL UNIQUE,
                        name TEXT,
                        status TEXT NOT NULL DEFAULT 'offline'
                            CHECK (status IN ('online', 'offline')),
                        last_seen_at TIMESTAMP,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        FOREIGN KEY (template_id) REFERENCES DeviceTemplates(template_id)
                    )
                    """
                )
                db.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_registrations_status_seen
                    ON Registrations(status, last_seen_at)
                    """
                )
                db.execute(
                    """
                    CREATE TABLE IF NOT EXISTS ParameterValues (
                        registration_id INTEGER NOT NULL,
                        parameter_id INTEGER NOT NULL,
                        value TEXT,
                        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        PRIMARY KEY (registration_id, parameter_id),
                        FOREIGN KEY (registration_id) REFERENCES Registrations(registration_id) ON DELETE CASCADE,
                        FOREIGN KEY (parameter_id) REFERENCES Parameters(parameter_id) ON DELETE CASCADE
                    )
                    """
                )

                # Watering schedules, stored in UTC
                db.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Schedules (
                        schedule_id INTEGER PRIMARY KEY AUTOINCREMENT,
                        registration_serial TEXT NOT NULL,
                        name TEXT,
                        days_of_week TEXT NOT NULL,
                        start_days_of_week TEXT NOT NULL,
                        start_time TEXT NOT NULL,
                        end_time TEXT NOT NULL,
                        utc_offset_minutes INTEGER NOT NULL DEFAULT 0,
                        active INTEGER NOT NULL DEFAULT 1,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        FOREIGN KEY (registration_serial) REFERENCES Registrations(serial_number) ON DELETE CASCADE
                    )
                    """
                )
                db.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_schedules_active
                    ON Schedules(active)
                    """
                )

                # Push tokens per owner
                db.execute(
                    """
                    CREATE TABLE IF NOT EXISTS NotificationTokens (
                        token_id INTEGER PRIMARY KEY AUTOINCREMENT,
                        owner_id INTEGER NOT NULL,
                        token TEXT NOT NULL UNIQUE,
                        platform TEXT,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        invalidated_at TIMESTAMP
                    )
                    """
                )
                db.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_notification_tokens_owner
                    ON NotificationTokens(owner_id)
                    """
                )
            logger.info("Database tables ready at %s", self._database_path)
        except sqlite3.Error as exc:
            logger.error("Failed to create tables: %s", exc)
            raise
