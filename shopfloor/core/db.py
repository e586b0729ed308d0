# shopfloor/core/db.py
from contextlib import contextmanager
import logging
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from shopfloor.core.db_base import Base

logger = logging.getLogger(__name__)


def _set_sqlite_pragmas(dbapi_connection, connection_record):
    # Audit rows rely on ON DELETE SET NULL, which SQLite only honours with foreign_keys on
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys = ON")
    cursor.execute("PRAGMA journal_mode = WAL")
    cursor.close()


class Database:
    """
    Storage access object handed to every service.

    Wraps one SQLAlchemy engine with explicit open/close and exposes the small
    parameterized-SQL surface the services use, plus ORM sessions for the
    user accounts.
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.echo = echo
        self.engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    @property
    def is_open(self) -> bool:
        return self.engine is not None

    def open(self) -> "Database":
        """Create the engine and session factory"""
        if self.engine is not None:
            return self

        connect_args = {"check_same_thread": False} if self.is_sqlite else {}
        self.engine = create_engine(
            self.url,
            echo=self.echo,
            pool_pre_ping=True,
            connect_args=connect_args,
        )
        if self.is_sqlite:
            event.listen(self.engine, "connect", _set_sqlite_pragmas)

        self._session_factory = sessionmaker(
            autoflush=False,
            bind=self.engine,
            expire_on_commit=False
        )
        logger.info(f"Database engine opened ({self.engine.dialect.name})")
        return self

    def close(self) -> None:
        """Dispose the engine and its connection pool"""
        if self.engine is not None:
            self.engine.dispose()
            logger.info("Database connection closed")
        self.engine = None
        self._session_factory = None

    def _require_engine(self) -> Engine:
        if self.engine is None:
            raise RuntimeError("Database is not open. Call open() first.")
        return self.engine

    def create_all(self) -> None:
        """Create all tables known to the declarative base"""
        # Import models so they are registered with Base
        from shopfloor.models import audit_log, part, user  # noqa: F401

        Base.metadata.create_all(bind=self._require_engine())

    @contextmanager
    def session(self) -> Iterator[Session]:
        """ORM session scope, rolled back on error"""
        self._require_engine()
        db = self._session_factory()
        try:
            yield db
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def select_all(self, query: str, params: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        """Run a SELECT and return every row as a dict"""
        with self._require_engine().connect() as conn:
            result = conn.execute(text(query), dict(params or {}))
            return [dict(row._mapping) for row in result]

    def select_one(self, query: str, params: Optional[Mapping[str, Any]] = None) -> Optional[Dict[str, Any]]:
        rows = self.select_all(query, params)
        return rows[0] if rows else None

    def scalar_count(self, query: str, params: Optional[Mapping[str, Any]] = None) -> int:
        with self._require_engine().connect() as conn:
            value = conn.execute(text(query), dict(params or {})).scalar()
            return int(value or 0)

    def execute(self, query: str, params: Optional[Mapping[str, Any]] = None) -> int:
        """Run a modifying statement in its own transaction, return affected row count"""
        with self._require_engine().begin() as conn:
            result = conn.execute(text(query), dict(params or {}))
            return result.rowcount

    def batch_insert(self, query: str, rows: Sequence[Mapping[str, Any]]) -> int:
        """
        Insert many rows with one statement inside a single transaction.

        Any failure rolls back the whole batch, so either every row is
        committed or none is.
        """
        if not rows:
            return 0
        with self._require_engine().begin() as conn:
            conn.execute(text(query), [dict(row) for row in rows])
        return len(rows)


def init_db(database: Database, settings) -> bool:
    """Create tables and the default admin account"""
    from shopfloor.core.security import get_password_hash
    from shopfloor.models.user import User, ROLE_ADMIN
    from shopfloor.services.user_service import normalize_email

    database.create_all()
    admin_email = normalize_email(settings.ADMIN_EMAIL)

    with database.session() as db:
        admin = db.query(User).filter(User.email == admin_email).first()

        # Only create if admin doesn't exist
        if admin is None:
            logger.info(f"Admin user doesn't exist. Creating new admin: {admin_email}")
            admin = User(
                email=admin_email,
                first_name=settings.ADMIN_FIRST_NAME,
                last_name=settings.ADMIN_LAST_NAME,
                hashed_password=get_password_hash(settings.ADMIN_PASSWORD),
                role=ROLE_ADMIN,
                is_active=True,
            )
            db.add(admin)
            db.commit()
            logger.info(f"Created default admin user: {admin_email}")
        else:
            logger.info(f"Admin user already exists: {admin_email}")

    return True
