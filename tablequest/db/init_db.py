"""Database initialization with versioned schema migrations."""
import logging
from typing import Callable, List, Tuple
from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session
from sqlalchemy.exc import OperationalError
from tablequest.db.database import engine, SessionLocal, Base
from tablequest.db.models import AppState, SchemaMigration

logger = logging.getLogger(__name__)

APP_STATE_ID = 1
"""Primary key of the single app_state row."""


def check_column_exists(inspector, table_name: str, column_name: str) -> bool:
    """Check if a column exists in a table."""
    try:
        columns = [col['name'] for col in inspector.get_columns(table_name)]
        return column_name in columns
    except Exception as e:
        logger.warning(f"Error checking column {column_name} in {table_name}: {e}")
        return False


def check_index_exists(inspector, table_name: str, index_name: str) -> bool:
    """Check if an index exists on a table."""
    try:
        indexes = inspector.get_indexes(table_name)
        return any(idx['name'] == index_name for idx in indexes)
    except Exception as e:
        logger.warning(f"Error checking index {index_name} in {table_name}: {e}")
        return False


def _add_column(db: Session, bind: Engine, table: str, column: str, definition: str) -> None:
    inspector = inspect(bind)
    if check_column_exists(inspector, table, column):
        return
    try:
        logger.info(f"Adding column {column} to {table} table...")
        db.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {definition}"))
    except OperationalError as e:
        logger.warning(f"Could not add column {column}: {e}")


def _baseline(db: Session, bind: Engine) -> None:
    """Version 1: tables created by create_all; nothing to alter."""


def _add_settings_version(db: Session, bind: Engine) -> None:
    """Version 2: versioned settings payload on profiles."""
    _add_column(db, bind, "profiles", "settings_version", "INTEGER NOT NULL DEFAULT 0")


def _add_mean_response_time(db: Session, bind: Engine) -> None:
    """Version 3: per-topic mean response time."""
    _add_column(db, bind, "topic_stats", "mean_response_seconds", "FLOAT NOT NULL DEFAULT 0.0")


def _index_session_history(db: Session, bind: Engine) -> None:
    """Version 4: index for the dashboard's recent sessions query."""
    if check_index_exists(inspect(bind), "practice_sessions", "idx_profile_completed"):
        return
    try:
        logger.info("Creating index idx_profile_completed...")
        db.execute(text(
            "CREATE INDEX IF NOT EXISTS idx_profile_completed "
            "ON practice_sessions (profile_id, completed_at)"
        ))
    except OperationalError as e:
        logger.warning(f"Could not create index idx_profile_completed: {e}")


MIGRATIONS: List[Tuple[int, str, Callable[[Session, Engine], None]]] = [
    (1, "baseline", _baseline),
    (2, "add profiles.settings_version", _add_settings_version),
    (3, "add topic_stats.mean_response_seconds", _add_mean_response_time),
    (4, "index practice_sessions by profile and completion", _index_session_history),
]
"""Numbered schema migrations. Append only; never renumber."""


def get_schema_version(db: Session) -> int:
    """Return the highest applied migration version, 0 for a new database."""
    latest = db.query(SchemaMigration).order_by(SchemaMigration.version.desc()).first()
    return latest.version if latest else 0


def apply_schema_migrations(db: Session, bind: Engine = None) -> List[int]:
    """
    Apply every pending migration in version order.

    Each migration runs at most once; its version is recorded in the
    schema_migrations table together with the schema change.

    Args:
        db: Database session
        bind: Engine the session is bound to (defaults to the application engine)

    Returns:
        Versions applied by this call, in order
    """
    bind = bind if bind is not None else engine
    current = get_schema_version(db)
    applied = []

    for version, name, migrate in MIGRATIONS:
        if version <= current:
            continue
        logger.info(f"Applying schema migration {version}: {name}")
        try:
            migrate(db, bind)
            db.add(SchemaMigration(version=version, name=name))
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(f"Schema migration {version} failed: {e}")
            raise
        applied.append(version)

    if applied:
        logger.info(f"Applied {len(applied)} schema migrations; now at version {applied[-1]}")
    else:
        logger.info("No schema migrations needed. Database is up to date.")

    return applied


def seed_app_state(db: Session) -> None:
    """Create the single app_state row if missing."""
    if db.get(AppState, APP_STATE_ID) is not None:
        return
    db.add(AppState(id=APP_STATE_ID))
    db.commit()
    logger.info("Seeded app state row.")


def init_db(bind: Engine = None) -> None:
    """
    Initialize database: create tables, apply migrations, and seed state.

    Safe to call multiple times - all operations are idempotent.
    """
    bind = bind if bind is not None else engine
    logger.info("Initializing database...")

    Base.metadata.create_all(bind=bind)
    logger.info("Tables created/verified successfully.")

    db = SessionLocal(bind=bind)
    try:
        apply_schema_migrations(db, bind)
        seed_app_state(db)
        logger.info("Database initialization complete.")
    except Exception as e:
        logger.error(f"Error during database initialization: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    init_db()
