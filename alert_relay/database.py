"""SQLModel database engine and session management."""

import logging

from sqlalchemy import inspect
from sqlmodel import SQLModel, create_engine, Session

from alert_relay.config import settings

logger = logging.getLogger(__name__)

# SQLite needs check_same_thread=False; PostgreSQL does not
connect_args = {}
if settings.database_url.startswith("sqlite"):
    connect_args["check_same_thread"] = False

engine = create_engine(
    settings.database_url,
    echo=False,
    connect_args=connect_args,
)


def _run_migrations(bind=None):
    """Run lightweight schema migrations for columns added after first deploy."""
    from sqlalchemy import text

    bind = bind or engine
    inspector = inspect(bind)

    if "trade" not in inspector.get_table_names():
        return

    columns = {col["name"] for col in inspector.get_columns("trade")}
    if "strategy" not in columns:
        logger.info("Migrating: adding trade.strategy")
        with bind.connect() as conn:
            conn.execute(text("ALTER TABLE trade ADD COLUMN strategy VARCHAR"))
            conn.execute(text("CREATE INDEX ix_trade_strategy ON trade (strategy)"))
            conn.commit()

    if "forwarding_config" in inspector.get_table_names():
        fc_columns = {col["name"] for col in inspector.get_columns("forwarding_config")}
        if "symbol_map" not in fc_columns:
            logger.info("Migrating: adding forwarding_config.symbol_map")
            with bind.connect() as conn:
                conn.execute(text("ALTER TABLE forwarding_config ADD COLUMN symbol_map JSON"))
                conn.commit()


def create_db_and_tables(bind=None):
    """Create all tables. Called on startup."""
    import alert_relay.models  # noqa: F401  (registers tables on the metadata)

    SQLModel.metadata.create_all(bind or engine)
    _run_migrations(bind)


def get_session() -> Session:
    """Dependency that yields a database session."""
    with Session(engine) as session:
        yield session
