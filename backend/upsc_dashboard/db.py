from __future__ import annotations
import logging

from sqlalchemy import create_engine, inspect
from sqlalchemy.orm import sessionmaker, declarative_base
from .settings import settings


logger = logging.getLogger(__name__)

DATABASE_URL = settings.database_url or "sqlite:///./upsc.db"

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=_connect_args, future=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
Base = declarative_base()


def get_db():
	db = SessionLocal()
	try:
		yield db
	finally:
		db.close()


# Columns added after the first release; SQLite-friendly ALTERs
_LATE_COLUMNS = {
	"users": {
		"preferences": "JSON",
		"last_login": "DATETIME",
	},
	"auth_sessions": {
		"expires_at": "DATETIME",
		"revoked": "BOOLEAN DEFAULT 0 NOT NULL",
	},
	"coupons": {
		"eligible_roles": "JSON",
	},
}


def ensure_schema() -> None:
	inspector = inspect(engine)
	tables = set(inspector.get_table_names())
	for table, columns in _LATE_COLUMNS.items():
		if table not in tables:
			continue
		existing = {c["name"] for c in inspector.get_columns(table)}
		missing = [(name, ddl) for name, ddl in columns.items() if name not in existing]
		if not missing:
			continue
		with engine.begin() as conn:
			for name, ddl in missing:
				logger.info("adding column %s.%s", table, name)
				conn.exec_driver_sql(f"ALTER TABLE {table} ADD COLUMN {name} {ddl}")


def init_db() -> None:
	# Import models so every table is registered on Base.metadata
	from . import models  # noqa: F401
	from .accounts import seed_defaults

	Base.metadata.create_all(bind=engine)
	ensure_schema()
	db = SessionLocal()
	try:
		seed_defaults(db)
	finally:
		db.close()
