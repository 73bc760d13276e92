import importlib
import os
import sys
import traceback

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from bakery.config import settings
from bakery.utils.logs import get_logger

log = get_logger("db")

DATABASE_URL = settings.DATABASE_URL
_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, future=True, echo=False, connect_args=_connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

# every model module must be imported before create_all so metadata is populated
MODEL_MODULES = [
    "bakery.models.product",
    "bakery.models.customer",
    "bakery.models.order",
    "bakery.models.cart",
    "bakery.models.cart_item",
    "bakery.models.pending_payment",
]


def _running_pytest() -> bool:
    if any("pytest" in os.path.basename(a).lower() for a in sys.argv):
        return True
    return any(k.upper().startswith("PYTEST") for k in os.environ.keys())


def init_db(reset: bool = False):
    """
    Initialize DB schema.

    Behavior:
      - reset=True, RESET_DB=1/true/yes, or a pytest run drops & recreates tables.
      - Otherwise existing tables are left in place.
    """
    env_reset = os.environ.get("RESET_DB", "false").lower() in ("1", "true", "yes")

    failed = []
    for mod in MODEL_MODULES:
        try:
            importlib.import_module(mod)
        except Exception:
            failed.append((mod, traceback.format_exc()))
    for mod, tb in failed:
        log.error(f"init_db: model import failed for {mod}\n{tb}")

    if reset or env_reset or _running_pytest():
        log.info("Resetting database (reset requested or pytest detected)...")
        Base.metadata.drop_all(bind=engine)

    Base.metadata.create_all(bind=engine)
    log.info("Database initialized.")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
