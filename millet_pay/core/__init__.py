from .config import Settings
from .database import build_engine, get_db, init_db, utcnow

__all__ = ["Settings", "build_engine", "get_db", "init_db", "utcnow"]
