from .database import Base, create_engine, create_session_factory, init_schema
from .version_store import VersionStore

__all__ = [
    "Base",
    "create_engine",
    "create_session_factory",
    "init_schema",
    "VersionStore",
]
