from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from povgen.core.config import settings


def _engine_kwargs(dsn: str) -> dict:
    if dsn.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


engine = create_engine(settings.database_dsn, **_engine_kwargs(settings.database_dsn))
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
