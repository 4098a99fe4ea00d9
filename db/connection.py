from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from config import config


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True, "pool_size": 10, "max_overflow": 20}


engine = create_engine(
    config.DATABASE_URL,
    echo=config.SQL_ECHO,
    **_engine_options(config.DATABASE_URL),
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
