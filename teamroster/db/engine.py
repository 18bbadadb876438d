# teamroster/db/engine.py
import os

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL")
LOCAL_SQLITE_URL = "sqlite:///./teamroster.db"

# managed Postgres drops idle connections; recycle and keep them alive
POSTGRES_POOL = {
    "pool_size": 10,
    "max_overflow": 10,
    "pool_timeout": 10,
    "pool_recycle": 300,
}
POSTGRES_CONNECT_ARGS = {
    "sslmode": "require",
    "keepalives": 1,
    "keepalives_idle": 30,
    "keepalives_interval": 10,
    "keepalives_count": 5,
}


def build_engine(url: str | None) -> Engine:
    url = url or LOCAL_SQLITE_URL
    if url.startswith("postgresql"):
        return create_engine(
            url, pool_pre_ping=True, future=True, connect_args=POSTGRES_CONNECT_ARGS, **POSTGRES_POOL,
        )
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, pool_pre_ping=True, future=True, connect_args=connect_args)


engine = build_engine(DATABASE_URL)

SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)
