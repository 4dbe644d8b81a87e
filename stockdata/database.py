from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from stockdata.config import settings

DATABASE_URL = settings.database_url

# SQLite connections are handed to worker threads by the async stores
_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=_connect_args, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()
