from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from autopublish.config import settings

DATABASE_URL = settings.database_url  # default: sqlite:///./autopublish.db

def make_engine(url: str):
    return create_engine(
        url,
        connect_args={"check_same_thread": False} if url.startswith("sqlite") else {}
    )

engine = make_engine(DATABASE_URL)
# expire_on_commit=False: schedules/articles are read after commit from the scheduler thread
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)

Base = declarative_base()
