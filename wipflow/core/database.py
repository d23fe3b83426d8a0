from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from wipflow.core.config import settings


def make_engine(url: str):
    # SQLite partagé entre le thread de l'API et les handlers
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, echo=False, connect_args=connect_args)


engine = make_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

def get_db():
    """Dépendance sessionDB"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
