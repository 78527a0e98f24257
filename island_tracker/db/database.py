# island_tracker/db/database.py
from sqlalchemy import create_engine
from sqlalchemy.engine import URL
from sqlalchemy.orm import declarative_base, sessionmaker

from island_tracker.config.settings import settings


def build_database_url():
    """
    DATABASE_URL wins if set.
    Otherwise DB_NAME switches to MySQL (pymysql), and with nothing configured
    we fall back to a local SQLite file.
    """
    if settings.database_url:
        return settings.database_url
    if settings.db_name:
        return URL.create(
            "mysql+pymysql",
            username=settings.db_user,
            password=settings.db_pass,
            host=settings.db_host,
            port=settings.db_port,
            database=settings.db_name,
        )
    return "sqlite:///./island_tracker.db"


url = build_database_url()

if str(url).startswith("sqlite"):
    engine = create_engine(url, connect_args={"check_same_thread": False})
else:
    engine = create_engine(
        url,
        pool_pre_ping=True,     # detect dropped connections
        pool_recycle=1800,
        pool_size=5,
        max_overflow=10,
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
