from datetime import datetime, timezone

from sqlalchemy import create_engine               # SQLAlchemy engine factory
from sqlalchemy.orm import declarative_base        # Base class for models
from sqlalchemy.orm import sessionmaker            # Session factory

from config.settings import settings               # ✅ environment settings

# ✅ engine built from the configured DB URL
engine = create_engine(settings.DATABASE_URL, pool_pre_ping=True)

# ✅ session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# ✅ declarative Base shared by every model
Base = declarative_base()


def utcnow() -> datetime:
    # naive UTC so values compare the same way on MySQL and SQLite
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ==========================================================
# [common] DB session per request
# ==========================================================
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
