# class_scheduling/db/session.py
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from class_scheduling.core.config import settings

# The engine owns the connection pool for the scheduling database.
engine = create_engine(settings.DATABASE_URL, pool_pre_ping=True)

# One Session per request; commits are issued explicitly by the services.
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
