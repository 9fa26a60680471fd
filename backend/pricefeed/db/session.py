# backend/pricefeed/db/session.py

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from pricefeed.config.settings import settings

engine = create_async_engine(settings.database_url, echo=False)
AsyncSessionLocal = async_sessionmaker(autoflush=False, bind=engine)
