from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from clientflow.core.config import settings

url = make_url(settings.DATABASE_URL)
connect_args = {}
engine_kwargs = {}
if url.get_backend_name().startswith("postgresql"):
    connect_args["options"] = "-c timezone=utc"
elif url.get_backend_name() == "sqlite":
    connect_args["check_same_thread"] = False
    if url.database in (None, "", ":memory:"):
        # One shared connection so every session sees the same in-memory database
        engine_kwargs["poolclass"] = StaticPool

engine = create_engine(
    settings.DATABASE_URL, pool_pre_ping=True, connect_args=connect_args, **engine_kwargs
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
