# storefront/main.py
import uvicorn
from fastapi import FastAPI

from storefront.api import include_routers
from storefront.data.database import Base, engine
from storefront.data import models  # noqa: F401  registers every table on Base.metadata
from storefront.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


def init_database():
    logger.info("initializing database", tables=sorted(Base.metadata.tables.keys()))
    try:
        Base.metadata.create_all(bind=engine)
    except Exception:
        logger.exception("failed to create tables")
        raise
    logger.info("database tables created")


def create_app(init_db: bool = True) -> FastAPI:
    configure_logging()
    if init_db:
        init_database()

    app = FastAPI(
        title="Storefront Checkout Service",
        version="1.0.0",
    )

    return include_routers(app)


if __name__ == "__main__":
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
