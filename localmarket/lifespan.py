"""
Application lifespan management for startup and shutdown events
"""
import logging
from contextlib import asynccontextmanager

from .cache.layers import CacheClient
from .config import settings
from .db import get_engine, get_session_local
from .services.spatial_query import SpatialQueryEngine, ensure_spatial_index

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app):
    """Manage application lifespan events"""
    logger.info("Starting local market discovery service...")

    # One cache client per process; routes reach it through app.state
    cache = getattr(app.state, "cache", None) or CacheClient(settings.redis_url)
    app.state.cache = cache
    app.state.postgis = False

    # Nothing below is fatal: discovery degrades to source reads / fallback queries
    if await cache.ping():
        logger.info("Cache connection verified")
    else:
        logger.warning("Cache unavailable at startup; listings will be read from the store")

    try:
        engine = get_engine()
        session = get_session_local()()
        try:
            app.state.postgis = await SpatialQueryEngine(session).is_postgis_available()
        finally:
            session.close()
        if app.state.postgis:
            ensure_spatial_index(engine)
        else:
            logger.info("PostGIS not available; using bounding-box spatial fallback")
    except Exception as e:
        logger.error(f"Spatial store check failed: {e}")

    logger.info("Application startup completed")

    yield

    logger.info("Shutting down local market discovery service...")

    try:
        if cache.pending_tasks:
            logger.info(f"Draining {cache.pending_tasks} pending cache writes")
        await cache.drain()
        logger.info(f"Cache stats at shutdown: {cache.stats()}")
        await cache.close()
        logger.info("Cache connection closed")

        get_engine().dispose()
        logger.info("Database connections closed")
    except Exception as e:
        logger.error(f"Shutdown error: {e}")


__all__ = ['lifespan']
