import logging
from contextlib import contextmanager

from flask import current_app
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
import redis as _redis

from app.errors import ConflictError

logger = logging.getLogger(__name__)

db = SQLAlchemy()
migrate = Migrate()

# SQLite INTEGER range; larger ids cannot exist and overflow the driver
MAX_ROW_ID = 2**63 - 1

# Initialized lazily in create_app
redis_client: _redis.Redis = None  # type: ignore


def init_redis(app):
    global redis_client
    redis_url = app.config.get("REDIS_URL", "")
    if not redis_url:
        logger.warning("REDIS_URL not set; matrix locks disabled (dev mode)")
        redis_client = None
        return

    try:
        redis_client = _redis.from_url(redis_url, decode_responses=False)
        redis_client.ping()
    except Exception as e:
        logger.warning("Redis connection failed (%s); matrix locks disabled", e)
        redis_client = None


@contextmanager
def product_lock(product_id):
    """Serialize matrix rebuilds for one product across processes.

    Without Redis this is a no-op; the rebuild still runs in a single
    transaction, so concurrent writers end up last-writer-wins.

    Raises:
        ConflictError when another rebuild holds the lock past the timeout
    """
    if redis_client is None:
        yield
        return

    timeout = current_app.config.get("MATRIX_LOCK_TIMEOUT", 60)
    lock = redis_client.lock(f"matrix:{product_id}", timeout=timeout)
    # Wait up to the lock timeout for a concurrent rebuild to finish
    acquired = lock.acquire(blocking=True, blocking_timeout=timeout)
    if not acquired:
        logger.warning("Matrix lock wait timed out for product %s", product_id)
        raise ConflictError("Product is being updated by another request, try again")
    try:
        yield
    finally:
        try:
            lock.release()
        except _redis.exceptions.LockError:
            logger.warning("Matrix lock for %s expired before release", product_id)
