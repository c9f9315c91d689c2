"""Decorators bounding how store operations react to transient database failures."""
import logging
from functools import wraps

from sqlalchemy.exc import DBAPIError, OperationalError, TimeoutError as PoolTimeoutError

from app.utils.errors import StoreUnavailableError

logger = logging.getLogger(__name__)


def _is_transient(exc: Exception) -> bool:
    if isinstance(exc, (OperationalError, PoolTimeoutError)):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


def read_operation(func):
    """Retry a read once on a transient failure, then fail closed."""

    @wraps(func)
    def wrapper(*args, **kwargs):
        for attempt in (1, 2):
            try:
                return func(*args, **kwargs)
            except (DBAPIError, PoolTimeoutError) as exc:
                if not _is_transient(exc):
                    raise
                if attempt == 2:
                    logger.error("Store read %s failed after retry", func.__name__, exc_info=exc)
                    raise StoreUnavailableError(func.__name__) from exc
                logger.warning("Transient store error in %s, retrying once: %s", func.__name__, exc.__class__.__name__)

    return wrapper


def write_operation(func):
    """Never retry a write: an unknown outcome is reported as a failure."""

    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (DBAPIError, PoolTimeoutError) as exc:
            if not _is_transient(exc):
                raise
            logger.error("Store write %s failed", func.__name__, exc_info=exc)
            raise StoreUnavailableError(func.__name__) from exc

    return wrapper
