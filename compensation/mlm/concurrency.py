# ==========================================================
# compensation/mlm/concurrency.py
# Optimistic concurrency: version-guarded writes + bounded retry
# ==========================================================

import functools
import logging
import time

from django.conf import settings
from django.db.models import F

from compensation.exceptions import ConcurrencyConflict

logger = logging.getLogger(__name__)


def guarded_update(model, instance, **changes) -> None:
    """
    Write `changes` only if the row still carries the version we read.
    Bumps the version on success, raises ConcurrencyConflict otherwise.
    """
    updated = model.objects.filter(pk=instance.pk, version=instance.version).update(
        version=F("version") + 1, **changes
    )
    if updated == 0:
        raise ConcurrencyConflict(f"{model.__name__} {instance.pk} changed since read (v{instance.version})")

    for field, value in changes.items():
        setattr(instance, field, value)
    instance.version += 1


def retry_on_conflict(func=None, *, attempts=None):
    """
    Re-run `func` on ConcurrencyConflict with exponential backoff.
    The wrapped function must re-read whatever it writes.
    """
    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            conf = settings.COMPENSATION
            max_attempts = attempts or conf["RETRY_ATTEMPTS"]
            base_delay = conf["RETRY_BASE_DELAY"]

            for attempt in range(1, max_attempts + 1):
                try:
                    return fn(*args, **kwargs)
                except ConcurrencyConflict as exc:
                    if attempt == max_attempts:
                        logger.error("%s gave up after %s attempts: %s", fn.__name__, attempt, exc)
                        raise
                    delay = base_delay * (2 ** (attempt - 1))
                    logger.warning("%s conflict (attempt %s), retrying in %.3fs: %s",
                                   fn.__name__, attempt, delay, exc)
                    if delay:
                        time.sleep(delay)
        return wrapper

    if func is not None:
        return decorator(func)
    return decorator
