"""
Action boundary: the explicit call context and the envelope helpers.

Every action is wrapped with :func:`action`, which converts any exception
raised below it into a failed :class:`ActionResult`.
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from clubportal.cache import PageCache
from clubportal.config import Settings
from clubportal.db import DbClient
from clubportal.errors import DuplicateEntryError, ValidationFailed
from clubportal.schemas import ActionResult
from clubportal.storage import StorageClient
from clubportal.types import Principal

logger = logging.getLogger(__name__)

GENERIC_ERROR = "Something went wrong. Please try again."
NOT_AUTHENTICATED = "Not authenticated"


@dataclass
class ActionContext:
    """Everything an action may touch, passed in explicitly per call."""

    principal: Optional[Principal]
    db: DbClient
    cache: PageCache
    storage: StorageClient
    settings: Settings


def ok(data: Any = None, message: Optional[str] = None) -> ActionResult:
    return ActionResult(success=True, data=data, message=message)


def fail(error: str) -> ActionResult:
    return ActionResult(success=False, error=error)


def action(
    *,
    duplicate_message: Optional[str] = None,
    error_message: str = GENERIC_ERROR,
) -> Callable[[Callable[..., ActionResult]], Callable[..., ActionResult]]:
    """Wrap an action so that nothing propagates past it.

    Validation failures surface their first message verbatim, store-level
    duplicates collapse onto ``duplicate_message`` and anything else is
    logged and reported as ``error_message``.
    """

    def decorator(func: Callable[..., ActionResult]) -> Callable[..., ActionResult]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> ActionResult:
            try:
                return func(*args, **kwargs)
            except ValidationFailed as exc:
                return fail(exc.message)
            except DuplicateEntryError:
                if duplicate_message:
                    logger.warning("%s: duplicate entry", func.__name__)
                    return fail(duplicate_message)
                logger.exception("%s: unexpected duplicate entry", func.__name__)
                return fail(error_message)
            except Exception:
                logger.exception("%s failed", func.__name__)
                return fail(error_message)

        return wrapper

    return decorator
