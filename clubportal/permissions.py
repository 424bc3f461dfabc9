"""
Capability checks against the acting principal.

The gate is evaluated on every call; nothing here is cached.
"""

from __future__ import annotations

import logging
from typing import Optional

from clubportal.schemas import ActionResult
from clubportal.types import Capability, Principal

logger = logging.getLogger(__name__)

PERMISSION_DENIED = "You don't have permission to perform this action"


def check_permission(principal: Optional[Principal], capability: Capability | str) -> bool:
    if principal is None:
        return False
    name = capability.value if isinstance(capability, Capability) else capability
    return name in principal.capabilities


def require_permission(
    principal: Optional[Principal], capability: Capability | str
) -> Optional[ActionResult]:
    """Return a failed envelope if ``principal`` lacks ``capability``."""
    if check_permission(principal, capability):
        return None
    logger.info(
        "Permission denied for user=%s",
        principal.user_id if principal else "anonymous",
    )
    return ActionResult(success=False, error=PERMISSION_DENIED)
