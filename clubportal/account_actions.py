"""
Account self-service actions.
"""

from __future__ import annotations

import logging
from typing import Any

from clubportal.auth import authenticate, hash_password
from clubportal.results import NOT_AUTHENTICATED, ActionContext, action, fail, ok
from clubportal.schemas import ActionResult, PrincipalData
from clubportal.types import Principal
from clubportal.validation import ChangePasswordForm, LoginForm, validate

logger = logging.getLogger(__name__)

CHANGE_PASSWORD_FAILED = "Failed to change password. Please try again."
INVALID_CREDENTIALS = "Invalid email or password"


@action(error_message=CHANGE_PASSWORD_FAILED)
def change_password(ctx: ActionContext, values: Any) -> ActionResult:
    """Change the password of the calling user.

    The target account is always the principal's own; the payload cannot
    name another user.
    """
    if ctx.principal is None or not ctx.principal.email:
        return fail(NOT_AUTHENTICATED)

    form = validate(ChangePasswordForm, values)
    password_hash = hash_password(form.new_password, ctx.settings.bcrypt_rounds)
    if not ctx.db.update_user_password(ctx.principal.email, password_hash):
        logger.warning("Password change for missing user id=%s", ctx.principal.user_id)
        return fail(CHANGE_PASSWORD_FAILED)

    logger.info("Password changed for user id=%s", ctx.principal.user_id)
    return ok(message="Password changed successfully")


@action()
def sign_in(ctx: ActionContext, values: Any) -> ActionResult:
    """Check credentials; the caller stores the returned user id in its session."""
    form = validate(LoginForm, values)
    principal = authenticate(ctx.db, form.email, form.password, ctx.settings)
    if principal is None:
        return fail(INVALID_CREDENTIALS)
    logger.info("User id=%s signed in", principal.user_id)
    return ok(principal_data(principal), "Signed in successfully")


def principal_data(principal: Principal) -> PrincipalData:
    return PrincipalData(
        user_id=principal.user_id,
        email=principal.email,
        name=principal.name,
        capabilities=sorted(principal.capabilities),
    )
