"""
Ranklist management: attaching events and adding members.
"""

from __future__ import annotations

import logging
from typing import Any

from clubportal.permissions import require_permission
from clubportal.results import ActionContext, action, fail, ok
from clubportal.schemas import (
    ActionResult,
    AttachmentData,
    EventData,
    UserSearchResult,
)
from clubportal.types import Capability
from clubportal.validation import AddUserForm, AttachEventForm, SearchForm, validate

logger = logging.getLogger(__name__)

RANKLIST_NOT_FOUND = "Ranklist not found"
EVENT_NOT_FOUND = "Event not found"
USER_NOT_FOUND = "User not found"
ALREADY_ATTACHED = "Event is already attached to this ranklist"
ALREADY_MEMBER = "User is already a member of this ranklist"
SEARCH_LIMIT = 10


@action()
def get_available_events(ctx: ActionContext, ranklist_id: int) -> ActionResult:
    """Events that are not yet attached to the ranklist, newest first."""
    denied = require_permission(ctx.principal, Capability.MANAGE_TRACKERS)
    if denied:
        return denied

    if ctx.db.get_ranklist(ranklist_id) is None:
        return fail(RANKLIST_NOT_FOUND)
    events = ctx.db.list_available_events(ranklist_id)
    return ok([EventData.model_validate(event) for event in events])


@action(duplicate_message=ALREADY_ATTACHED)
def attach_event_to_ranklist(
    ctx: ActionContext, ranklist_id: int, event_id: Any, weight: Any
) -> ActionResult:
    denied = require_permission(ctx.principal, Capability.MANAGE_TRACKERS)
    if denied:
        return denied

    form = validate(AttachEventForm, {"event_id": event_id, "weight": weight})
    if ctx.db.get_ranklist(ranklist_id) is None:
        return fail(RANKLIST_NOT_FOUND)
    if ctx.db.get_event(form.event_id) is None:
        return fail(EVENT_NOT_FOUND)
    if ctx.db.get_attachment(ranklist_id, form.event_id) is not None:
        return fail(ALREADY_ATTACHED)

    attachment = ctx.db.attach_event(ranklist_id, form.event_id, form.weight)
    logger.info(
        "Attached event=%s to ranklist=%s weight=%.2f",
        form.event_id,
        ranklist_id,
        form.weight,
    )
    return ok(
        AttachmentData.model_validate(attachment),
        "Event attached successfully",
    )


@action()
def search_users(ctx: ActionContext, ranklist_id: int, query: Any) -> ActionResult:
    """Users matching ``query`` by name, email or student id, excluding members."""
    denied = require_permission(ctx.principal, Capability.MANAGE_TRACKERS)
    if denied:
        return denied

    form = validate(SearchForm, {"query": query})
    if ctx.db.get_ranklist(ranklist_id) is None:
        return fail(RANKLIST_NOT_FOUND)
    users = ctx.db.search_users(
        form.query, exclude_ranklist_id=ranklist_id, limit=SEARCH_LIMIT
    )
    return ok([UserSearchResult.model_validate(user) for user in users])


@action(duplicate_message=ALREADY_MEMBER)
def add_user(ctx: ActionContext, ranklist_id: int, user_id: Any) -> ActionResult:
    denied = require_permission(ctx.principal, Capability.MANAGE_TRACKERS)
    if denied:
        return denied

    form = validate(AddUserForm, {"user_id": user_id})
    if ctx.db.get_ranklist(ranklist_id) is None:
        return fail(RANKLIST_NOT_FOUND)
    user = ctx.db.get_user(form.user_id)
    if user is None:
        return fail(USER_NOT_FOUND)
    if ctx.db.is_ranklist_member(ranklist_id, user.id):
        return fail(ALREADY_MEMBER)

    ctx.db.add_ranklist_member(ranklist_id, user.id)
    logger.info("Added user=%s to ranklist=%s", user.id, ranklist_id)
    return ok(UserSearchResult.model_validate(user), "User added successfully")
