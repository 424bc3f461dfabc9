"""
HTTP routes for the portal API.

Routes are thin adapters over the actions: they build the call context from
the request and return the action's envelope unchanged.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query, Request

from clubportal import account_actions, blog_actions, ranklist_actions, uploads
from clubportal.dependencies import SESSION_USER_KEY, get_action_context
from clubportal.results import NOT_AUTHENTICATED, ActionContext, fail, ok
from clubportal.schemas import ActionResult

router = APIRouter()


# Authentication


@router.post("/auth/login", response_model=ActionResult)
def login(
    request: Request,
    payload: dict[str, Any] = Body(...),
    ctx: ActionContext = Depends(get_action_context),
):
    result = account_actions.sign_in(ctx, payload)
    if result.success:
        request.session.clear()
        request.session[SESSION_USER_KEY] = result.data.user_id
    return result


@router.post("/auth/logout", response_model=ActionResult)
def logout(request: Request):
    request.session.clear()
    return ok(message="Signed out")


@router.get("/auth/me", response_model=ActionResult)
def me(ctx: ActionContext = Depends(get_action_context)):
    if ctx.principal is None:
        return fail(NOT_AUTHENTICATED)
    return ok(account_actions.principal_data(ctx.principal))


@router.post("/account/change-password", response_model=ActionResult)
def change_password(
    payload: dict[str, Any] = Body(...),
    ctx: ActionContext = Depends(get_action_context),
):
    return account_actions.change_password(ctx, payload)


# Blog administration


@router.get("/blogs", response_model=ActionResult)
def list_blogs(
    page: int = Query(1),
    page_size: int = Query(10),
    search: Optional[str] = Query(None),
    ctx: ActionContext = Depends(get_action_context),
):
    return blog_actions.get_paginated_blogs(ctx, page, page_size, search)


@router.post("/blogs", response_model=ActionResult)
def create_blog(
    payload: dict[str, Any] = Body(...),
    ctx: ActionContext = Depends(get_action_context),
):
    return blog_actions.create_blog(ctx, payload)


@router.post("/blogs/upload-url", response_model=ActionResult)
def generate_presigned_url(
    payload: dict[str, Any] = Body(...),
    ctx: ActionContext = Depends(get_action_context),
):
    return uploads.generate_presigned_url(
        ctx, payload.get("file_type"), payload.get("file_size")
    )


@router.get("/blogs/{post_id}", response_model=ActionResult)
def get_blog(post_id: int, ctx: ActionContext = Depends(get_action_context)):
    return blog_actions.get_blog(ctx, post_id)


@router.put("/blogs/{post_id}", response_model=ActionResult)
def update_blog(
    post_id: int,
    payload: dict[str, Any] = Body(...),
    ctx: ActionContext = Depends(get_action_context),
):
    return blog_actions.update_blog(ctx, post_id, payload)


@router.delete("/blogs/{post_id}", response_model=ActionResult)
def delete_blog(post_id: int, ctx: ActionContext = Depends(get_action_context)):
    return blog_actions.delete_blog(ctx, post_id)


@router.get("/public/blogs", response_model=ActionResult)
def list_published_blogs(
    page: int = Query(1),
    page_size: int = Query(10),
    ctx: ActionContext = Depends(get_action_context),
):
    return blog_actions.get_published_blogs(ctx, page, page_size)


# Ranklists


@router.get("/ranklists/{ranklist_id}/available-events", response_model=ActionResult)
def available_events(
    ranklist_id: int, ctx: ActionContext = Depends(get_action_context)
):
    return ranklist_actions.get_available_events(ctx, ranklist_id)


@router.post("/ranklists/{ranklist_id}/events", response_model=ActionResult)
def attach_event(
    ranklist_id: int,
    payload: dict[str, Any] = Body(...),
    ctx: ActionContext = Depends(get_action_context),
):
    return ranklist_actions.attach_event_to_ranklist(
        ctx, ranklist_id, payload.get("event_id"), payload.get("weight")
    )


@router.get("/ranklists/{ranklist_id}/users/search", response_model=ActionResult)
def search_users(
    ranklist_id: int,
    query: str = Query(""),
    ctx: ActionContext = Depends(get_action_context),
):
    return ranklist_actions.search_users(ctx, ranklist_id, query)


@router.post("/ranklists/{ranklist_id}/users", response_model=ActionResult)
def add_user(
    ranklist_id: int,
    payload: dict[str, Any] = Body(...),
    ctx: ActionContext = Depends(get_action_context),
):
    return ranklist_actions.add_user(ctx, ranklist_id, payload.get("user_id"))
