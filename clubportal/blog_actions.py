"""
Blog post administration actions.

Each action checks the caller's capability first, then validates, then
touches the store, and finally revalidates the cached pages that show
posts. Failures come back as envelopes, never as exceptions.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Optional

from clubportal.permissions import require_permission
from clubportal.results import ActionContext, action, fail, ok
from clubportal.schemas import (
    ActionResult,
    BlogPostData,
    PaginatedBlogsData,
    PaginationData,
)
from clubportal.types import Capability, PostStatus
from clubportal.validation import BlogForm, PageQuery, validate

logger = logging.getLogger(__name__)

DUPLICATE_BLOG = "A blog with this title or slug already exists"
BLOG_NOT_FOUND = "Blog post not found"

ADMIN_BLOGS_PATH = "/admin/blogs"
PUBLIC_BLOGS_PATH = "/blogs"


def admin_blog_path(post_id: int) -> str:
    return f"{ADMIN_BLOGS_PATH}/{post_id}/edit"


def _to_values(form: BlogForm) -> dict:
    values = form.model_dump()
    values["status"] = form.status.value
    return values


def _revalidate(ctx: ActionContext, *paths: str) -> None:
    # Runs after the write is committed, so failures are logged and dropped.
    for path in paths:
        try:
            ctx.cache.revalidate(path)
        except Exception:
            logger.exception("Could not revalidate %s", path)


def _page_variant(query: PageQuery) -> str:
    return f"{query.page}:{query.page_size}:{query.search or ''}"


def _paginate(
    ctx: ActionContext, query: PageQuery, status: Optional[str] = None
) -> PaginatedBlogsData:
    offset = (query.page - 1) * query.page_size
    posts, total = ctx.db.list_posts(
        offset=offset, limit=query.page_size, search=query.search, status=status
    )
    return PaginatedBlogsData(
        blogs=[BlogPostData.model_validate(post) for post in posts],
        pagination=PaginationData(
            current_page=query.page,
            total_pages=math.ceil(total / query.page_size),
            total_count=total,
            page_size=query.page_size,
        ),
    )


@action(duplicate_message=DUPLICATE_BLOG)
def create_blog(ctx: ActionContext, values: Any) -> ActionResult:
    denied = require_permission(ctx.principal, Capability.MANAGE_BLOG_POSTS)
    if denied:
        return denied

    form = validate(BlogForm, values)
    if ctx.db.find_post_conflict(form.title, form.slug) is not None:
        logger.info("Rejected duplicate blog slug=%s", form.slug)
        return fail(DUPLICATE_BLOG)

    post = ctx.db.insert_post(_to_values(form))
    _revalidate(ctx, ADMIN_BLOGS_PATH, PUBLIC_BLOGS_PATH)
    logger.info("Created blog post id=%s", post.id)
    return ok(BlogPostData.model_validate(post), "Blog post created successfully")


@action(duplicate_message=DUPLICATE_BLOG)
def update_blog(ctx: ActionContext, post_id: int, values: Any) -> ActionResult:
    denied = require_permission(ctx.principal, Capability.MANAGE_BLOG_POSTS)
    if denied:
        return denied

    form = validate(BlogForm, values)
    if ctx.db.get_post(post_id) is None:
        return fail(BLOG_NOT_FOUND)
    if ctx.db.find_post_conflict(form.title, form.slug, exclude_id=post_id) is not None:
        logger.info("Rejected duplicate blog slug=%s for id=%s", form.slug, post_id)
        return fail(DUPLICATE_BLOG)

    post = ctx.db.update_post(post_id, _to_values(form))
    if post is None:
        # Deleted between the existence check and the update.
        return fail(BLOG_NOT_FOUND)
    _revalidate(ctx, ADMIN_BLOGS_PATH, admin_blog_path(post_id), PUBLIC_BLOGS_PATH)
    return ok(BlogPostData.model_validate(post), "Blog post updated successfully")


@action()
def delete_blog(ctx: ActionContext, post_id: int) -> ActionResult:
    denied = require_permission(ctx.principal, Capability.MANAGE_BLOG_POSTS)
    if denied:
        return denied

    post = ctx.db.get_post(post_id)
    if post is None:
        return fail(BLOG_NOT_FOUND)

    ctx.db.delete_post(post_id)
    _revalidate(ctx, ADMIN_BLOGS_PATH, admin_blog_path(post_id), PUBLIC_BLOGS_PATH)
    logger.info("Deleted blog post id=%s", post_id)
    return ok(message=f'Blog post "{post.title}" deleted successfully')


@action()
def get_blog(ctx: ActionContext, post_id: int) -> ActionResult:
    denied = require_permission(ctx.principal, Capability.MANAGE_BLOG_POSTS)
    if denied:
        return denied

    path = admin_blog_path(post_id)
    cached = ctx.cache.get(path)
    if cached is not None:
        return ok(BlogPostData.model_validate(cached))

    post = ctx.db.get_post(post_id)
    if post is None:
        return fail(BLOG_NOT_FOUND)
    data = BlogPostData.model_validate(post)
    ctx.cache.set(path, "", data.model_dump(mode="json"))
    return ok(data)


@action()
def get_paginated_blogs(
    ctx: ActionContext,
    page: Any = 1,
    page_size: Any = 10,
    search: Optional[str] = None,
) -> ActionResult:
    denied = require_permission(ctx.principal, Capability.MANAGE_BLOG_POSTS)
    if denied:
        return denied

    query = validate(PageQuery, {"page": page, "page_size": page_size, "search": search})
    variant = _page_variant(query)
    cached = ctx.cache.get(ADMIN_BLOGS_PATH, variant)
    if cached is not None:
        return ok(PaginatedBlogsData.model_validate(cached))

    data = _paginate(ctx, query)
    ctx.cache.set(ADMIN_BLOGS_PATH, variant, data.model_dump(mode="json"))
    return ok(data)


@action()
def get_published_blogs(
    ctx: ActionContext, page: Any = 1, page_size: Any = 10
) -> ActionResult:
    """Public listing; no capability required."""
    query = validate(PageQuery, {"page": page, "page_size": page_size})
    variant = _page_variant(query)
    cached = ctx.cache.get(PUBLIC_BLOGS_PATH, variant)
    if cached is not None:
        return ok(PaginatedBlogsData.model_validate(cached))

    data = _paginate(ctx, query, status=PostStatus.PUBLISHED.value)
    ctx.cache.set(PUBLIC_BLOGS_PATH, variant, data.model_dump(mode="json"))
    return ok(data)
