"""
Pydantic schemas for the portal API responses.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict

from clubportal.types import EventType


class ActionResult(BaseModel):
    """Uniform envelope returned by every action.

    ``success`` and ``error`` are mutually exclusive in practice; the shape of
    ``data`` depends on the call site.
    """

    success: bool
    data: Any = None
    error: Optional[str] = None
    message: Optional[str] = None


class BlogPostData(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    slug: str
    author: str
    content: str
    status: str
    featured_image: Optional[str] = None
    published_at: Optional[datetime] = None
    is_featured: bool = False
    created_at: datetime
    updated_at: datetime


class PaginationData(BaseModel):
    current_page: int
    total_pages: int
    total_count: int
    page_size: int


class PaginatedBlogsData(BaseModel):
    blogs: list[BlogPostData]
    pagination: PaginationData


class UploadUrlData(BaseModel):
    upload_url: str
    public_url: str


class EventData(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: Optional[str] = None
    starting_at: datetime
    type: EventType


class AttachmentData(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    ranklist_id: int
    event_id: int
    weight: float


class UserSearchResult(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    student_id: Optional[str] = None
    image: Optional[str] = None


class PrincipalData(BaseModel):
    user_id: int
    email: str
    name: str
    capabilities: list[str]
