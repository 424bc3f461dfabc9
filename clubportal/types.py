"""
Shared enums and the acting principal.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class PostStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class EventType(str, Enum):
    CONTEST = "contest"
    CLASS = "class"
    OTHER = "other"


class Capability(str, Enum):
    """Named permissions checked against the acting principal."""

    MANAGE_BLOG_POSTS = "manage_blog_posts"
    MANAGE_TRACKERS = "manage_trackers"


@dataclass(frozen=True)
class Principal:
    """The authenticated caller, passed explicitly into every action."""

    user_id: int
    email: str
    name: str = ""
    capabilities: frozenset[str] = field(default_factory=frozenset)
