"""
Schema validation for incoming form payloads.

Forms are validated before anything touches the store. Callers get either a
typed model back or a ``ValidationFailed`` carrying the first violation.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from datetime import datetime
from typing import Any, Optional, TypeVar

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from pydantic_core import PydanticCustomError

from clubportal.errors import ValidationFailed
from clubportal.types import PostStatus

SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
URL_PATTERN = re.compile(r"^https?://\S+$")
MIN_PASSWORD_LENGTH = 8
# bcrypt only looks at the first 72 bytes.
MAX_PASSWORD_BYTES = 72
MIN_SEARCH_LENGTH = 2

M = TypeVar("M", bound=BaseModel)


def _empty_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _require_text(value: str, label: str, max_length: Optional[int] = None) -> str:
    if not value or not value.strip():
        raise PydanticCustomError("required", f"{label} is required")
    if max_length is not None and len(value) > max_length:
        raise PydanticCustomError(
            "too_long", f"{label} must be {max_length} characters or fewer"
        )
    return value


class BlogForm(BaseModel):
    title: str = Field(title="Title")
    slug: str = Field(title="Slug")
    author: str = Field(title="Author")
    content: str = Field(title="Content")
    status: PostStatus = Field(default=PostStatus.DRAFT, title="Status")
    featured_image: Optional[str] = Field(default=None, title="Featured image")
    published_at: Optional[datetime] = Field(default=None, title="Publish date")
    is_featured: bool = False

    @field_validator("title")
    @classmethod
    def _title(cls, value: str) -> str:
        return _require_text(value, "Title", 255).strip()

    @field_validator("slug")
    @classmethod
    def _slug(cls, value: str) -> str:
        value = _require_text(value, "Slug", 255)
        if not SLUG_PATTERN.match(value):
            raise PydanticCustomError(
                "slug",
                "Slug can only contain lowercase letters, numbers, and hyphens",
            )
        return value

    @field_validator("author")
    @classmethod
    def _author(cls, value: str) -> str:
        return _require_text(value, "Author", 255).strip()

    @field_validator("content")
    @classmethod
    def _content(cls, value: str) -> str:
        return _require_text(value, "Content")

    @field_validator("featured_image", mode="before")
    @classmethod
    def _featured_image(cls, value: Any) -> Any:
        value = _empty_to_none(value)
        if value is not None and not (
            isinstance(value, str) and URL_PATTERN.match(value)
        ):
            raise PydanticCustomError(
                "url", "Featured image must be a valid URL"
            )
        return value

    @field_validator("published_at", mode="before")
    @classmethod
    def _published_at(cls, value: Any) -> Any:
        return _empty_to_none(value)


class ChangePasswordForm(BaseModel):
    new_password: str = Field(title="New password")
    confirm_password: str = Field(title="Password confirmation")

    @field_validator("new_password")
    @classmethod
    def _strength(cls, value: str) -> str:
        if len(value) < MIN_PASSWORD_LENGTH:
            raise PydanticCustomError(
                "too_short",
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
            )
        if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise PydanticCustomError("too_long", "Password is too long")
        return value

    @model_validator(mode="after")
    def _matches(self) -> "ChangePasswordForm":
        if self.new_password != self.confirm_password:
            raise PydanticCustomError("mismatch", "Passwords do not match")
        return self


class AttachEventForm(BaseModel):
    event_id: int = Field(title="Event")
    weight: float = Field(default=1.0, title="Weight")

    @field_validator("weight", mode="before")
    @classmethod
    def _weight(cls, value: Any) -> float:
        try:
            weight = float(value)
        except (TypeError, ValueError):
            weight = math.nan
        if isinstance(value, bool) or not math.isfinite(weight) or not 0.0 <= weight <= 1.0:
            raise PydanticCustomError(
                "weight", "Weight must be between 0.0 and 1.0"
            )
        return weight


class UploadRequest(BaseModel):
    file_type: str = Field(title="File type")
    file_size: int = Field(title="File size", ge=0)


class AddUserForm(BaseModel):
    user_id: int = Field(title="User")


class SearchForm(BaseModel):
    query: str = Field(title="Search query")

    @field_validator("query")
    @classmethod
    def _query(cls, value: str) -> str:
        value = value.strip()
        if len(value) < MIN_SEARCH_LENGTH:
            raise PydanticCustomError(
                "too_short",
                f"Search query must be at least {MIN_SEARCH_LENGTH} characters",
            )
        return value


class PageQuery(BaseModel):
    page: int = Field(default=1, ge=1, title="Page")
    page_size: int = Field(default=10, ge=1, le=100, title="Page size")
    search: Optional[str] = None

    @field_validator("search", mode="before")
    @classmethod
    def _search(cls, value: Any) -> Any:
        value = _empty_to_none(value)
        return value.strip() if isinstance(value, str) else value


class LoginForm(BaseModel):
    email: str = Field(title="Email")
    password: str = Field(title="Password")

    @field_validator("email")
    @classmethod
    def _email(cls, value: str) -> str:
        return _require_text(value, "Email").strip().lower()


def _first_message(model: type[BaseModel], exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Please check the form for errors."
    first = errors[0]
    loc = first.get("loc") or ()
    if first.get("type") == "missing" and loc:
        name = str(loc[0])
        field = model.model_fields.get(name)
        label = (field.title if field else None) or name.replace("_", " ").capitalize()
        return f"{label} is required"
    return first.get("msg") or "Please check the form for errors."


def validate(model: type[M], payload: Any) -> M:
    """Return ``payload`` as ``model`` or raise with the first violation."""
    if isinstance(payload, model):
        return payload
    if not isinstance(payload, Mapping):
        raise ValidationFailed("Invalid input")
    try:
        return model.model_validate(dict(payload))
    except ValidationError as exc:
        raise ValidationFailed(_first_message(model, exc)) from None
