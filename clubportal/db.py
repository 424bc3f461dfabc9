"""
Database abstraction for SQL stores and an in-memory test implementation.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional, Protocol

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
    func,
    or_,
    select,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from clubportal.errors import DuplicateEntryError
from clubportal.types import EventType

POST_FIELDS = (
    "title",
    "slug",
    "author",
    "content",
    "status",
    "featured_image",
    "published_at",
    "is_featured",
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class DbClient(Protocol):
    """Interface for database access."""

    # Posts
    def find_post_conflict(
        self, title: str, slug: str, exclude_id: Optional[int] = None
    ) -> Optional[int]:
        ...

    def insert_post(self, values: dict) -> "PostRecord":
        ...

    def update_post(self, post_id: int, values: dict) -> Optional["PostRecord"]:
        ...

    def delete_post(self, post_id: int) -> bool:
        ...

    def get_post(self, post_id: int) -> Optional["PostRecord"]:
        ...

    def list_posts(
        self,
        *,
        offset: int,
        limit: int,
        search: Optional[str] = None,
        status: Optional[str] = None,
    ) -> tuple[list["PostRecord"], int]:
        ...

    # Users
    def get_user(self, user_id: int) -> Optional["UserRecord"]:
        ...

    def get_user_by_email(self, email: str) -> Optional["UserRecord"]:
        ...

    def insert_user(
        self,
        *,
        name: str,
        email: str,
        password_hash: str,
        student_id: Optional[str] = None,
        image: Optional[str] = None,
        permissions: Iterable[str] = (),
    ) -> "UserRecord":
        ...

    def update_user_password(self, email: str, password_hash: str) -> bool:
        ...

    def search_users(
        self,
        query: str,
        *,
        exclude_ranklist_id: Optional[int] = None,
        limit: int = 10,
    ) -> list["UserRecord"]:
        ...

    # Events and ranklists
    def insert_event(
        self,
        *,
        title: str,
        starting_at: datetime,
        type: str,
        description: Optional[str] = None,
    ) -> "EventRecord":
        ...

    def get_event(self, event_id: int) -> Optional["EventRecord"]:
        ...

    def insert_ranklist(
        self, *, keyword: str, description: Optional[str] = None
    ) -> "RanklistRecord":
        ...

    def get_ranklist(self, ranklist_id: int) -> Optional["RanklistRecord"]:
        ...

    def list_available_events(self, ranklist_id: int) -> list["EventRecord"]:
        ...

    def get_attachment(
        self, ranklist_id: int, event_id: int
    ) -> Optional["AttachmentRecord"]:
        ...

    def attach_event(
        self, ranklist_id: int, event_id: int, weight: float
    ) -> "AttachmentRecord":
        ...

    def is_ranklist_member(self, ranklist_id: int, user_id: int) -> bool:
        ...

    def add_ranklist_member(self, ranklist_id: int, user_id: int) -> None:
        ...


@dataclass
class PostRecord:
    id: int
    title: str
    slug: str
    author: str
    content: str
    status: str
    featured_image: Optional[str] = None
    published_at: Optional[datetime] = None
    is_featured: bool = False
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)


@dataclass
class UserRecord:
    id: int
    name: str
    email: str
    password_hash: str
    student_id: Optional[str] = None
    image: Optional[str] = None
    permissions: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)


@dataclass
class EventRecord:
    id: int
    title: str
    starting_at: datetime
    type: str
    description: Optional[str] = None


@dataclass
class RanklistRecord:
    id: int
    keyword: str
    description: Optional[str] = None


@dataclass
class AttachmentRecord:
    ranklist_id: int
    event_id: int
    weight: float


def _contains(haystack: Optional[str], needle: str) -> bool:
    return bool(haystack) and needle.lower() in haystack.lower()


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self.posts: Dict[int, PostRecord] = {}
        self.users: Dict[int, UserRecord] = {}
        self.events: Dict[int, EventRecord] = {}
        self.ranklists: Dict[int, RanklistRecord] = {}
        self.attachments: Dict[tuple[int, int], AttachmentRecord] = {}
        self.members: set[tuple[int, int]] = set()
        self._ids = itertools.count(1)

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.posts.clear()
        self.users.clear()
        self.events.clear()
        self.ranklists.clear()
        self.attachments.clear()
        self.members.clear()

    def find_post_conflict(
        self, title: str, slug: str, exclude_id: Optional[int] = None
    ) -> Optional[int]:
        for post in self.posts.values():
            if post.id == exclude_id:
                continue
            if post.title == title or post.slug == slug:
                return post.id
        return None

    def insert_post(self, values: dict) -> PostRecord:
        if self.find_post_conflict(values["title"], values["slug"]) is not None:
            raise DuplicateEntryError("blog_posts.title/slug")
        now = _now()
        record = PostRecord(
            id=next(self._ids),
            created_at=now,
            updated_at=now,
            **{key: values[key] for key in POST_FIELDS if key in values},
        )
        self.posts[record.id] = record
        return replace(record)

    def update_post(self, post_id: int, values: dict) -> Optional[PostRecord]:
        post = self.posts.get(post_id)
        if not post:
            return None
        merged = {key: getattr(post, key) for key in POST_FIELDS}
        merged.update({k: v for k, v in values.items() if k in POST_FIELDS})
        if self.find_post_conflict(merged["title"], merged["slug"], post_id) is not None:
            raise DuplicateEntryError("blog_posts.title/slug")
        for key, value in merged.items():
            setattr(post, key, value)
        post.updated_at = _now()
        return replace(post)

    def delete_post(self, post_id: int) -> bool:
        return self.posts.pop(post_id, None) is not None

    def get_post(self, post_id: int) -> Optional[PostRecord]:
        post = self.posts.get(post_id)
        return replace(post) if post else None

    def list_posts(
        self,
        *,
        offset: int,
        limit: int,
        search: Optional[str] = None,
        status: Optional[str] = None,
    ) -> tuple[list[PostRecord], int]:
        matches = [
            post
            for post in self.posts.values()
            if (status is None or post.status == status)
            and (
                not search
                or _contains(post.title, search)
                or _contains(post.author, search)
                or _contains(post.content, search)
            )
        ]
        matches.sort(key=lambda post: (post.created_at, post.id), reverse=True)
        page = matches[offset : offset + limit]
        return [replace(post) for post in page], len(matches)

    def get_user(self, user_id: int) -> Optional[UserRecord]:
        user = self.users.get(user_id)
        return replace(user) if user else None

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        for user in self.users.values():
            if user.email == email:
                return replace(user)
        return None

    def insert_user(
        self,
        *,
        name: str,
        email: str,
        password_hash: str,
        student_id: Optional[str] = None,
        image: Optional[str] = None,
        permissions: Iterable[str] = (),
    ) -> UserRecord:
        if self.get_user_by_email(email):
            raise DuplicateEntryError("users.email")
        record = UserRecord(
            id=next(self._ids),
            name=name,
            email=email,
            password_hash=password_hash,
            student_id=student_id,
            image=image,
            permissions=list(permissions),
        )
        self.users[record.id] = record
        return replace(record)

    def update_user_password(self, email: str, password_hash: str) -> bool:
        for user in self.users.values():
            if user.email == email:
                user.password_hash = password_hash
                user.updated_at = _now()
                return True
        return False

    def search_users(
        self,
        query: str,
        *,
        exclude_ranklist_id: Optional[int] = None,
        limit: int = 10,
    ) -> list[UserRecord]:
        results: list[UserRecord] = []
        for user in sorted(self.users.values(), key=lambda u: u.name.lower()):
            if exclude_ranklist_id is not None and (
                (exclude_ranklist_id, user.id) in self.members
            ):
                continue
            if (
                _contains(user.name, query)
                or _contains(user.email, query)
                or _contains(user.student_id, query)
            ):
                results.append(replace(user))
            if len(results) >= limit:
                break
        return results

    def insert_event(
        self,
        *,
        title: str,
        starting_at: datetime,
        type: str,
        description: Optional[str] = None,
    ) -> EventRecord:
        record = EventRecord(
            id=next(self._ids),
            title=title,
            starting_at=starting_at,
            type=EventType(type).value,
            description=description,
        )
        self.events[record.id] = record
        return replace(record)

    def get_event(self, event_id: int) -> Optional[EventRecord]:
        event = self.events.get(event_id)
        return replace(event) if event else None

    def insert_ranklist(
        self, *, keyword: str, description: Optional[str] = None
    ) -> RanklistRecord:
        record = RanklistRecord(
            id=next(self._ids), keyword=keyword, description=description
        )
        self.ranklists[record.id] = record
        return replace(record)

    def get_ranklist(self, ranklist_id: int) -> Optional[RanklistRecord]:
        ranklist = self.ranklists.get(ranklist_id)
        return replace(ranklist) if ranklist else None

    def list_available_events(self, ranklist_id: int) -> list[EventRecord]:
        events = [
            replace(event)
            for event in self.events.values()
            if (ranklist_id, event.id) not in self.attachments
        ]
        events.sort(key=lambda event: event.starting_at, reverse=True)
        return events

    def get_attachment(
        self, ranklist_id: int, event_id: int
    ) -> Optional[AttachmentRecord]:
        attachment = self.attachments.get((ranklist_id, event_id))
        return replace(attachment) if attachment else None

    def attach_event(
        self, ranklist_id: int, event_id: int, weight: float
    ) -> AttachmentRecord:
        key = (ranklist_id, event_id)
        if key in self.attachments:
            raise DuplicateEntryError("ranklist_events")
        record = AttachmentRecord(
            ranklist_id=ranklist_id, event_id=event_id, weight=weight
        )
        self.attachments[key] = record
        return replace(record)

    def is_ranklist_member(self, ranklist_id: int, user_id: int) -> bool:
        return (ranklist_id, user_id) in self.members

    def add_ranklist_member(self, ranklist_id: int, user_id: int) -> None:
        key = (ranklist_id, user_id)
        if key in self.members:
            raise DuplicateEntryError("ranklist_users")
        self.members.add(key)


def _like_pattern(term: str) -> str:
    """Substring pattern matching ``term`` literally (escape char is a backslash)."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _is_unique_violation(exc: IntegrityError) -> bool:
    text = str(exc.orig).lower()
    return "unique" in text or "duplicate" in text


class SqlDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlDbClient")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def _commit(self, session: Session) -> None:
        try:
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            if _is_unique_violation(exc):
                raise DuplicateEntryError(str(exc.orig)) from exc
            raise

    @staticmethod
    def _to_post(row: "PostRow") -> PostRecord:
        return PostRecord(
            id=row.id,
            title=row.title,
            slug=row.slug,
            author=row.author,
            content=row.content,
            status=row.status,
            featured_image=row.featured_image,
            published_at=row.published_at,
            is_featured=bool(row.is_featured),
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    @staticmethod
    def _to_user(row: "UserRow") -> UserRecord:
        return UserRecord(
            id=row.id,
            name=row.name,
            email=row.email,
            password_hash=row.password_hash,
            student_id=row.student_id,
            image=row.image,
            permissions=list(row.permissions or []),
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    @staticmethod
    def _to_event(row: "EventRow") -> EventRecord:
        return EventRecord(
            id=row.id,
            title=row.title,
            starting_at=row.starting_at,
            type=row.type,
            description=row.description,
        )

    def find_post_conflict(
        self, title: str, slug: str, exclude_id: Optional[int] = None
    ) -> Optional[int]:
        with self.Session() as session:
            stmt = select(PostRow.id).where(
                or_(PostRow.title == title, PostRow.slug == slug)
            )
            if exclude_id is not None:
                stmt = stmt.where(PostRow.id != exclude_id)
            return session.execute(stmt.limit(1)).scalar_one_or_none()

    def insert_post(self, values: dict) -> PostRecord:
        now = _now()
        with self.Session() as session:
            row = PostRow(
                created_at=now,
                updated_at=now,
                **{key: values[key] for key in POST_FIELDS if key in values},
            )
            session.add(row)
            self._commit(session)
            session.refresh(row)
            return self._to_post(row)

    def update_post(self, post_id: int, values: dict) -> Optional[PostRecord]:
        with self.Session() as session:
            row = session.get(PostRow, post_id)
            if not row:
                return None
            for key, value in values.items():
                if key in POST_FIELDS:
                    setattr(row, key, value)
            row.updated_at = _now()
            self._commit(session)
            session.refresh(row)
            return self._to_post(row)

    def delete_post(self, post_id: int) -> bool:
        with self.Session() as session:
            row = session.get(PostRow, post_id)
            if not row:
                return False
            session.delete(row)
            session.commit()
            return True

    def get_post(self, post_id: int) -> Optional[PostRecord]:
        with self.Session() as session:
            row = session.get(PostRow, post_id)
            return self._to_post(row) if row else None

    def list_posts(
        self,
        *,
        offset: int,
        limit: int,
        search: Optional[str] = None,
        status: Optional[str] = None,
    ) -> tuple[list[PostRecord], int]:
        conditions: list[Any] = []
        if search:
            pattern = _like_pattern(search)
            conditions.append(
                or_(
                    PostRow.title.ilike(pattern, escape="\\"),
                    PostRow.author.ilike(pattern, escape="\\"),
                    PostRow.content.ilike(pattern, escape="\\"),
                )
            )
        if status is not None:
            conditions.append(PostRow.status == status)
        with self.Session() as session:
            stmt = (
                select(PostRow)
                .where(*conditions)
                .order_by(PostRow.created_at.desc(), PostRow.id.desc())
                .limit(limit)
                .offset(offset)
            )
            rows = session.execute(stmt).scalars().all()
            total = session.execute(
                select(func.count()).select_from(PostRow).where(*conditions)
            ).scalar_one()
            return [self._to_post(row) for row in rows], int(total)

    def get_user(self, user_id: int) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            return self._to_user(row) if row else None

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.execute(
                select(UserRow).where(UserRow.email == email).limit(1)
            ).scalar_one_or_none()
            return self._to_user(row) if row else None

    def insert_user(
        self,
        *,
        name: str,
        email: str,
        password_hash: str,
        student_id: Optional[str] = None,
        image: Optional[str] = None,
        permissions: Iterable[str] = (),
    ) -> UserRecord:
        now = _now()
        with self.Session() as session:
            row = UserRow(
                name=name,
                email=email,
                password_hash=password_hash,
                student_id=student_id,
                image=image,
                permissions=list(permissions),
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            self._commit(session)
            session.refresh(row)
            return self._to_user(row)

    def update_user_password(self, email: str, password_hash: str) -> bool:
        with self.Session() as session:
            row = session.execute(
                select(UserRow).where(UserRow.email == email).limit(1)
            ).scalar_one_or_none()
            if not row:
                return False
            row.password_hash = password_hash
            row.updated_at = _now()
            session.commit()
            return True

    def search_users(
        self,
        query: str,
        *,
        exclude_ranklist_id: Optional[int] = None,
        limit: int = 10,
    ) -> list[UserRecord]:
        pattern = _like_pattern(query)
        stmt = select(UserRow).where(
            or_(
                UserRow.name.ilike(pattern, escape="\\"),
                UserRow.email.ilike(pattern, escape="\\"),
                UserRow.student_id.ilike(pattern, escape="\\"),
            )
        )
        if exclude_ranklist_id is not None:
            members = select(RanklistMemberRow.user_id).where(
                RanklistMemberRow.ranklist_id == exclude_ranklist_id
            )
            stmt = stmt.where(UserRow.id.not_in(members))
        stmt = stmt.order_by(func.lower(UserRow.name)).limit(limit)
        with self.Session() as session:
            return [self._to_user(row) for row in session.execute(stmt).scalars()]

    def insert_event(
        self,
        *,
        title: str,
        starting_at: datetime,
        type: str,
        description: Optional[str] = None,
    ) -> EventRecord:
        with self.Session() as session:
            row = EventRow(
                title=title,
                starting_at=starting_at,
                type=EventType(type).value,
                description=description,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return self._to_event(row)

    def get_event(self, event_id: int) -> Optional[EventRecord]:
        with self.Session() as session:
            row = session.get(EventRow, event_id)
            return self._to_event(row) if row else None

    def insert_ranklist(
        self, *, keyword: str, description: Optional[str] = None
    ) -> RanklistRecord:
        with self.Session() as session:
            row = RanklistRow(keyword=keyword, description=description)
            session.add(row)
            self._commit(session)
            session.refresh(row)
            return RanklistRecord(
                id=row.id, keyword=row.keyword, description=row.description
            )

    def get_ranklist(self, ranklist_id: int) -> Optional[RanklistRecord]:
        with self.Session() as session:
            row = session.get(RanklistRow, ranklist_id)
            if not row:
                return None
            return RanklistRecord(
                id=row.id, keyword=row.keyword, description=row.description
            )

    def list_available_events(self, ranklist_id: int) -> list[EventRecord]:
        attached = select(RanklistEventRow.event_id).where(
            RanklistEventRow.ranklist_id == ranklist_id
        )
        stmt = (
            select(EventRow)
            .where(EventRow.id.not_in(attached))
            .order_by(EventRow.starting_at.desc())
        )
        with self.Session() as session:
            return [self._to_event(row) for row in session.execute(stmt).scalars()]

    def get_attachment(
        self, ranklist_id: int, event_id: int
    ) -> Optional[AttachmentRecord]:
        with self.Session() as session:
            row = session.get(RanklistEventRow, (ranklist_id, event_id))
            if not row:
                return None
            return AttachmentRecord(
                ranklist_id=row.ranklist_id, event_id=row.event_id, weight=row.weight
            )

    def attach_event(
        self, ranklist_id: int, event_id: int, weight: float
    ) -> AttachmentRecord:
        with self.Session() as session:
            session.add(
                RanklistEventRow(
                    ranklist_id=ranklist_id, event_id=event_id, weight=weight
                )
            )
            self._commit(session)
            return AttachmentRecord(
                ranklist_id=ranklist_id, event_id=event_id, weight=weight
            )

    def is_ranklist_member(self, ranklist_id: int, user_id: int) -> bool:
        with self.Session() as session:
            return session.get(RanklistMemberRow, (ranklist_id, user_id)) is not None

    def add_ranklist_member(self, ranklist_id: int, user_id: int) -> None:
        with self.Session() as session:
            session.add(
                RanklistMemberRow(
                    ranklist_id=ranklist_id, user_id=user_id, created_at=_now()
                )
            )
            self._commit(session)


Base = declarative_base()


class PostRow(Base):
    __tablename__ = "blog_posts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False, unique=True)
    slug = Column(String(255), nullable=False, unique=True)
    author = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default="draft", index=True)
    featured_image = Column(String(1024), nullable=True)
    published_at = Column(DateTime(timezone=True), nullable=True)
    is_featured = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class UserRow(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=False)
    student_id = Column(String(64), nullable=True, index=True)
    image = Column(String(1024), nullable=True)
    permissions = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class EventRow(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    starting_at = Column(DateTime(timezone=True), nullable=False)
    type = Column(String(20), nullable=False, default="other")


class RanklistRow(Base):
    __tablename__ = "ranklists"

    id = Column(Integer, primary_key=True, autoincrement=True)
    keyword = Column(String(255), nullable=False, unique=True)
    description = Column(Text, nullable=True)


class RanklistEventRow(Base):
    __tablename__ = "ranklist_events"

    ranklist_id = Column(
        Integer, ForeignKey("ranklists.id", ondelete="CASCADE"), primary_key=True
    )
    event_id = Column(
        Integer, ForeignKey("events.id", ondelete="CASCADE"), primary_key=True
    )
    weight = Column(Float, nullable=False, default=1.0)


class RanklistMemberRow(Base):
    __tablename__ = "ranklist_users"

    ranklist_id = Column(
        Integer, ForeignKey("ranklists.id", ondelete="CASCADE"), primary_key=True
    )
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    created_at = Column(DateTime(timezone=True), nullable=False)
