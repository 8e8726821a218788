"""
Database abstraction for Postgres and an in-memory test implementation.
"""

from __future__ import annotations

import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Float,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    delete,
    func,
    select,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from newsboard.tally import VoteRecord


class DuplicateVoteError(Exception):
    """Raised when a voter already has a vote recorded for a poll."""

    def __init__(self, poll_id: str, user_id: str):
        super().__init__(f"User {user_id} already voted in poll {poll_id}")
        self.poll_id = poll_id
        self.user_id = user_id


class DbClient(Protocol):
    """Interface for database access."""

    # Users
    def upsert_user(self, user_id: str, email: str, name: str) -> "UserRecord":
        ...

    def get_user(self, user_id: str) -> Optional["UserRecord"]:
        ...

    def find_user_by_handle(self, handle: str) -> Optional["UserRecord"]:
        ...

    def update_user(
        self,
        user_id: str,
        *,
        name: Optional[str] = None,
        bio: Optional[str] = None,
        profile_pic_url: Optional[str] = None,
    ) -> Optional["UserRecord"]:
        ...

    # Posts
    def create_post(
        self,
        *,
        user_id: str,
        email: str,
        title: str,
        content: str,
        tags: list[str],
        media_urls: list[str],
    ) -> "PostRecord":
        ...

    def get_post(self, post_id: str) -> Optional["PostRecord"]:
        ...

    def list_posts(
        self,
        limit: int = 50,
        offset: int = 0,
        *,
        tag: Optional[str] = None,
        author_id: Optional[str] = None,
    ) -> list["PostRecord"]:
        ...

    def update_post(
        self,
        post_id: str,
        *,
        title: Optional[str] = None,
        content: Optional[str] = None,
        tags: Optional[list[str]] = None,
        media_urls: Optional[list[str]] = None,
    ) -> Optional["PostRecord"]:
        ...

    def count_posts(self, author_id: str) -> int:
        ...

    def delete_post(self, post_id: str) -> bool:
        ...

    # Comments
    def add_comment(
        self, post_id: str, user_id: str, email: str, content: str
    ) -> "CommentRecord":
        ...

    def get_comment(self, comment_id: str) -> Optional["CommentRecord"]:
        ...

    def list_comments(self, post_id: str) -> list["CommentRecord"]:
        ...

    def count_comments(self, post_id: str) -> int:
        ...

    def list_comments_by_user(self, user_id: str) -> list["CommentRecord"]:
        ...

    def delete_comment(self, comment_id: str) -> bool:
        ...

    # Likes
    def add_like(self, post_id: str, user_id: str) -> bool:
        ...

    def remove_like(self, post_id: str, user_id: str) -> bool:
        ...

    def list_likes(self, post_id: str) -> list["LikeRecord"]:
        ...

    def count_likes_received(self, user_id: str) -> int:
        ...

    # Polls and votes
    def ensure_poll(
        self, slug: str, *, title: str, description: str, roster: list[str]
    ) -> "PollRecord":
        ...

    def get_poll(self, poll_id: str) -> Optional["PollRecord"]:
        ...

    def get_poll_by_slug(self, slug: str) -> Optional["PollRecord"]:
        ...

    def set_poll_active(self, poll_id: str, is_active: bool) -> Optional["PollRecord"]:
        ...

    def list_votes(self, poll_id: str) -> list[VoteRecord]:
        ...

    def list_votes_by_user(self, user_id: str) -> list[VoteRecord]:
        ...

    def record_vote(
        self, poll_id: str, user_id: str, email: str, candidate: str
    ) -> VoteRecord:
        ...


def handle_for_email(email: str) -> str:
    return (email or "").split("@", 1)[0].lower()


@dataclass
class UserRecord:
    user_id: str
    email: str
    name: str
    bio: str = ""
    profile_pic_url: Optional[str] = None
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())

    @property
    def handle(self) -> str:
        return handle_for_email(self.email)

    def as_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "email": self.email,
            "handle": self.handle,
            "name": self.name,
            "bio": self.bio,
            "profile_pic_url": self.profile_pic_url,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class PostRecord:
    post_id: str
    user_id: str
    email: str
    title: str
    content: str
    tags: list[str] = field(default_factory=list)
    media_urls: list[str] = field(default_factory=list)
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "post_id": self.post_id,
            "user_id": self.user_id,
            "email": self.email,
            "title": self.title,
            "content": self.content,
            "tags": list(self.tags),
            "media_urls": list(self.media_urls),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class CommentRecord:
    comment_id: str
    post_id: str
    user_id: str
    email: str
    content: str
    created_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "comment_id": self.comment_id,
            "post_id": self.post_id,
            "user_id": self.user_id,
            "email": self.email,
            "content": self.content,
            "created_at": self.created_at,
        }


@dataclass
class LikeRecord:
    like_id: str
    post_id: str
    user_id: str
    created_at: float = field(default_factory=lambda: time.time())


@dataclass
class PollRecord:
    poll_id: str
    slug: str
    title: str
    description: str
    teams: list[str] = field(default_factory=list)
    is_active: bool = True
    created_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "poll_id": self.poll_id,
            "slug": self.slug,
            "title": self.title,
            "description": self.description,
            "teams": list(self.teams),
            "is_active": self.is_active,
            "created_at": self.created_at,
        }


def _newest_first(items: list, key) -> list:
    # Later insertions win ties on equal timestamps.
    return sorted(reversed(items), key=key, reverse=True)


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self.users: Dict[str, UserRecord] = {}
        self.posts: Dict[str, PostRecord] = {}
        self.comments: Dict[str, CommentRecord] = {}
        self.likes: Dict[tuple[str, str], LikeRecord] = {}
        self.polls: Dict[str, PollRecord] = {}
        self.votes: Dict[tuple[str, str], VoteRecord] = {}
        self._lock = threading.Lock()

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.users.clear()
        self.posts.clear()
        self.comments.clear()
        self.likes.clear()
        self.polls.clear()
        self.votes.clear()

    def upsert_user(self, user_id: str, email: str, name: str) -> UserRecord:
        with self._lock:
            existing = self.users.get(user_id)
            if existing:
                return existing
            record = UserRecord(user_id=user_id, email=email, name=name)
            self.users[user_id] = record
            return record

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        return self.users.get(user_id)

    def find_user_by_handle(self, handle: str) -> Optional[UserRecord]:
        wanted = (handle or "").lower()
        for user in self.users.values():
            if user.handle == wanted:
                return user
        return None

    def update_user(
        self,
        user_id: str,
        *,
        name: Optional[str] = None,
        bio: Optional[str] = None,
        profile_pic_url: Optional[str] = None,
    ) -> Optional[UserRecord]:
        user = self.users.get(user_id)
        if not user:
            return None
        if name is not None:
            user.name = name
        if bio is not None:
            user.bio = bio
        if profile_pic_url is not None:
            user.profile_pic_url = profile_pic_url
        user.updated_at = time.time()
        return user

    def create_post(
        self,
        *,
        user_id: str,
        email: str,
        title: str,
        content: str,
        tags: list[str],
        media_urls: list[str],
    ) -> PostRecord:
        record = PostRecord(
            post_id=uuid.uuid4().hex,
            user_id=user_id,
            email=email,
            title=title,
            content=content,
            tags=list(tags),
            media_urls=list(media_urls),
        )
        self.posts[record.post_id] = record
        return record

    def get_post(self, post_id: str) -> Optional[PostRecord]:
        return self.posts.get(post_id)

    def list_posts(
        self,
        limit: int = 50,
        offset: int = 0,
        *,
        tag: Optional[str] = None,
        author_id: Optional[str] = None,
    ) -> list[PostRecord]:
        posts = [
            post
            for post in self.posts.values()
            if (tag is None or tag in post.tags)
            and (author_id is None or post.user_id == author_id)
        ]
        posts = _newest_first(posts, key=lambda post: post.created_at)
        return posts[offset : offset + limit]

    def update_post(
        self,
        post_id: str,
        *,
        title: Optional[str] = None,
        content: Optional[str] = None,
        tags: Optional[list[str]] = None,
        media_urls: Optional[list[str]] = None,
    ) -> Optional[PostRecord]:
        post = self.posts.get(post_id)
        if not post:
            return None
        if title is not None:
            post.title = title
        if content is not None:
            post.content = content
        if tags is not None:
            post.tags = list(tags)
        if media_urls is not None:
            post.media_urls = list(media_urls)
        post.updated_at = time.time()
        return post

    def count_posts(self, author_id: str) -> int:
        return sum(1 for post in self.posts.values() if post.user_id == author_id)

    def delete_post(self, post_id: str) -> bool:
        if self.posts.pop(post_id, None) is None:
            return False
        for comment_id in [
            c.comment_id for c in self.comments.values() if c.post_id == post_id
        ]:
            del self.comments[comment_id]
        for key in [key for key in self.likes if key[0] == post_id]:
            del self.likes[key]
        return True

    def add_comment(
        self, post_id: str, user_id: str, email: str, content: str
    ) -> CommentRecord:
        record = CommentRecord(
            comment_id=uuid.uuid4().hex,
            post_id=post_id,
            user_id=user_id,
            email=email,
            content=content,
        )
        self.comments[record.comment_id] = record
        return record

    def get_comment(self, comment_id: str) -> Optional[CommentRecord]:
        return self.comments.get(comment_id)

    def list_comments(self, post_id: str) -> list[CommentRecord]:
        comments = [c for c in self.comments.values() if c.post_id == post_id]
        return sorted(comments, key=lambda c: c.created_at)

    def count_comments(self, post_id: str) -> int:
        return sum(1 for c in self.comments.values() if c.post_id == post_id)

    def list_comments_by_user(self, user_id: str) -> list[CommentRecord]:
        comments = [c for c in self.comments.values() if c.user_id == user_id]
        return _newest_first(comments, key=lambda c: c.created_at)

    def delete_comment(self, comment_id: str) -> bool:
        return self.comments.pop(comment_id, None) is not None

    def add_like(self, post_id: str, user_id: str) -> bool:
        with self._lock:
            if (post_id, user_id) in self.likes:
                return False
            self.likes[(post_id, user_id)] = LikeRecord(
                like_id=uuid.uuid4().hex, post_id=post_id, user_id=user_id
            )
            return True

    def remove_like(self, post_id: str, user_id: str) -> bool:
        return self.likes.pop((post_id, user_id), None) is not None

    def list_likes(self, post_id: str) -> list[LikeRecord]:
        return [like for key, like in self.likes.items() if key[0] == post_id]

    def count_likes_received(self, user_id: str) -> int:
        authored = {p.post_id for p in self.posts.values() if p.user_id == user_id}
        return sum(1 for post_id, _ in self.likes if post_id in authored)

    def ensure_poll(
        self, slug: str, *, title: str, description: str, roster: list[str]
    ) -> PollRecord:
        with self._lock:
            existing = self.get_poll_by_slug(slug)
            if existing:
                return existing
            record = PollRecord(
                poll_id=uuid.uuid4().hex,
                slug=slug,
                title=title,
                description=description,
                teams=list(roster),
            )
            self.polls[record.poll_id] = record
            return record

    def get_poll(self, poll_id: str) -> Optional[PollRecord]:
        return self.polls.get(poll_id)

    def get_poll_by_slug(self, slug: str) -> Optional[PollRecord]:
        for poll in self.polls.values():
            if poll.slug == slug:
                return poll
        return None

    def set_poll_active(self, poll_id: str, is_active: bool) -> Optional[PollRecord]:
        poll = self.polls.get(poll_id)
        if poll:
            poll.is_active = is_active
        return poll

    def list_votes(self, poll_id: str) -> list[VoteRecord]:
        return [vote for key, vote in self.votes.items() if key[0] == poll_id]

    def list_votes_by_user(self, user_id: str) -> list[VoteRecord]:
        votes = [vote for key, vote in self.votes.items() if key[1] == user_id]
        return _newest_first(votes, key=lambda vote: vote.created_at)

    def record_vote(
        self, poll_id: str, user_id: str, email: str, candidate: str
    ) -> VoteRecord:
        with self._lock:
            if (poll_id, user_id) in self.votes:
                raise DuplicateVoteError(poll_id, user_id)
            record = VoteRecord(
                poll_id=poll_id,
                voter_id=user_id,
                candidate=candidate,
                created_at=time.time(),
                email=email,
            )
            self.votes[(poll_id, user_id)] = record
            return record


class PostgresDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for PostgresDbClient")
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

    def _insert_if_absent(self, table, values: dict, index_elements: list[str]):
        """
        Build an INSERT that silently skips rows hitting a unique constraint.

        Returns None for dialects without ON CONFLICT support.
        """
        dialect = self.engine.dialect.name
        if dialect == "postgresql":
            stmt = postgresql.insert(table)
        elif dialect == "sqlite":
            stmt = sqlite.insert(table)
        else:
            return None
        return stmt.values(**values).on_conflict_do_nothing(
            index_elements=index_elements
        )

    def _execute_if_absent(
        self, session: Session, table, values: dict, index_elements: list[str]
    ) -> bool:
        stmt = self._insert_if_absent(table, values, index_elements)
        if stmt is not None:
            result = session.execute(stmt)
            session.commit()
            return (result.rowcount or 0) > 0
        try:
            session.add(table(**values))
            session.commit()
            return True
        except IntegrityError:
            session.rollback()
            return False

    @staticmethod
    def _to_user_record(row: "UserRow") -> UserRecord:
        return UserRecord(
            user_id=row.user_id,
            email=row.email,
            name=row.name,
            bio=row.bio or "",
            profile_pic_url=row.profile_pic_url,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    @staticmethod
    def _to_post_record(row: "PostRow") -> PostRecord:
        return PostRecord(
            post_id=row.post_id,
            user_id=row.user_id,
            email=row.email,
            title=row.title,
            content=row.content,
            tags=list(row.tags or []),
            media_urls=list(row.media_urls or []),
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    @staticmethod
    def _to_comment_record(row: "CommentRow") -> CommentRecord:
        return CommentRecord(
            comment_id=row.comment_id,
            post_id=row.post_id,
            user_id=row.user_id,
            email=row.email,
            content=row.content,
            created_at=row.created_at,
        )

    @staticmethod
    def _to_poll_record(row: "PollRow") -> PollRecord:
        return PollRecord(
            poll_id=row.poll_id,
            slug=row.slug,
            title=row.title,
            description=row.description,
            teams=list(row.teams or []),
            is_active=bool(row.is_active),
            created_at=row.created_at,
        )

    @staticmethod
    def _to_vote_record(row: "VoteRow") -> VoteRecord:
        return VoteRecord(
            poll_id=row.poll_id,
            voter_id=row.user_id,
            candidate=row.team_name,
            created_at=row.created_at,
            email=row.email,
        )

    def upsert_user(self, user_id: str, email: str, name: str) -> UserRecord:
        now = time.time()
        with self.Session() as session:
            self._execute_if_absent(
                session,
                UserRow,
                {
                    "user_id": user_id,
                    "email": email,
                    "name": name,
                    "bio": "",
                    "profile_pic_url": None,
                    "created_at": now,
                    "updated_at": now,
                },
                ["user_id"],
            )
            row = session.get(UserRow, user_id)
            return self._to_user_record(row)

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            return self._to_user_record(row) if row else None

    def find_user_by_handle(self, handle: str) -> Optional[UserRecord]:
        if not handle:
            return None
        with self.Session() as session:
            stmt = (
                select(UserRow)
                .where(
                    func.lower(UserRow.email).startswith(
                        f"{handle.lower()}@", autoescape=True
                    )
                )
                .order_by(UserRow.created_at.asc())
                .limit(1)
            )
            row = session.execute(stmt).scalar_one_or_none()
            return self._to_user_record(row) if row else None

    def update_user(
        self,
        user_id: str,
        *,
        name: Optional[str] = None,
        bio: Optional[str] = None,
        profile_pic_url: Optional[str] = None,
    ) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            if not row:
                return None
            if name is not None:
                row.name = name
            if bio is not None:
                row.bio = bio
            if profile_pic_url is not None:
                row.profile_pic_url = profile_pic_url
            row.updated_at = time.time()
            session.commit()
            session.refresh(row)
            return self._to_user_record(row)

    def create_post(
        self,
        *,
        user_id: str,
        email: str,
        title: str,
        content: str,
        tags: list[str],
        media_urls: list[str],
    ) -> PostRecord:
        now = time.time()
        with self.Session() as session:
            row = PostRow(
                post_id=uuid.uuid4().hex,
                user_id=user_id,
                email=email,
                title=title,
                content=content,
                tags=list(tags),
                media_urls=list(media_urls),
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return self._to_post_record(row)

    def get_post(self, post_id: str) -> Optional[PostRecord]:
        with self.Session() as session:
            row = session.get(PostRow, post_id)
            return self._to_post_record(row) if row else None

    def list_posts(
        self,
        limit: int = 50,
        offset: int = 0,
        *,
        tag: Optional[str] = None,
        author_id: Optional[str] = None,
    ) -> list[PostRecord]:
        with self.Session() as session:
            stmt = select(PostRow).order_by(PostRow.created_at.desc())
            if author_id is not None:
                stmt = stmt.where(PostRow.user_id == author_id)
            if tag is None:
                rows = session.execute(stmt.offset(offset).limit(limit)).scalars().all()
                return [self._to_post_record(row) for row in rows]
            # Tags live in a JSON column; filter in Python to stay portable
            # across Postgres and SQLite.
            rows = session.execute(stmt).scalars().all()
            matching = [row for row in rows if tag in (row.tags or [])]
            return [
                self._to_post_record(row) for row in matching[offset : offset + limit]
            ]

    def update_post(
        self,
        post_id: str,
        *,
        title: Optional[str] = None,
        content: Optional[str] = None,
        tags: Optional[list[str]] = None,
        media_urls: Optional[list[str]] = None,
    ) -> Optional[PostRecord]:
        with self.Session() as session:
            row = session.get(PostRow, post_id)
            if not row:
                return None
            if title is not None:
                row.title = title
            if content is not None:
                row.content = content
            if tags is not None:
                row.tags = list(tags)
            if media_urls is not None:
                row.media_urls = list(media_urls)
            row.updated_at = time.time()
            session.commit()
            session.refresh(row)
            return self._to_post_record(row)

    def count_posts(self, author_id: str) -> int:
        with self.Session() as session:
            stmt = (
                select(func.count())
                .select_from(PostRow)
                .where(PostRow.user_id == author_id)
            )
            return session.execute(stmt).scalar_one()

    def delete_post(self, post_id: str) -> bool:
        with self.Session() as session:
            row = session.get(PostRow, post_id)
            if not row:
                return False
            session.execute(delete(CommentRow).where(CommentRow.post_id == post_id))
            session.execute(delete(LikeRow).where(LikeRow.post_id == post_id))
            session.delete(row)
            session.commit()
            return True

    def add_comment(
        self, post_id: str, user_id: str, email: str, content: str
    ) -> CommentRecord:
        with self.Session() as session:
            row = CommentRow(
                comment_id=uuid.uuid4().hex,
                post_id=post_id,
                user_id=user_id,
                email=email,
                content=content,
                created_at=time.time(),
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return self._to_comment_record(row)

    def get_comment(self, comment_id: str) -> Optional[CommentRecord]:
        with self.Session() as session:
            row = session.get(CommentRow, comment_id)
            return self._to_comment_record(row) if row else None

    def list_comments(self, post_id: str) -> list[CommentRecord]:
        with self.Session() as session:
            stmt = (
                select(CommentRow)
                .where(CommentRow.post_id == post_id)
                .order_by(CommentRow.created_at.asc())
            )
            rows = session.execute(stmt).scalars().all()
            return [self._to_comment_record(row) for row in rows]

    def count_comments(self, post_id: str) -> int:
        with self.Session() as session:
            stmt = (
                select(func.count())
                .select_from(CommentRow)
                .where(CommentRow.post_id == post_id)
            )
            return session.execute(stmt).scalar_one()

    def list_comments_by_user(self, user_id: str) -> list[CommentRecord]:
        with self.Session() as session:
            stmt = (
                select(CommentRow)
                .where(CommentRow.user_id == user_id)
                .order_by(CommentRow.created_at.desc())
            )
            rows = session.execute(stmt).scalars().all()
            return [self._to_comment_record(row) for row in rows]

    def delete_comment(self, comment_id: str) -> bool:
        with self.Session() as session:
            row = session.get(CommentRow, comment_id)
            if not row:
                return False
            session.delete(row)
            session.commit()
            return True

    def add_like(self, post_id: str, user_id: str) -> bool:
        with self.Session() as session:
            return self._execute_if_absent(
                session,
                LikeRow,
                {
                    "like_id": uuid.uuid4().hex,
                    "post_id": post_id,
                    "user_id": user_id,
                    "created_at": time.time(),
                },
                ["post_id", "user_id"],
            )

    def remove_like(self, post_id: str, user_id: str) -> bool:
        with self.Session() as session:
            result = session.execute(
                delete(LikeRow).where(
                    LikeRow.post_id == post_id, LikeRow.user_id == user_id
                )
            )
            session.commit()
            return (result.rowcount or 0) > 0

    def list_likes(self, post_id: str) -> list[LikeRecord]:
        with self.Session() as session:
            rows = (
                session.execute(select(LikeRow).where(LikeRow.post_id == post_id))
                .scalars()
                .all()
            )
            return [
                LikeRecord(
                    like_id=row.like_id,
                    post_id=row.post_id,
                    user_id=row.user_id,
                    created_at=row.created_at,
                )
                for row in rows
            ]

    def count_likes_received(self, user_id: str) -> int:
        with self.Session() as session:
            stmt = (
                select(func.count())
                .select_from(LikeRow)
                .join(PostRow, PostRow.post_id == LikeRow.post_id)
                .where(PostRow.user_id == user_id)
            )
            return session.execute(stmt).scalar_one()

    def ensure_poll(
        self, slug: str, *, title: str, description: str, roster: list[str]
    ) -> PollRecord:
        with self.Session() as session:
            self._execute_if_absent(
                session,
                PollRow,
                {
                    "poll_id": uuid.uuid4().hex,
                    "slug": slug,
                    "title": title,
                    "description": description,
                    "teams": list(roster),
                    "is_active": True,
                    "created_at": time.time(),
                },
                ["slug"],
            )
            row = session.execute(
                select(PollRow).where(PollRow.slug == slug)
            ).scalar_one()
            return self._to_poll_record(row)

    def get_poll(self, poll_id: str) -> Optional[PollRecord]:
        with self.Session() as session:
            row = session.get(PollRow, poll_id)
            return self._to_poll_record(row) if row else None

    def get_poll_by_slug(self, slug: str) -> Optional[PollRecord]:
        with self.Session() as session:
            row = session.execute(
                select(PollRow).where(PollRow.slug == slug)
            ).scalar_one_or_none()
            return self._to_poll_record(row) if row else None

    def set_poll_active(self, poll_id: str, is_active: bool) -> Optional[PollRecord]:
        with self.Session() as session:
            row = session.get(PollRow, poll_id)
            if not row:
                return None
            row.is_active = is_active
            session.commit()
            session.refresh(row)
            return self._to_poll_record(row)

    def list_votes(self, poll_id: str) -> list[VoteRecord]:
        with self.Session() as session:
            rows = (
                session.execute(select(VoteRow).where(VoteRow.poll_id == poll_id))
                .scalars()
                .all()
            )
            return [self._to_vote_record(row) for row in rows]

    def list_votes_by_user(self, user_id: str) -> list[VoteRecord]:
        with self.Session() as session:
            stmt = (
                select(VoteRow)
                .where(VoteRow.user_id == user_id)
                .order_by(VoteRow.created_at.desc())
            )
            rows = session.execute(stmt).scalars().all()
            return [self._to_vote_record(row) for row in rows]

    def record_vote(
        self, poll_id: str, user_id: str, email: str, candidate: str
    ) -> VoteRecord:
        with self.Session() as session:
            row = VoteRow(
                vote_id=uuid.uuid4().hex,
                poll_id=poll_id,
                user_id=user_id,
                email=email,
                team_name=candidate,
                created_at=time.time(),
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                existing = session.execute(
                    select(VoteRow.vote_id).where(
                        VoteRow.poll_id == poll_id, VoteRow.user_id == user_id
                    )
                ).first()
                if existing is None:
                    raise
                raise DuplicateVoteError(poll_id, user_id) from exc
            session.refresh(row)
            return self._to_vote_record(row)


Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    user_id = Column(String, primary_key=True)
    email = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    bio = Column(Text, nullable=False, default="")
    profile_pic_url = Column(String, nullable=True)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


class PostRow(Base):
    __tablename__ = "posts"

    post_id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    email = Column(String, nullable=False)
    title = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    tags = Column(JSON, nullable=False, default=list)
    media_urls = Column(JSON, nullable=False, default=list)
    created_at = Column(Float, nullable=False, index=True)
    updated_at = Column(Float, nullable=False)


class CommentRow(Base):
    __tablename__ = "comments"

    comment_id = Column(String, primary_key=True)
    post_id = Column(String, nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    email = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(Float, nullable=False)


class LikeRow(Base):
    __tablename__ = "likes"
    __table_args__ = (UniqueConstraint("post_id", "user_id", name="uq_likes_post_user"),)

    like_id = Column(String, primary_key=True)
    post_id = Column(String, nullable=False, index=True)
    user_id = Column(String, nullable=False)
    created_at = Column(Float, nullable=False)


class PollRow(Base):
    __tablename__ = "polls"

    poll_id = Column(String, primary_key=True)
    slug = Column(String, nullable=False, unique=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    teams = Column(JSON, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(Float, nullable=False)


class VoteRow(Base):
    __tablename__ = "votes"
    __table_args__ = (UniqueConstraint("poll_id", "user_id", name="uq_votes_poll_user"),)

    vote_id = Column(String, primary_key=True)
    poll_id = Column(String, nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    email = Column(String, nullable=False)
    team_name = Column(String, nullable=False)
    created_at = Column(Float, nullable=False)
