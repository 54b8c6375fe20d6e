"""
Entity records for the vblog collections.

Each entity maps to one document in its collection. Documents keep the
field names of the durable schema (``likedBy``, ``chatID``, ``from``) so
exports and imports stay compatible with existing data; the dataclasses
use Python names.

Invariants:
    - ``id`` is assigned once, at creation, and never reassigned
    - Decoding fills missing optional fields with their defaults
    - Dates are ISO-8601 strings in UTC
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Union


def utc_now_iso() -> str:
    """Current instant as an ISO-8601 UTC string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class EntityKind(str, Enum):
    """Entity collections persisted by the core."""

    USERS = "users"
    POSTS = "posts"
    CHATS = "chats"


@dataclass
class User:
    """An account."""

    username: str
    password: str
    id: int | None = None

    def to_doc(self) -> dict[str, Any]:
        return {"id": self.id, "username": self.username, "password": self.password}

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> User:
        return cls(username=doc.get("username", ""), password=doc.get("password", ""), id=doc.get("id"))


@dataclass
class Comment:
    """A comment attached to a post."""

    content: str
    author: int | None
    date: str = field(default_factory=utc_now_iso)

    def to_doc(self) -> dict[str, Any]:
        return {"content": self.content, "author": self.author, "date": self.date}

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> Comment:
        return cls(content=doc.get("content", ""), author=doc.get("author"), date=doc.get("date", ""))


@dataclass
class Post:
    """A blog post.

    Attributes:
        title: Post title
        content: Markdown body
        author: Account id of the author, or a legacy display name
        date: Creation date (ISO-8601)
        id: Post id
        likes: Like count
        liked_by: Account ids that liked the post (no duplicates)
        comments: Comments in the order they were added
    """

    title: str
    content: str
    author: int | str | None
    date: str = field(default_factory=utc_now_iso)
    id: int | None = None
    likes: int = 0
    liked_by: list[int] = field(default_factory=list)
    comments: list[Comment] = field(default_factory=list)

    def to_doc(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "author": self.author,
            "date": self.date,
            "likes": self.likes or 0,
            "likedBy": list(self.liked_by or []),
            "comments": [c.to_doc() for c in self.comments or []],
        }

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> Post:
        return cls(
            title=doc.get("title", ""),
            content=doc.get("content", ""),
            author=doc.get("author"),
            date=doc.get("date", ""),
            id=doc.get("id"),
            likes=doc.get("likes") or 0,
            liked_by=list(doc.get("likedBy") or []),
            comments=[Comment.from_doc(c) for c in doc.get("comments") or []],
        )


@dataclass
class Message:
    """A message inside a chat."""

    chat_id: int
    sender: int
    content: str
    date: str = field(default_factory=utc_now_iso)

    def to_doc(self) -> dict[str, Any]:
        return {"chatID": self.chat_id, "from": self.sender, "content": self.content, "date": self.date}

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> Message:
        return cls(
            chat_id=doc.get("chatID"),
            sender=doc.get("from"),
            content=doc.get("content", ""),
            date=doc.get("date", ""),
        )


@dataclass
class Chat:
    """A conversation between accounts."""

    id: int | None
    users: list[int]
    messages: list[Message] = field(default_factory=list)

    def to_doc(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "users": list(self.users or []),
            "messages": [m.to_doc() for m in self.messages or []],
        }

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> Chat:
        return cls(
            id=doc.get("id"),
            users=list(doc.get("users") or []),
            messages=[Message.from_doc(m) for m in doc.get("messages") or []],
        )


Entity = Union[User, Post, Chat]

ENTITY_TYPES: dict[EntityKind, type] = {
    EntityKind.USERS: User,
    EntityKind.POSTS: Post,
    EntityKind.CHATS: Chat,
}


def decode(kind: EntityKind, doc: dict[str, Any]) -> Entity:
    """Decode a stored document into the canonical entity for ``kind``."""
    return ENTITY_TYPES[kind].from_doc(doc)
