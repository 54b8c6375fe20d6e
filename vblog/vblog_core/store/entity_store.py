"""
Entity collections with an in-memory mirror kept in step with the durable store.

Two mutation shapes exist and stay distinct:

- save(kind, snapshot): replace-all. The caller holds a complete,
  authoritative snapshot (usually the cached list after an in-place edit)
  and the durable collection is overwritten with it.
- add(kind, record): targeted insert of exactly one document, followed by
  exactly one cache append. Nothing else is touched.

Invariants:
    - After a successful save/add, the cache for that collection equals
      what load_all() would return
    - Persist first, then mirror: a failed write never reaches the cache
    - load_all() never raises; it logs and returns [] so startup can proceed
    - Domain helpers edit the cached entity in place and then persist
      through save/add, never around the cache

Concurrency:
    Overlapping save() calls on the same collection from different
    processes are last-writer-wins. Within one process the asyncio loop
    serializes them.
"""

from __future__ import annotations

import logging
from typing import Any

from .cache import EntityCache
from .document_store import DocumentStore
from .models import (
    Chat,
    Comment,
    Entity,
    EntityKind,
    Message,
    Post,
    User,
    decode,
    utc_now_iso,
)
from .sequence import SequenceAllocator

logger = logging.getLogger(__name__)


class EntityError(Exception):
    """Base exception for entity-level conflicts."""

    pass


class DuplicateUsernameError(EntityError):
    """An account with this username already exists."""

    pass


class DuplicateChatError(EntityError):
    """A two-party chat between these accounts already exists."""

    pass


class EntityStore:
    """Durable entity collections plus the cache that mirrors them.

    Attributes:
        store: Durable document store
        cache: In-memory mirror, owned by this object
        allocator: Id allocator used by add() for records without an id

    Example:
        >>> entities = EntityStore(store, allocator, cache)
        >>> await entities.reload()
        >>> post = await entities.create_post("Hello", "First post", author=1)
        >>> await entities.toggle_like(post.id, user_id=2)
        (1, True)
    """

    def __init__(
        self,
        store: DocumentStore,
        allocator: SequenceAllocator,
        cache: EntityCache | None = None,
    ) -> None:
        self.store = store
        self.allocator = allocator
        self.cache = cache if cache is not None else EntityCache()

    @property
    def users(self) -> list[User]:
        return self.cache.get(EntityKind.USERS)

    @property
    def posts(self) -> list[Post]:
        return self.cache.get(EntityKind.POSTS)

    @property
    def chats(self) -> list[Chat]:
        return self.cache.get(EntityKind.CHATS)

    # ---------- Load / save / add ----------

    async def load_all(self, kind: EntityKind | str) -> list[Entity]:
        """Read and decode every record of a collection, ascending by id.

        Returns [] on any failure.
        """
        kind = EntityKind(kind)
        try:
            docs = await self.store.find_all(kind)
            return [decode(kind, doc) for doc in docs]
        except Exception as e:
            logger.error(
                f"Error loading {kind.value} from store: {e}",
                extra={"collection": kind.value},
                exc_info=True,
            )
            return []

    async def reload(self, kind: EntityKind | str | None = None) -> dict[str, int]:
        """Repopulate the cache from the durable store.

        Args:
            kind: Collection to reload, or None for all of them

        Returns:
            Cached record count per reloaded collection
        """
        kinds = [EntityKind(kind)] if kind is not None else list(EntityKind)
        sizes = {}
        for k in kinds:
            self.cache.replace(k, await self.load_all(k))
            sizes[k.value] = len(self.cache.get(k))
        logger.info("Loaded caches", extra=sizes)
        return sizes

    async def save(self, kind: EntityKind | str, snapshot: list[Entity]) -> None:
        """Overwrite a collection with ``snapshot`` (replace-all).

        Raises:
            sqlite3.Error: If the write fails; the cache is left as it was
        """
        kind = EntityKind(kind)
        docs = [entity.to_doc() for entity in snapshot]
        await self.store.replace_all(kind, docs)
        self.cache.replace(kind, snapshot)

    async def add(self, kind: EntityKind | str, record: Entity) -> Entity:
        """Insert one record, allocating its id if unset.

        Returns:
            The cache entry mirroring the inserted document

        Raises:
            sqlite3.Error: If the insert fails; nothing is cached
        """
        kind = EntityKind(kind)
        if not record.id:
            record.id = await self.allocator.next(kind.value)

        doc = record.to_doc()
        await self.store.insert_one(kind, doc)

        cached = decode(kind, doc)
        self.cache.append(kind, cached)
        return cached

    # ---------- Accounts ----------

    def find_user(self, user_id: int) -> User | None:
        return self.cache.find(EntityKind.USERS, user_id)

    def find_user_by_username(self, username: str) -> User | None:
        return next((u for u in self.users if u.username == username), None)

    async def create_user(self, username: str, password: str) -> User:
        """Create an account.

        Raises:
            DuplicateUsernameError: If the username is taken
        """
        if self.find_user_by_username(username) is not None:
            raise DuplicateUsernameError(f"Username already exists: {username}")
        user = await self.add(EntityKind.USERS, User(username=username, password=password))
        logger.info(f"New user signed up: {username}", extra={"user_id": user.id})
        return user

    def display_name(self, author: Any) -> str:
        """Username for an author id, a legacy string author, or "Anonymous"."""
        user = self.find_user(author) if isinstance(author, int) else None
        if user is not None:
            return user.username
        if isinstance(author, str):
            return author
        return "Anonymous"

    # ---------- Posts ----------

    def find_post(self, post_id: int) -> Post | None:
        return self.cache.find(EntityKind.POSTS, post_id)

    async def create_post(self, title: str, content: str, author: int | None) -> Post:
        post = await self.add(EntityKind.POSTS, Post(title=title, content=content, author=author))
        logger.info(f"New post added: {title}", extra={"post_id": post.id, "author": author})
        return post

    async def toggle_like(self, post_id: int, user_id: int) -> tuple[int, bool] | None:
        """Like a post, or unlike it if ``user_id`` already liked it.

        Returns:
            (likes, liked) after the toggle, or None if the post doesn't exist
        """
        post = self.find_post(post_id)
        if post is None:
            return None

        if user_id in post.liked_by:
            post.liked_by.remove(user_id)
            post.likes = max(0, (post.likes or 0) - 1)
            liked = False
        else:
            post.liked_by.append(user_id)
            post.likes = (post.likes or 0) + 1
            liked = True

        await self.save(EntityKind.POSTS, self.posts)
        logger.info(
            f"User {user_id} {'liked' if liked else 'unliked'} post {post_id}",
            extra={"post_id": post_id, "user_id": user_id},
        )
        return post.likes, liked

    async def add_comment(
        self,
        post_id: int,
        content: str,
        author: int,
        date: str | None = None,
    ) -> list[Comment] | None:
        """Append a comment to a post.

        Returns:
            The post's comments after the append, or None if the post doesn't exist
        """
        post = self.find_post(post_id)
        if post is None:
            return None

        post.comments.append(Comment(content=content, author=author, date=date or utc_now_iso()))
        await self.save(EntityKind.POSTS, self.posts)
        logger.info(f"New comment added to post {post_id} by user {author}")
        return post.comments

    # ---------- Chats ----------

    def find_chat(self, chat_id: int) -> Chat | None:
        return self.cache.find(EntityKind.CHATS, chat_id)

    def find_chat_by_users(self, user_a: int, user_b: int) -> Chat | None:
        """The two-party chat between ``user_a`` and ``user_b``, in either order."""
        for chat in self.chats:
            if len(chat.users) == 2 and (
                (chat.users[0] == user_a and chat.users[1] == user_b)
                or (chat.users[0] == user_b and chat.users[1] == user_a)
            ):
                return chat
        return None

    def chats_for_user(self, user_id: int) -> list[Chat]:
        return [chat for chat in self.chats if user_id in chat.users]

    async def create_chat(self, user_a: int, user_b: int) -> Chat:
        """Start a chat between two accounts.

        Raises:
            DuplicateChatError: If they already share a two-party chat
        """
        if self.find_chat_by_users(user_a, user_b) is not None:
            raise DuplicateChatError(f"Chat already exists between {user_a} and {user_b}")
        return await self.add(EntityKind.CHATS, Chat(id=None, users=[user_a, user_b]))

    async def delete_chat(self, chat_id: int) -> bool:
        """Delete a chat. Returns False if it doesn't exist."""
        remaining = [chat for chat in self.chats if chat.id != chat_id]
        if len(remaining) == len(self.chats):
            return False
        await self.save(EntityKind.CHATS, remaining)
        return True

    async def add_message(self, chat_id: int, sender: int, content: str) -> Message | None:
        """Append a message to a chat. Returns None if the chat doesn't exist."""
        chat = self.find_chat(chat_id)
        if chat is None:
            return None

        message = Message(chat_id=chat_id, sender=sender, content=content)
        chat.messages.append(message)
        await self.save(EntityKind.CHATS, self.chats)
        logger.info(f"New message from user {sender} in chat {chat_id}")
        return message

    async def remove_chats_for_user(self, user_id: int) -> int:
        """Delete every chat ``user_id`` takes part in.

        Returns:
            Number of chats removed
        """
        remaining = [chat for chat in self.chats if user_id not in chat.users]
        removed = len(self.chats) - len(remaining)
        await self.save(EntityKind.CHATS, remaining)
        return removed
