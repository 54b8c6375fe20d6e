"""
Store module for the vblog core - durable collections, ids and the cache.

This module handles:
- The SQLite document store (collections, counters, analytics table)
- Atomic id allocation with a cache-based fallback
- The in-memory mirror of each collection and its sync discipline

Invariants:
    - Ids are allocated once and never reassigned
    - The cache only changes after the durable write succeeded
    - Replace-all is a single transaction

How to change safely:
    - Keep save() and add() as distinct mutation shapes
    - New collections go through EntityKind and the model codecs
"""

from .cache import EntityCache
from .document_store import DocumentStore, StoreError, StoreUnavailableError, UnknownCollectionError
from .entity_store import DuplicateChatError, DuplicateUsernameError, EntityError, EntityStore
from .models import Chat, Comment, Entity, EntityKind, Message, Post, User
from .sequence import SequenceAllocator

__all__ = [
    "DocumentStore",
    "StoreError",
    "StoreUnavailableError",
    "UnknownCollectionError",
    "EntityCache",
    "EntityStore",
    "EntityError",
    "DuplicateChatError",
    "DuplicateUsernameError",
    "SequenceAllocator",
    # Models
    "EntityKind",
    "Entity",
    "User",
    "Post",
    "Comment",
    "Chat",
    "Message",
]
