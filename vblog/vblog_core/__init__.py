"""
vblog core - persistence and analytics for the vblog application.

This package implements the storage layer behind the blog:
- Accounts, posts and chats as durable SQLite collections
- An in-memory mirror of each collection for fast reads
- Atomic numeric id allocation, bootstrapped from existing data
- An append-only analytics event log with UTC hourly/daily/weekday series

Architecture:
    ┌──────────────────┐      ┌─────────────────────────────────────┐
    │ Request handling │─────▶│              BlogCore               │
    │  (HTTP, views)   │      └──┬───────────┬────────────┬─────────┘
    └──────────────────┘         │           │            │
                                 ▼           ▼            ▼
                        ┌─────────────┐ ┌───────────┐ ┌─────────────┐
                        │ EntityStore │ │ Sequence  │ │ Dispatcher  │
                        │  + Cache    │ │ Allocator │ │ → EventLog  │
                        └──────┬──────┘ └─────┬─────┘ └──────┬──────┘
                               │              │              │
                               ▼              ▼              ▼
                        ┌─────────────────────────────────────────┐
                        │ SQLite: users posts chats counters      │
                        │         analytics                       │
                        └─────────────────────────────────────────┘
                                              ▲
                                              │ read-only
                                    ┌─────────┴─────────┐
                                    │ AggregationEngine │
                                    └───────────────────┘

Invariants:
    - The SQLite database is the source of truth; caches are derived
    - Ids are allocated by an atomic counter and never reused
    - Analytics events are append-only and bucketed in UTC

How to change safely:
    - Schema changes must be additive
    - Keep replace-all and targeted insert as separate operations
"""

from ._version import __version__

__all__ = ["__version__"]
