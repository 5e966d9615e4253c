"""Shared types for possync.

This module defines enums used by the local store, the controllers and the
orchestrator.
"""

from __future__ import annotations

from enum import Enum


class SaleSyncStatus(str, Enum):
    """Sync status of a locally recorded sale."""

    PENDING = "pending"
    SYNCING = "syncing"
    SYNCED = "synced"
    FAILED = "failed"


class SyncKind(str, Enum):
    """Kinds of sync run the orchestrator schedules."""

    PRODUCTS = "products"
    SALES = "sales"


class RunState(str, Enum):
    """Run state of one sync kind."""

    IDLE = "idle"
    RUNNING = "running"
