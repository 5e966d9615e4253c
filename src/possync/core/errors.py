"""Exceptions shared by the local store and the sync controllers."""

from __future__ import annotations


class SyncError(Exception):
    """Base exception for sync errors."""


class ValidationError(SyncError):
    """Malformed remote payload or invalid local record.

    The unit being processed (a catalog page or a sale) is aborted and no
    progress is recorded for it.
    """
