"""Errors raised by the session lifecycle manager."""

from __future__ import annotations


class TrackerError(Exception):
    """Base class for errors surfaced to the user."""


class ValidationError(TrackerError, ValueError):
    """Required text was blank or a value was out of range."""


class ConflictError(TrackerError):
    """A session is already running."""


class InvalidStateError(TrackerError):
    """The entity is closed, deleted, or otherwise cannot take the operation."""
