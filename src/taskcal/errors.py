# src/taskcal/errors.py

from __future__ import annotations


class TaskcalError(Exception):
    """Base class for errors raised by taskcal."""


class ValidationError(TaskcalError):
    """
    Malformed input from the caller (unknown task ids, bad mode names, ...).

    Raised before anything is written; retrying the same call will fail again.
    """


class PersistenceError(TaskcalError):
    """
    A storage read or write failed.

    Transient from the user's point of view: the same action may be retried.
    `failed_ids` is filled when a per-row write fallback fails part-way.
    """

    def __init__(self, message: str, *, failed_ids: list[str] | None = None) -> None:
        super().__init__(message)
        self.failed_ids: list[str] = list(failed_ids or [])
