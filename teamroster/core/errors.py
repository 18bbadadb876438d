# teamroster/core/errors.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Generic, List, Optional, TypeVar

T = TypeVar("T")


class RosterError(Exception):
    """Base for every failure the roster core reports to its callers."""

    kind = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class ValidationError(RosterError):
    """One or more fields are invalid; the write was not attempted."""

    kind = "validation"

    def __init__(self, errors: Dict[str, str]) -> None:
        super().__init__("; ".join(f"{k}: {v}" for k, v in errors.items()) or "Invalid input")
        self.errors = dict(errors)

    def to_dict(self) -> dict:
        return {"kind": self.kind, "errors": self.errors}


class ConflictError(RosterError):
    kind = "conflict"

    def __init__(self, messages: List[str]) -> None:
        super().__init__("; ".join(messages) or "Conflict")
        self.messages = list(messages)

    def to_dict(self) -> dict:
        return {"kind": self.kind, "messages": self.messages}


class GuardViolation(RosterError):
    """Archival was blocked. `conditions` maps each failing guard to its count."""

    kind = "guard"

    def __init__(self, message: str, conditions: Dict[str, int]) -> None:
        super().__init__(message)
        self.conditions = dict(conditions)

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message, "conditions": self.conditions}


class NotFoundError(RosterError):
    kind = "not_found"


class TransactionFailure(RosterError):
    kind = "transaction_failed"


@dataclass
class OpResult(Generic[T]):
    value: Optional[T] = None
    error: Optional[RosterError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "OpResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: RosterError) -> "OpResult[T]":
        return cls(error=error)

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]
