from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class SequencePage(BaseModel, Generic[T]):
    """A slice of a conversation log. Resume with ``after_sequence=next_after_sequence``."""

    items: list[T]  # type: ignore[type-var]
    next_after_sequence: int | None = None
    latest_sequence: int = 0


class ErrorResponse(BaseModel):
    code: str
    detail: str
