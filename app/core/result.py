"""Explicit success/failure values for verification and rotation paths."""
from dataclasses import dataclass
from typing import Generic, TypeVar, Union

from app.utils.errors import AuthErrorKind

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    kind: AuthErrorKind
    detail: str = ""

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Err]
