from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class TransferError(Exception):
    """A failed operation; the message is shown to the user verbatim."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


@dataclass(frozen=True)
class Outcome(Generic[T]):
    value: Optional[T] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T = None) -> 'Outcome[T]':
        return cls(value=value)

    @classmethod
    def failure(cls, message: str) -> 'Outcome[T]':
        return cls(error=message or "Operation failed")

    def unwrap(self) -> T:
        if self.error is not None:
            raise TransferError(self.error)
        return self.value
