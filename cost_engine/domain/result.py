"""
Operation results for expected business outcomes.

Mutating application operations return Success or Failure instead of
raising for business-rule outcomes such as "budget already exists".
"""
from dataclasses import dataclass
from typing import Generic, TypeVar, Union

from .exceptions import BusinessRuleViolation

T = TypeVar('T')


@dataclass(frozen=True)
class Success(Generic[T]):
    """Successful outcome carrying the operation's value."""
    value: T

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Failure:
    """Expected business-rule failure carrying the typed violation."""
    reason: BusinessRuleViolation

    @property
    def ok(self) -> bool:
        return False

    @property
    def code(self) -> str:
        return self.reason.code

    @property
    def message(self) -> str:
        return self.reason.message

    def unwrap(self):
        """Raise the underlying violation."""
        raise self.reason


OperationResult = Union[Success[T], Failure]
