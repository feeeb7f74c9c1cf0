from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

import structlog
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.orm import Session

from dinecore.core.errors import CheckoutError, ErrorKind, UpstreamUnavailable

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Value or CheckoutError returned from a public checkout operation."""

    value: Optional[T] = None
    error: Optional[CheckoutError] = None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: CheckoutError) -> "Outcome[T]":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def kind(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error is not None else None

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value


def capture(db: Session, operation: str, fn: Callable[[], T]) -> Outcome[T]:
    """Run ``fn`` and fold checkout errors into an Outcome, rolling back on failure.

    Lost database connections count as an upstream outage. Anything else is a
    bug and propagates.
    """
    try:
        return Outcome.success(fn())
    except CheckoutError as e:
        db.rollback()
        return Outcome.failure(e)
    except (OperationalError, InterfaceError) as e:
        db.rollback()
        logger.error("datastore.unavailable", operation=operation, error=str(e))
        return Outcome.failure(UpstreamUnavailable("datastore unavailable", operation=operation))
