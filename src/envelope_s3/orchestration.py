"""
Temp-object detour used by encrypted writes and rekeys.

Storage offers no atomic "write content and set metadata" call, so both flows
write (or copy) to a sibling temp object, publish it to the final key with a
copy, and delete the temp object:

    STARTED -> WRITTEN -> PUBLISHED -> CLEANED_UP

The copy that publishes the final object is the commit point. Cleanup is
attempted on every exit path:
- failure before publish: the original error propagates; a failed cleanup is
  only logged.
- failed cleanup after publish: OrphanedTempObjectError, carrying the
  published result and the temp identity.
"""

from __future__ import annotations

import logging
from enum import Enum
from types import TracebackType
from typing import Any, Callable, Optional, Type

from .errors import OrphanedTempObjectError
from .model import ObjectIdentity

logger = logging.getLogger(__name__)


class SagaState(Enum):
    STARTED = "started"
    WRITTEN = "written"
    PUBLISHED = "published"
    CLEANED_UP = "cleaned_up"


class TempObjectSaga:
    """
    Tracks one temp-object detour; use as a context manager.

    Usage:
        with TempObjectSaga(identity, ".temp", delete) as saga:
            write(saga.temp)
            saga.written()
            saga.published(copy(saga.temp, identity))
        return saga.result

    Args:
        identity: Final object
        suffix: Temp object suffix
        delete: Callable deleting an object by identity
    """

    def __init__(
        self,
        identity: ObjectIdentity,
        suffix: str,
        delete: Callable[[ObjectIdentity], None],
    ) -> None:
        self.identity = identity
        self.temp = identity.with_suffix(suffix)
        self.state = SagaState.STARTED
        self.result: Any = None
        self._delete = delete

    def written(self) -> None:
        self._advance(SagaState.STARTED, SagaState.WRITTEN)

    def published(self, result: Any) -> None:
        self._advance(SagaState.WRITTEN, SagaState.PUBLISHED)
        self.result = result

    def _advance(self, expected: SagaState, new: SagaState) -> None:
        if self.state is not expected:
            raise RuntimeError(f"Cannot move from {self.state.value} to {new.value}")
        logger.debug("%s: %s -> %s", self.identity, self.state.value, new.value)
        self.state = new

    def __enter__(self) -> TempObjectSaga:
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> bool:
        try:
            self._delete(self.temp)
        except Exception as e:
            if exc is not None:
                logger.warning("Failed to delete temp object %s: %s", self.temp, e)
                return False
            if self.state is SagaState.PUBLISHED:
                logger.warning("Temp object %s orphaned after publishing %s: %s", self.temp, self.identity, e)
                raise OrphanedTempObjectError(
                    f"Published {self.identity} but could not delete temp object {self.temp}",
                    result=self.result,
                    temp=self.temp,
                ) from e
            raise

        if exc is None and self.state is SagaState.PUBLISHED:
            self.state = SagaState.CLEANED_UP
            logger.debug("%s: published -> cleaned_up", self.identity)
        return False
