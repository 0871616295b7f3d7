# Optimistic updates - apply locally first, restore on failure

import logging
from typing import Callable, Generic, Optional, TypeVar

from .errors import SyncError

logger = logging.getLogger(__name__)

T = TypeVar('T')


class OptimisticUpdate(Generic[T]):
    """Three-phase local change: attempt, then commit or rollback.

    ``read`` returns the current value, ``write`` stores one. The previous
    value is captured on attempt and written back on rollback. ``guard``, when
    given, is checked before rolling back; a False result leaves the newer
    local value in place.
    """

    def __init__(self, read: Callable[[], Optional[T]], write: Callable[[T], None],
                 guard: Optional[Callable[[], bool]] = None, label: str = ''):
        self._read = read
        self._write = write
        self._guard = guard
        self.label = label
        self.previous: Optional[T] = None
        self.state = 'new'

    def attempt(self, value: T) -> T:
        if self.state != 'new':
            raise SyncError(f"Optimistic update {self.label} already {self.state}")
        self.previous = self._read()
        self._write(value)
        self.state = 'applied'
        return value

    def commit(self) -> None:
        if self.state != 'applied':
            raise SyncError(f"Cannot commit optimistic update {self.label} in state {self.state}")
        self.state = 'committed'

    def rollback(self) -> bool:
        """Restore the captured value. Returns False when the guard vetoed it."""
        if self.state != 'applied':
            raise SyncError(f"Cannot roll back optimistic update {self.label} in state {self.state}")
        self.state = 'rolled_back'
        if self._guard is not None and not self._guard():
            logger.info(f"Skipped rollback of {self.label}: a newer update superseded it")
            return False
        if self.previous is not None:
            self._write(self.previous)
        return True
