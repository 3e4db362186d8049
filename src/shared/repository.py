"""Compare-and-set writes on top of Protean repositories.

The version check on ``add`` catches writers that interleave across
processes. Within a process a single write lock serializes the
read-compare-write sequence, so concurrent callers see either the old
aggregate or the new one and never a half-applied change.
"""

import threading
from collections.abc import Callable

import structlog
from protean import atomic_change
from protean.core.repository import BaseRepository
from protean.exceptions import ExpectedVersionError

logger = structlog.get_logger(__name__)

_write_lock = threading.RLock()

_PAGE_SIZE = 100


def write_lock() -> threading.RLock:
    return _write_lock


class CompareAndSetRepository(BaseRepository):
    """Repository mixin: conditional writes and paged queries."""

    def compare_and_set(self, identifier, expected: Callable, changes: dict | Callable):
        """Apply ``changes`` when ``expected(aggregate)`` holds for the stored aggregate.

        ``changes`` is a mapping of field -> value or a callable computing one
        from the current aggregate. Returns the stored aggregate after the
        write, or None when the comparison failed or a concurrent writer got
        there first. Unknown identifiers raise ``ObjectNotFoundError``.
        """
        with _write_lock:
            aggregate = self.get(identifier)
            if not expected(aggregate):
                return None

            values = changes(aggregate) if callable(changes) else changes
            with atomic_change(aggregate):
                for field, value in values.items():
                    setattr(aggregate, field, value)

            try:
                self.add(aggregate)
            except ExpectedVersionError:
                logger.warning(
                    "Compare-and-set lost to a concurrent writer",
                    aggregate=type(aggregate).__name__,
                    identifier=str(identifier),
                )
                return None
            return self.get(identifier)

    def _find(self, **filters) -> list:
        """Every aggregate matching ``filters``, fetched page by page."""
        query = self._dao.query.filter(**filters) if filters else self._dao.query
        found = []
        offset = 0
        while True:
            page = query.order_by("id").offset(offset).limit(_PAGE_SIZE).all().items
            found.extend(page)
            if len(page) < _PAGE_SIZE:
                return found
            offset += _PAGE_SIZE
