"""Owned handle table.

Stands in for a heap allocation that is handed to the engine as an opaque
``void*``. :func:`into_raw` moves an object into the table and returns a
non-zero token; :func:`borrow` resolves a token without giving up
ownership; :func:`from_raw` takes the object back out, after which the
token is dead.
"""

from __future__ import annotations

import itertools
import logging
import threading

from ..core.errors import ContractViolationError
from ..core.types import Handle

logger = logging.getLogger(__name__)


class HandleTable:
    """Thread-safe registry of objects owned by the foreign side.

    Invariants:
        - Tokens are never 0 and never reused
        - Each token is reclaimed at most once
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._objects: dict[Handle, object] = {}
        self._tokens = itertools.count(1)

    def into_raw(self, obj: object) -> Handle:
        """Transfer ownership of ``obj`` and return its token."""
        with self._lock:
            token = next(self._tokens)
            self._objects[token] = obj
        logger.debug(f"Transferred {type(obj).__name__} as handle {token}")
        return token

    def borrow(self, token: Handle | None) -> object:
        """Resolve a live token."""
        try:
            with self._lock:
                return self._objects[token]
        except KeyError:
            raise ContractViolationError(f"Unknown or destroyed handle: {token}") from None

    def from_raw(self, token: Handle | None) -> object:
        """Reclaim ownership; the token must not be used again."""
        try:
            with self._lock:
                obj = self._objects.pop(token)
        except KeyError:
            raise ContractViolationError(f"Handle reclaimed twice or never issued: {token}") from None
        logger.debug(f"Reclaimed {type(obj).__name__} from handle {token}")
        return obj

    def __len__(self) -> int:
        with self._lock:
            return len(self._objects)

    def __contains__(self, token: object) -> bool:
        with self._lock:
            return token in self._objects


# Single table shared by every trampoline; tokens pass through the engine untyped.
OWNED = HandleTable()
