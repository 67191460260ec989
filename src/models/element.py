"""
Candidate element status tracking.

Status lives in a side-table keyed by element identity rather than on the
element itself, so the only write to an externally-owned element is the
final source replacement.
"""

from __future__ import annotations

import logging
import weakref
from enum import IntEnum
from typing import Any, Dict, Iterator, Tuple


class ElementStatus(IntEnum):
    """
    Lifecycle of a candidate element.

    Values are ordered; a status may only move forward. DONE is terminal.
    """
    UNSEEN = 0
    OBSERVED = 1
    QUEUED = 2
    PROCESSING = 3
    DONE = 4

    @property
    def is_terminal(self) -> bool:
        return self is ElementStatus.DONE


class StatusTable:
    """
    Side-table mapping element identity to its ElementStatus.

    Entries are held weakly so elements that leave the document are
    forgotten without explicit cleanup. Elements must therefore be hashable
    by identity and weak-referenceable.
    """

    def __init__(self):
        self._statuses: "weakref.WeakKeyDictionary[Any, ElementStatus]" = weakref.WeakKeyDictionary()

    def get(self, element: Any) -> ElementStatus:
        """Current status; elements never seen before are UNSEEN."""
        return self._statuses.get(element, ElementStatus.UNSEEN)

    def advance(self, element: Any, status: ElementStatus) -> bool:
        """
        Move an element forward to `status`.

        Returns:
            True if the status changed, False if the element was already at
            or beyond `status` (no regression is ever applied).
        """
        current = self.get(element)
        if status <= current:
            if status < current:
                logging.debug(
                    f"Ignoring status regression {current.name} -> {status.name}"
                )
            return False
        self._statuses[element] = status
        return True

    def is_untouched(self, element: Any) -> bool:
        return self.get(element) is ElementStatus.UNSEEN

    def counts(self) -> Dict[str, int]:
        """Number of tracked elements per status name."""
        out: Dict[str, int] = {s.name.lower(): 0 for s in ElementStatus if s is not ElementStatus.UNSEEN}
        for status in self._statuses.values():
            out[status.name.lower()] += 1
        return out

    def items(self) -> Iterator[Tuple[Any, ElementStatus]]:
        return iter(list(self._statuses.items()))

    def __len__(self) -> int:
        return len(self._statuses)
