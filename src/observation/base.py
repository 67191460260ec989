"""
Document interfaces for pluggable page sources.

This defines the contract between the discovery layer and whatever hosts
the images, so discovery works the same against:
- a live browser page (Playwright)
- an in-process document (batch runs, tests)

Signal callbacks are plain functions invoked on the event loop thread.
Anything that needs to talk to the host asynchronously (querying,
replacing a source) is a coroutine.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List, Sequence, Tuple

Unsubscribe = Callable[[], None]


class CandidateElement(ABC):
    """
    Handle to one displayable image in the document.

    Identity is the handle itself: the same page element must always map
    to the same CandidateElement object, and the object must be hashable
    by identity.
    """

    @property
    @abstractmethod
    def src(self) -> str:
        """Current source locator (URL or data URL)."""

    @property
    @abstractmethod
    def is_loaded(self) -> bool:
        """True once the element's own image finished loading with a non-zero width."""

    @abstractmethod
    def on_load(self, callback: Callable[[], None]) -> None:
        """Invoke `callback` once, the next time the element's image loads."""

    @abstractmethod
    async def set_source(self, source: str) -> None:
        """Replace the element's displayed source."""


@dataclass(frozen=True)
class AddedNode:
    """A node added to the document, as reported by a mutation observer."""
    node_name: str
    contains_image: bool = False

    @property
    def is_image_bearing(self) -> bool:
        return self.node_name.upper() == "IMG" or self.contains_image


@dataclass(frozen=True)
class MutationRecord:
    """One batch of structural additions to the document subtree."""
    added_nodes: Tuple[AddedNode, ...] = ()


class VisibilityObserver(ABC):
    """
    Viewport-proximity observer.

    Reports observed elements as they come within the root margin of the
    viewport. Like IntersectionObserver, an element that is already in
    range when observed is reported shortly after observe().
    """

    @abstractmethod
    def observe(self, element: CandidateElement) -> None:
        pass

    @abstractmethod
    def unobserve(self, element: CandidateElement) -> None:
        pass

    @abstractmethod
    def disconnect(self) -> None:
        pass


class Document(ABC):
    """
    Abstract base class for image-hosting documents.

    Lifecycle:
        1. Discovery calls create_visibility_observer() and query()
        2. Discovery subscribes to mutations and navigation
        3. Unsubscribe callables and disconnect() tear everything down
    """

    @abstractmethod
    async def query(self, selectors: Sequence[str]) -> List[CandidateElement]:
        """Elements currently matching any of `selectors`."""

    @abstractmethod
    def observe_mutations(self, callback: Callable[[List[MutationRecord]], None]) -> Unsubscribe:
        """Report structural additions anywhere in the document."""

    @abstractmethod
    def create_visibility_observer(
        self,
        callback: Callable[[List[CandidateElement]], None],
        root_margin_px: int,
        threshold: float,
    ) -> VisibilityObserver:
        """Create an observer that calls `callback` with elements that became visible."""

    @abstractmethod
    def on_navigation(self, callback: Callable[[str], None], event_names: Sequence[str]) -> Unsubscribe:
        """
        Report single-page-app navigations.

        `event_names` are app-specific DOM events signalling a finished
        navigation; history changes are always reported. The callback
        receives the new URL.
        """

    def release(self, element: CandidateElement) -> None:
        """Called once `element` is DONE; adapters holding per-element handles drop them here."""
