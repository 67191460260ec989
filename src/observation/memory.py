"""
In-process document.

Holds elements in memory and lets the owner drive the signals a browser
would raise (load, DOM additions, scrolling into view, navigation). Used
for batch runs over a fixed list of image URLs and for tests.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set

from .base import (
    AddedNode,
    CandidateElement,
    Document,
    MutationRecord,
    Unsubscribe,
    VisibilityObserver,
)


class MemoryElement(CandidateElement):
    """
    An image element living in a MemoryDocument.

    Attributes:
        selector: The selector this element matches (None matches any query).
        visible: Whether the element is currently within viewport range.
        source_history: Every source assigned through set_source().
    """

    def __init__(self, src: str, loaded: bool = True, visible: bool = False, selector: Optional[str] = None):
        self._src = src
        self._loaded = loaded
        self.visible = visible
        self.selector = selector
        self.source_history: List[str] = []
        self._load_callbacks: List[Callable[[], None]] = []

    def __repr__(self) -> str:
        return f"MemoryElement(src={self._src[:60]!r}, loaded={self._loaded})"

    @property
    def src(self) -> str:
        return self._src

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    @property
    def was_mutated(self) -> bool:
        return bool(self.source_history)

    def on_load(self, callback: Callable[[], None]) -> None:
        self._load_callbacks.append(callback)

    def fire_load(self) -> None:
        """Mark the image loaded and run pending load callbacks once."""
        self._loaded = True
        callbacks, self._load_callbacks = self._load_callbacks, []
        for callback in callbacks:
            callback()

    async def set_source(self, source: str) -> None:
        self._src = source
        self.source_history.append(source)


class MemoryVisibilityObserver(VisibilityObserver):
    def __init__(self, document: "MemoryDocument", callback: Callable[[List[CandidateElement]], None]):
        self._document = document
        self._callback = callback
        self.observed: Set[CandidateElement] = set()
        self.connected = True

    def observe(self, element: CandidateElement) -> None:
        if not self.connected:
            return
        self.observed.add(element)
        if getattr(element, "visible", False):
            # initial notification arrives asynchronously, as in a browser
            asyncio.get_running_loop().call_soon(self.notify, [element])

    def unobserve(self, element: CandidateElement) -> None:
        self.observed.discard(element)

    def disconnect(self) -> None:
        self.observed.clear()
        self.connected = False
        self._document._observers.discard(self)

    def notify(self, elements: Iterable[CandidateElement]) -> None:
        hits = [el for el in elements if el in self.observed]
        if hits and self.connected:
            self._callback(hits)


class MemoryDocument(Document):
    """
    A document whose contents and signals are driven programmatically.

    Example:
        doc = MemoryDocument()
        el = doc.add(MemoryElement("https://example.com/a.jpg"))
        doc.scroll_into_view(el)
    """

    def __init__(self, url: str = "about:blank"):
        self.url = url
        self.elements: List[MemoryElement] = []
        self._mutation_callbacks: List[Callable[[List[MutationRecord]], None]] = []
        self._navigation_callbacks: Dict[Callable[[str], None], Sequence[str]] = {}
        self._observers: Set[MemoryVisibilityObserver] = set()
        self.query_count = 0

    async def query(self, selectors: Sequence[str]) -> List[CandidateElement]:
        self.query_count += 1
        wanted = set(selectors)
        return [el for el in self.elements if el.selector is None or el.selector in wanted]

    def add(self, *elements: MemoryElement, wrapper: Optional[str] = None) -> MemoryElement:
        """
        Insert elements and report the addition to mutation observers.

        With `wrapper`, the additions are reported as one container node of
        that name holding the images, as when a whole card is inserted.
        """
        self.elements.extend(elements)
        if wrapper:
            nodes = (AddedNode(wrapper, contains_image=True),)
        else:
            nodes = tuple(AddedNode("IMG") for _ in elements)
        self.emit_mutation(nodes)
        return elements[-1] if elements else None

    def emit_mutation(self, nodes: Sequence[AddedNode]) -> None:
        records = [MutationRecord(added_nodes=tuple(nodes))]
        for callback in list(self._mutation_callbacks):
            callback(records)

    def scroll_into_view(self, *elements: MemoryElement) -> None:
        for el in elements:
            el.visible = True
        for observer in list(self._observers):
            observer.notify(elements)

    def navigate(self, url: str, event_name: Optional[str] = None) -> None:
        """Simulate a single-page-app navigation, optionally via an app event."""
        self.url = url
        for callback, event_names in list(self._navigation_callbacks.items()):
            if event_name is None or event_name in event_names:
                callback(url)

    def observe_mutations(self, callback: Callable[[List[MutationRecord]], None]) -> Unsubscribe:
        self._mutation_callbacks.append(callback)
        return lambda: self._mutation_callbacks.remove(callback)

    def create_visibility_observer(
        self,
        callback: Callable[[List[CandidateElement]], None],
        root_margin_px: int,
        threshold: float,
    ) -> VisibilityObserver:
        observer = MemoryVisibilityObserver(self, callback)
        self._observers.add(observer)
        return observer

    def on_navigation(self, callback: Callable[[str], None], event_names: Sequence[str]) -> Unsubscribe:
        self._navigation_callbacks[callback] = tuple(event_names)
        return lambda: self._navigation_callbacks.pop(callback, None)
