"""
Discovery and triggering of candidate images.

Four independent, idempotent signal paths feed the scheduler:
- initial scan and rescans of the document
- viewport-proximity admission (one-shot per element)
- debounced rescans on DOM additions that carry images
- settle-delayed rescans after single-page-app navigation
"""

from __future__ import annotations

import logging
import weakref
from typing import Callable, List, Optional

from models.config import DiscoveryConfig
from models.element import ElementStatus, StatusTable
from .base import CandidateElement, Document, MutationRecord, Unsubscribe, VisibilityObserver
from .timers import Debouncer


class Discovery:
    """
    Finds candidate elements and hands visible ones to the scheduler.

    An element moves UNSEEN -> OBSERVED when visibility observation starts
    and is enqueued the first time it comes into range. Elements that are
    still loading are observed after their load event instead.

    Example:
        discovery = Discovery(document, statuses, scheduler.enqueue, DiscoveryConfig())
        await discovery.start()
        ...
        await discovery.stop()
    """

    def __init__(
        self,
        document: Document,
        statuses: StatusTable,
        enqueue: Callable[[CandidateElement], bool],
        config: DiscoveryConfig,
    ):
        self.document = document
        self.statuses = statuses
        self._enqueue = enqueue
        self.config = config
        self._rescan_debouncer = Debouncer(config.debounce_s, self.rescan, name="rescan")
        self._navigation_debouncer = Debouncer(
            config.navigation_settle_s, self._rescan_debouncer.trigger, name="navigation settle"
        )
        self._visibility: Optional[VisibilityObserver] = None
        self._unsubscribers: List[Unsubscribe] = []
        self._awaiting_load: "weakref.WeakSet[CandidateElement]" = weakref.WeakSet()
        self._running = False
        self.scan_count = 0

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Run the first full scan, then install mutation and navigation observers."""
        if self._running:
            return
        self._running = True
        self._visibility = self.document.create_visibility_observer(
            self._on_visible,
            root_margin_px=self.config.root_margin_px,
            threshold=self.config.threshold,
        )
        found = await self.rescan()
        self._unsubscribers.append(self.document.observe_mutations(self._on_mutations))
        self._unsubscribers.append(
            self.document.on_navigation(self._on_navigation, self.config.navigation_events)
        )
        logging.info(f"Discovery started: {found} candidate(s) under observation")

    async def stop(self) -> None:
        """Cancel pending rescans and disconnect every observer."""
        if not self._running:
            return
        self._running = False
        self._navigation_debouncer.cancel()
        self._rescan_debouncer.cancel()
        for unsubscribe in self._unsubscribers:
            try:
                unsubscribe()
            except Exception as e:
                logging.warning(f"Error removing document observer: {e}")
        self._unsubscribers.clear()
        if self._visibility is not None:
            self._visibility.disconnect()
            self._visibility = None
        logging.info("Discovery stopped")

    async def rescan(self) -> int:
        """
        Query the document and start observing new candidates.

        Returns the number of elements that began visibility observation.
        """
        if not self._running:
            return 0
        elements = await self.document.query(self.config.selectors)
        if not self._running:
            return 0
        self.scan_count += 1

        observed = 0
        for element in elements:
            if not self.statuses.is_untouched(element):
                continue
            if element.is_loaded:
                if self._observe(element):
                    observed += 1
            elif element not in self._awaiting_load:
                self._awaiting_load.add(element)
                element.on_load(lambda el=element: self._on_element_loaded(el))

        logging.debug(f"Rescan #{self.scan_count}: {len(elements)} matched, {observed} newly observed")
        return observed

    def _observe(self, element: CandidateElement) -> bool:
        if self._visibility is None or not self.statuses.advance(element, ElementStatus.OBSERVED):
            return False
        self._visibility.observe(element)
        return True

    def _on_element_loaded(self, element: CandidateElement) -> None:
        self._awaiting_load.discard(element)
        if self._running and self.statuses.is_untouched(element):
            self._observe(element)

    def _on_visible(self, elements: List[CandidateElement]) -> None:
        for element in elements:
            if self._visibility is not None:
                self._visibility.unobserve(element)
            if self.statuses.get(element) is ElementStatus.OBSERVED:
                self._enqueue(element)

    def _on_mutations(self, records: List[MutationRecord]) -> None:
        if not self._running:
            return
        if any(node.is_image_bearing for record in records for node in record.added_nodes):
            self._rescan_debouncer.trigger()

    def _on_navigation(self, url: str) -> None:
        if not self._running:
            return
        logging.debug(f"Navigation detected: {url}")
        self._navigation_debouncer.trigger()
