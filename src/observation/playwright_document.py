"""
Playwright-backed document for live browser pages.

A small script installed in the page keeps element identity in a WeakMap
(elements are never tagged), runs the MutationObserver and
IntersectionObserver, and forwards their signals to Python through an
exposed binding. The only DOM write is the final src replacement.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Set

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Frame, Page

from .base import (
    AddedNode,
    CandidateElement,
    Document,
    MutationRecord,
    Unsubscribe,
    VisibilityObserver,
)

BINDING_NAME = "__faceBlurSignal"

PAGE_SCRIPT = """
() => {
  if (window.__faceBlur) return window.__faceBlur.docId;
  const docId = Math.random().toString(36).slice(2);
  const ids = new WeakMap();
  const refs = new Map();
  const done = new WeakSet();
  let nextId = 1;
  let io = null;
  const send = (kind, payload) => {
    if (window.__faceBlurSignal) window.__faceBlurSignal(kind, payload);
  };
  const idOf = (el) => {
    let id = ids.get(el);
    if (!id) {
      id = docId + ":" + nextId++;
      ids.set(el, id);
      refs.set(id, new WeakRef(el));
    }
    return id;
  };
  const get = (id) => {
    const ref = refs.get(id);
    const el = ref && ref.deref();
    if (!el) refs.delete(id);
    return el || null;
  };
  const describe = (el) => ({
    id: idOf(el),
    src: el.currentSrc || el.src || "",
    loaded: el.complete && el.naturalWidth > 0,
  });
  new MutationObserver((mutations) => {
    const added = [];
    for (const m of mutations) {
      for (const n of m.addedNodes) {
        if (n.nodeType !== 1) continue;
        const isImg = n.nodeName === "IMG";
        const hasImg = !isImg && !!n.querySelector("img");
        if (isImg || hasImg) added.push({ node_name: n.nodeName, contains_image: hasImg });
      }
    }
    if (added.length) send("mutation", added);
  }).observe(document.documentElement, { childList: true, subtree: true });
  window.__faceBlur = {
    docId,
    query: (selectors) => {
      for (const [id, ref] of refs) if (!ref.deref()) refs.delete(id);
      return Array.from(document.querySelectorAll(selectors.join(", ")))
        .filter((el) => !done.has(el))
        .map(describe);
    },
    watchLoad: (id) => {
      const el = get(id);
      if (el) el.addEventListener("load", () => send("load", describe(el)), { once: true });
    },
    createObserver: (margin, threshold) => {
      if (io) io.disconnect();
      io = new IntersectionObserver((entries) => {
        const hits = entries.filter((e) => e.isIntersecting).map((e) => describe(e.target));
        if (hits.length) send("visible", hits);
      }, { rootMargin: margin + "px", threshold });
    },
    observe: (id) => { const el = get(id); if (el && io) io.observe(el); },
    unobserve: (id) => { const el = get(id); if (el && io) io.unobserve(el); },
    disconnect: () => { if (io) io.disconnect(); io = null; },
    release: (id) => {
      const el = get(id);
      if (el) done.add(el);
      refs.delete(id);
    },
    listen: (names) => {
      for (const name of names) window.addEventListener(name, () => send("navigate", location.href));
    },
    setSource: (id, src) => {
      const el = get(id);
      if (!el) return false;
      el.src = src;
      return true;
    },
  };
  return docId;
}
"""


class PlaywrightElement(CandidateElement):
    """Handle to one <img> in the page, keyed by its page-side id."""

    def __init__(self, document: "PlaywrightDocument", element_id: str, src: str, loaded: bool):
        self._document = document
        self.element_id = element_id
        self._src = src
        self._loaded = loaded
        self._load_callbacks: List[Callable[[], None]] = []

    def __repr__(self) -> str:
        return f"PlaywrightElement(id={self.element_id}, src={self._src[:60]!r})"

    @property
    def src(self) -> str:
        return self._src

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    def on_load(self, callback: Callable[[], None]) -> None:
        self._load_callbacks.append(callback)
        self._document._spawn(self._document._call("watchLoad", self.element_id))

    def _refresh(self, info: Dict[str, Any]) -> None:
        """Take the page's current src and load state; nodes are recycled for new thumbnails."""
        self._src = info.get("src", "")
        self._loaded = bool(info.get("loaded"))

    def _handle_loaded(self, info: Dict[str, Any]) -> None:
        self._refresh(info)
        callbacks, self._load_callbacks = self._load_callbacks, []
        for callback in callbacks:
            callback()

    async def set_source(self, source: str) -> None:
        replaced = await self._document._call("setSource", self.element_id, source)
        if not replaced:
            raise RuntimeError(f"Element {self.element_id} is no longer in the page")
        self._src = source


class PlaywrightVisibilityObserver(VisibilityObserver):
    def __init__(self, document: "PlaywrightDocument", callback: Callable[[List[CandidateElement]], None], root_margin_px: int, threshold: float):
        self._document = document
        self.callback = callback
        self.root_margin_px = root_margin_px
        self.threshold = threshold

    def observe(self, element: CandidateElement) -> None:
        self._document._spawn(self._document._call("observe", element.element_id))

    def unobserve(self, element: CandidateElement) -> None:
        self._document._spawn(self._document._call("unobserve", element.element_id))

    def disconnect(self) -> None:
        if self._document._visibility is self:
            self._document._visibility = None
        self._document._spawn(self._document._call("disconnect"))


class PlaywrightDocument(Document):
    """
    Document implementation over a Playwright async Page.

    Use attach() rather than the constructor; it registers the binding and
    installs the page script. Element handles are cached per page-side id
    so the same <img> always maps to the same PlaywrightElement.

    Example:
        document = await PlaywrightDocument.attach(page)
        await page.goto(url)
    """

    def __init__(self, page: Page):
        self.page = page
        self._elements: Dict[str, PlaywrightElement] = {}
        self._mutation_callbacks: List[Callable[[List[MutationRecord]], None]] = []
        self._navigation_callbacks: List[Callable[[str], None]] = []
        self._navigation_events: Set[str] = set()
        self._visibility: Optional[PlaywrightVisibilityObserver] = None
        self._tasks: Set[asyncio.Task] = set()
        self._doc_id: Optional[str] = None

    @classmethod
    async def attach(cls, page: Page) -> "PlaywrightDocument":
        document = cls(page)
        await page.expose_binding(BINDING_NAME, document._on_signal)
        page.on("framenavigated", document._on_frame_navigated)
        page.on("domcontentloaded", lambda _page: document._spawn(document._install()))
        await document._install()
        return document

    async def _install(self) -> None:
        doc_id = await self.page.evaluate(PAGE_SCRIPT)
        if doc_id == self._doc_id:
            return
        if self._doc_id is not None:
            # a new document: previous handles point at nothing
            self._elements.clear()
            logging.debug(f"Page script installed in new document {doc_id}")
        self._doc_id = doc_id
        if self._navigation_events:
            await self._call("listen", sorted(self._navigation_events))
        if self._visibility is not None:
            await self._call("createObserver", self._visibility.root_margin_px, self._visibility.threshold)

    async def _call(self, method: str, *args: Any) -> Any:
        return await self.page.evaluate(
            "([method, args]) => window.__faceBlur ? window.__faceBlur[method](...args) : null",
            [method, list(args)],
        )

    def _spawn(self, coro) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            if isinstance(exc, PlaywrightError):
                logging.debug(f"Page call failed (page navigating or closed): {exc}")
            else:
                logging.warning(f"Page call failed: {exc}")

    def _element(self, info: Dict[str, Any]) -> PlaywrightElement:
        element = self._elements.get(info["id"])
        if element is None:
            element = PlaywrightElement(self, info["id"], info.get("src", ""), bool(info.get("loaded")))
            self._elements[info["id"]] = element
        return element

    async def query(self, selectors: Sequence[str]) -> List[CandidateElement]:
        infos = await self._call("query", list(selectors)) or []
        elements: List[PlaywrightElement] = []
        for info in infos:
            element = self._element(info)
            element._refresh(info)
            elements.append(element)
        # handles for nodes that left the document (or were released) are dropped
        self._elements = {el.element_id: el for el in elements}
        return elements

    def observe_mutations(self, callback: Callable[[List[MutationRecord]], None]) -> Unsubscribe:
        self._mutation_callbacks.append(callback)
        return lambda: self._mutation_callbacks.remove(callback)

    def create_visibility_observer(
        self,
        callback: Callable[[List[CandidateElement]], None],
        root_margin_px: int,
        threshold: float,
    ) -> VisibilityObserver:
        observer = PlaywrightVisibilityObserver(self, callback, root_margin_px, threshold)
        self._visibility = observer
        self._spawn(self._call("createObserver", root_margin_px, threshold))
        return observer

    def on_navigation(self, callback: Callable[[str], None], event_names: Sequence[str]) -> Unsubscribe:
        self._navigation_callbacks.append(callback)
        new_events = set(event_names) - self._navigation_events
        if new_events:
            self._navigation_events |= new_events
            self._spawn(self._call("listen", sorted(new_events)))
        return lambda: self._navigation_callbacks.remove(callback)

    def _on_frame_navigated(self, frame: Frame) -> None:
        if frame == self.page.main_frame:
            self._notify_navigation(frame.url)

    def _notify_navigation(self, url: str) -> None:
        for callback in list(self._navigation_callbacks):
            callback(url)

    def _on_signal(self, source: Any, kind: str, payload: Any) -> None:
        """Binding entry point for every page-side signal."""
        if kind == "mutation":
            records = [MutationRecord(added_nodes=tuple(
                AddedNode(n.get("node_name", ""), bool(n.get("contains_image"))) for n in payload
            ))]
            for callback in list(self._mutation_callbacks):
                callback(records)
        elif kind == "visible":
            if self._visibility is None:
                return
            elements = []
            for info in payload:
                element = self._elements.get(info.get("id"))
                if element is not None:
                    element._refresh(info)
                    elements.append(element)
            if elements:
                self._visibility.callback(elements)
        elif kind == "load":
            element = self._elements.get(payload.get("id"))
            if element is not None:
                element._handle_loaded(payload)
        elif kind == "navigate":
            self._notify_navigation(str(payload))
        else:
            logging.debug(f"Ignoring unknown page signal: {kind}")

    def release(self, element: CandidateElement) -> None:
        """Forget a finished element here and in the page; later queries skip it."""
        if self._elements.pop(element.element_id, None) is not None:
            self._spawn(self._call("release", element.element_id))

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
