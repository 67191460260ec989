"""
Observation layer for pluggable image-hosting documents.

This layer abstracts where candidate images live (a live browser page, an
in-process list) from discovery and processing. Each document implements
the Document interface; Discovery turns its signals into scheduler work.
"""

from .base import AddedNode, CandidateElement, Document, MutationRecord, VisibilityObserver
from .discovery import Discovery
from .memory import MemoryDocument, MemoryElement
from .timers import Debouncer

__all__ = [
    "AddedNode",
    "CandidateElement",
    "Document",
    "MutationRecord",
    "VisibilityObserver",
    "Discovery",
    "MemoryDocument",
    "MemoryElement",
    "Debouncer",
]
