"""
Runtime wiring: one RuntimeContext per document.
"""

from .context import RuntimeContext, build_runtime

__all__ = [
    "RuntimeContext",
    "build_runtime",
]
