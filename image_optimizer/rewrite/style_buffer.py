"""
Per-node buffer for chunked inline style text.

A ``<style>`` text node can arrive in several chunks and a ``url(...)``
match may span two of them, so nothing is rewritten until the final chunk.
The buffer moves through three states and refuses out-of-order calls:

    ACCUMULATING --finalize()--> FINALIZED --consume()--> CONSUMED
"""

from enum import Enum
from typing import Callable, List, Optional


class BufferState(str, Enum):
    ACCUMULATING = "accumulating"
    FINALIZED = "finalized"
    CONSUMED = "consumed"


class StyleBuffer:
    def __init__(self):
        self.state = BufferState.ACCUMULATING
        self._chunks: List[str] = []
        self._pending: Optional[str] = None

    @property
    def text(self) -> str:
        return "".join(self._chunks)

    def append(self, chunk: str) -> None:
        if self.state is not BufferState.ACCUMULATING:
            raise RuntimeError(f"Cannot append to a {self.state.value} style buffer")
        self._chunks.append(chunk)

    def finalize(self, transform: Callable[[str], str]) -> str:
        """Run ``transform`` once over the complete text and keep the result pending."""
        if self.state is not BufferState.ACCUMULATING:
            raise RuntimeError(f"Cannot finalize a {self.state.value} style buffer")
        self._pending = transform(self.text)
        self.state = BufferState.FINALIZED
        return self._pending

    def consume(self) -> str:
        """Hand out the pending text exactly once."""
        if self.state is not BufferState.FINALIZED:
            raise RuntimeError(f"Cannot consume a {self.state.value} style buffer")
        pending = self._pending or ""
        self._chunks.clear()
        self._pending = None
        self.state = BufferState.CONSUMED
        return pending
