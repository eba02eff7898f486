"""
Greedy word-window chunking.

Tokens are accumulated until the next one would push the window past
``chunk_size`` characters; the closed window then seeds the next one with its
last ``chunk_overlap // 10`` tokens. Offsets are taken from the token spans
as they are consumed, so repeated passages still map to the right place.
"""
import re
from dataclasses import dataclass

_TOKEN_RE = re.compile(r"\S+")


@dataclass(frozen=True)
class TextChunk:
    index: int
    content: str
    start_index: int
    end_index: int

    @property
    def word_count(self) -> int:
        return len(self.content.split())


class Chunker:
    def __init__(self, chunk_size: int = 1000, chunk_overlap: int = 200):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap

    @property
    def overlap_tokens(self) -> int:
        return max(0, self.chunk_overlap // 10)

    def chunk(self, text: str) -> list[TextChunk]:
        chunks: list[TextChunk] = []
        window: list[tuple[int, int]] = []
        length = 0

        for match in _TOKEN_RE.finditer(text):
            start, end = match.span()
            token_length = end - start + 1  # +1 for the joining space

            if window and length + token_length > self.chunk_size:
                chunks.append(self._close(text, window, len(chunks)))
                window = self._carry_overlap(window)
                length = sum(e - s + 1 for s, e in window)

            window.append((start, end))
            length += token_length

        if window:
            chunks.append(self._close(text, window, len(chunks)))

        return chunks

    def _carry_overlap(self, window: list[tuple[int, int]]) -> list[tuple[int, int]]:
        if not self.overlap_tokens:
            return []
        carried = window[-self.overlap_tokens:]
        # A tail that fills the window on its own would yield chunks of nothing but overlap.
        while carried and sum(e - s + 1 for s, e in carried) >= self.chunk_size:
            carried = carried[1:]
        return carried

    @staticmethod
    def _close(text: str, window: list[tuple[int, int]], index: int) -> TextChunk:
        start = window[0][0]
        end = window[-1][1]
        return TextChunk(index=index, content=text[start:end], start_index=start, end_index=end)
