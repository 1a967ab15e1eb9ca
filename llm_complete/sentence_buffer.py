"""Lookahead buffer that holds back streamed tokens to trim sentence fragments.

Output is delayed by a fixed number of tokens.  When the stream ends, the
held-back tail is cut back to the last sentence boundary so a completion
that stopped at the token limit never ends mid-sentence.
"""

from typing import Optional


SENTENCE_ENDINGS = frozenset(".?!…:;\n")


def is_boundary(text: str) -> bool:
    """True if the token contains a sentence boundary character anywhere."""
    return any(ch in SENTENCE_ENDINGS for ch in text)


def _is_bare_newline(text: str) -> bool:
    return "\n" in text and not text.strip()


class LookaheadBuffer:
    """Delay emission by ``depth`` tokens, trim the tail on drain."""

    def __init__(self, depth: int, seam: str = ""):
        if depth < 0:
            raise ValueError("depth must be >= 0, got %d" % depth)
        self.depth = depth
        self._seam = seam
        self._tokens: list[str] = []
        self.emit_index = 0
        self.last_boundary: Optional[int] = None
        self.count = 0

    def __len__(self) -> int:
        return len(self._tokens)

    @property
    def pending(self) -> int:
        return len(self._tokens) - self.emit_index

    def push(self, text: str) -> str:
        """Buffer a token. Returns the text as stored."""
        # Prevent a double space between the input and the first token
        if self.count == 0 and self._seam[-1:].isspace() and text[:1].isspace():
            text = text[1:]

        self._tokens.append(text)
        self.count += 1
        if is_boundary(text):
            self.last_boundary = len(self._tokens)
        return text

    def ready_to_emit(self) -> bool:
        """True once more than ``depth`` tokens are waiting."""
        return self.pending > self.depth

    def pop_next(self) -> str:
        if self.emit_index >= len(self._tokens):
            raise IndexError("no buffered token to emit")
        text = self._tokens[self.emit_index]
        self.emit_index += 1
        return text

    def drain(self) -> list[str]:
        """Return the un-emitted tail, cut back to the last boundary.

        Without any boundary the tail is returned untouched so boundary-free
        output is never discarded.  Trailing newline-only tokens are dropped
        so the output does not end on a blank line.
        """
        if self.last_boundary is None:
            tail = self._tokens[self.emit_index:]
        else:
            tail = self._tokens[self.emit_index:self.last_boundary]
            while tail and _is_bare_newline(tail[-1]):
                tail.pop()
        self.emit_index = len(self._tokens)
        return tail
