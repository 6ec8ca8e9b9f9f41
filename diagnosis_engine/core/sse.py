"""Incremental parser for server-sent-event style ``data:`` framing.

Completion backends stream lines such as::

    data: {"choices":[{"delta":{"content":"Hel"}}]}
    data: [DONE]

Chunks from the transport can split a line anywhere, so the parser keeps only
the trailing unterminated line between feeds.
"""

from dataclasses import dataclass

DONE_SENTINEL = "[DONE]"


@dataclass(frozen=True)
class SSEEvent:
    """One ``data:`` line. ``done`` marks the terminating sentinel."""

    data: str
    done: bool = False


class SSEParser:
    """Turns arbitrarily chunked text into SSE data events."""

    def __init__(self) -> None:
        self._buffer = ""

    def feed(self, text: str) -> list[SSEEvent]:
        """Consume a chunk and return events for every completed line."""
        self._buffer += text
        *lines, self._buffer = self._buffer.split("\n")

        events = []
        for line in lines:
            event = self._parse_line(line)
            if event is not None:
                events.append(event)
        return events

    def flush(self) -> list[SSEEvent]:
        """Emit the final line if the stream ended without a newline."""
        remainder, self._buffer = self._buffer, ""
        event = self._parse_line(remainder)
        return [event] if event is not None else []

    @staticmethod
    def _parse_line(line: str) -> SSEEvent | None:
        line = line.rstrip("\r")
        # Blank lines separate events, ":" lines are comments, other fields are unused
        if not line.startswith("data:"):
            return None

        payload = line[len("data:"):].strip()
        if not payload:
            return None
        if payload == DONE_SENTINEL:
            return SSEEvent(data=payload, done=True)
        return SSEEvent(data=payload)

