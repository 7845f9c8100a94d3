"""Server-sent-event decoding for streamed chat completions.

The service answers a streaming request with ``data: {...}`` lines separated
by blank keep-alive lines and closed by ``data: [DONE]``. ``WireDecoder``
turns the raw byte chunks into typed deltas; ``DeltaChannel`` optionally moves
the read loop onto a worker thread and hands deltas over through a queue.
"""

import json
import queue
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Union

import requests

from .errors import DecodeError, TransportError
from .logger import get_logger

__all__ = [
    "TextDelta", "ToolCallDelta", "FinishDelta", "UsageDelta", "DecodeErrorDelta",
    "StreamDelta", "WireDecoder", "DeltaChannel", "DONE_TOKEN",
]

_log = get_logger(__name__)

DONE_TOKEN = "[DONE]"
DATA_PREFIX = b"data:"
MAX_LINE_BYTES = 4 * 1024 * 1024


@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass(frozen=True)
class ToolCallDelta:
    """One tool-call fragment.

    ``position`` is the fragment's place inside its frame's ``tool_calls``
    array; ``index`` is the service-supplied slot when present.
    """
    choice_index: int
    position: int
    index: Optional[int] = None
    id: Optional[str] = None
    name: Optional[str] = None
    arguments: str = ""


@dataclass(frozen=True)
class FinishDelta:
    reason: str


@dataclass(frozen=True)
class UsageDelta:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {"prompt_tokens": self.prompt_tokens,
                "completion_tokens": self.completion_tokens,
                "total_tokens": self.total_tokens}


@dataclass(frozen=True)
class DecodeErrorDelta:
    error: DecodeError


StreamDelta = Union[TextDelta, ToolCallDelta, FinishDelta, UsageDelta, DecodeErrorDelta]


def _as_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def frame_to_deltas(frame: Dict[str, Any]) -> List[StreamDelta]:
    """Translate one decoded JSON frame into deltas, in wire order."""
    deltas: List[StreamDelta] = []
    choices = frame.get("choices") or []
    for choice in choices:
        if not isinstance(choice, dict):
            continue
        choice_index = _as_int(choice.get("index"), 0)
        delta = choice.get("delta") or {}
        content = delta.get("content")
        if content:
            deltas.append(TextDelta(content))
        for position, tc in enumerate(delta.get("tool_calls") or []):
            if not isinstance(tc, dict):
                continue
            fn = tc.get("function") or {}
            index = tc.get("index")
            deltas.append(ToolCallDelta(
                choice_index=choice_index,
                position=position,
                index=_as_int(index) if index is not None else None,
                id=tc.get("id") or None,
                name=fn.get("name") or None,
                arguments=fn.get("arguments") or "",
            ))
        reason = choice.get("finish_reason")
        if reason:
            deltas.append(FinishDelta(reason))

    usage = frame.get("usage")
    if isinstance(usage, dict):
        deltas.append(UsageDelta(
            prompt_tokens=_as_int(usage.get("prompt_tokens")),
            completion_tokens=_as_int(usage.get("completion_tokens")),
            total_tokens=_as_int(usage.get("total_tokens")),
        ))
    return deltas


class WireDecoder:
    """Lazy delta sequence over one streamed response.

    Partial lines are buffered across reads. Iteration ends at ``[DONE]`` or
    when the byte source is exhausted; ``saw_done`` tells the two apart. A read
    failure raises ``TransportError``. ``close()`` releases the connection and
    is safe to call from another thread; the release callback runs once.
    """

    def __init__(self, chunks: Iterable[bytes],
                 on_close: Optional[Callable[[], None]] = None):
        self._chunks = chunks
        self._on_close = on_close
        self._buffer = b""
        self._lock = threading.Lock()
        self._closed = False
        self.saw_done = False
        self.frames = 0
        self.malformed = 0

    @classmethod
    def from_response(cls, response: requests.Response,
                      chunk_size: int = 1024) -> "WireDecoder":
        return cls(response.iter_content(chunk_size=chunk_size),
                   on_close=response.close)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self):
        with self._lock:
            if self._closed:
                return
            self._closed = True
            callback, self._on_close = self._on_close, None
        if callback is not None:
            try:
                callback()
            except Exception as e:
                _log.warning("Failed to close response body: %s", e)

    def __iter__(self) -> Iterator[StreamDelta]:
        return self._iter_deltas()

    def _iter_deltas(self) -> Iterator[StreamDelta]:
        try:
            for chunk in self._chunks:
                if self._closed:
                    return
                if not chunk:
                    continue
                self._buffer += chunk
                if len(self._buffer) > MAX_LINE_BYTES and b"\n" not in self._buffer:
                    _log.warning("Discarding oversized stream line (%d bytes)", len(self._buffer))
                    self._buffer = b""
                    continue
                while b"\n" in self._buffer:
                    line, self._buffer = self._buffer.split(b"\n", 1)
                    yield from self._decode_line(line)
                    if self.saw_done:
                        return
            if self._buffer.strip() and not self._closed:
                line, self._buffer = self._buffer, b""
                yield from self._decode_line(line)
        except (requests.RequestException, OSError) as e:
            if self._closed:
                # Closed from outside; the read error is the cancellation itself.
                return
            raise TransportError(f"Stream interrupted: {type(e).__name__}: {e}") from e
        finally:
            self.close()

    def _decode_line(self, raw: bytes) -> List[StreamDelta]:
        line = raw.strip()
        if not line or line.startswith(b":"):
            return []
        if not line.startswith(DATA_PREFIX):
            # event:, id:, retry: fields carry nothing for chat completions.
            return []
        data = line[len(DATA_PREFIX):].strip().decode("utf-8", errors="replace")
        if data == DONE_TOKEN:
            self.saw_done = True
            _log.debug("Stream completed")
            return []
        self.frames += 1
        try:
            frame = json.loads(data)
            if not isinstance(frame, dict):
                raise ValueError(f"expected an object, got {type(frame).__name__}")
        except ValueError as e:
            self.malformed += 1
            _log.warning("Failed to parse streaming chunk: %s (data=%.200s)", e, data)
            return [DecodeErrorDelta(DecodeError(f"parse chunk: {e}", frame=data))]
        return frame_to_deltas(frame)


_END = object()


class DeltaChannel:
    """Runs a decoder on a worker thread and hands deltas over a queue.

    Single producer, single consumer. Errors raised by the reader are
    re-raised on the consuming side in order.
    """

    def __init__(self, decoder: WireDecoder, maxsize: int = 0,
                 poll_interval: float = 0.1):
        self._decoder = decoder
        self._queue: "queue.Queue" = queue.Queue(maxsize=maxsize)
        self._poll_interval = poll_interval
        self._thread = threading.Thread(target=self._pump, name="ashcode-stream", daemon=True)
        self._started = False

    def _pump(self):
        try:
            for delta in self._decoder:
                self._queue.put(delta)
        except BaseException as e:
            self._queue.put(e)
        finally:
            self._queue.put(_END)

    def close(self):
        self._decoder.close()

    def __iter__(self) -> Iterator[StreamDelta]:
        if not self._started:
            self._started = True
            self._thread.start()
        try:
            while True:
                try:
                    item = self._queue.get(timeout=self._poll_interval)
                except queue.Empty:
                    continue
                if item is _END:
                    return
                if isinstance(item, BaseException):
                    raise item
                yield item
        finally:
            self.close()
