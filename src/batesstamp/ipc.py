# src/batesstamp/ipc.py
from __future__ import annotations

import socket
import time
from typing import Callable, Optional, Tuple

import msgpack

from .exceptions import AnnotationError, ChannelTransportError, ChildCrashed

# Largest datagram either side will accept
MAX_FRAME = 10_000


# --- 1. Codec ---
def _pack(payload) -> bytes:
    try:
        frame = msgpack.packb(payload, use_bin_type=True)
    except (ValueError, TypeError) as e:
        # e.g. a file name that is not valid UTF-8
        raise ChannelTransportError(f"Cannot encode frame, {e}") from e
    if len(frame) > MAX_FRAME:
        raise ChannelTransportError(f"Frame of {len(frame)} bytes exceeds the {MAX_FRAME} byte limit")
    return frame


def _unpack(frame: bytes):
    try:
        return msgpack.unpackb(frame, raw=False)
    except (ValueError, TypeError) as e:
        raise ChannelTransportError(f"Malformed frame, {e}") from e


def encode_request(source: str, destination: str) -> bytes:
    return _pack([str(source), str(destination)])


def decode_request(frame: bytes) -> Tuple[str, str]:
    payload = _unpack(frame)
    if (
        not isinstance(payload, list)
        or len(payload) != 2
        or not all(isinstance(p, str) for p in payload)
    ):
        raise ChannelTransportError(f"Expected a [source, destination] pair, got {payload!r}")
    source, destination = payload
    return source, destination


def encode_response(page_count: int) -> bytes:
    if isinstance(page_count, bool) or not isinstance(page_count, int) or page_count < 0:
        raise ValueError(f"Page count must be a non-negative integer, got {page_count!r}")
    return _pack(page_count)


def encode_failure(error: BaseException) -> bytes:
    kind = getattr(error, "kind", None) or type(error).__name__
    # Truncate so that a long traceback message still fits in one frame
    message = str(error)[:4000].encode("utf-8", "backslashreplace").decode("utf-8")
    return _pack({"error": kind, "message": message})


def decode_response(frame: bytes) -> int:
    """
    Decode a worker response.
    Returns the page count, or raises AnnotationError when the worker sent a failure tag.
    """
    payload = _unpack(frame)
    if isinstance(payload, int) and not isinstance(payload, bool) and payload >= 0:
        return payload
    if isinstance(payload, dict) and "error" in payload:
        raise AnnotationError(str(payload.get("message", "")), kind=str(payload["error"]))
    raise ChannelTransportError(f"Unexpected response payload, {payload!r}")


# --- 2. Channel ---
class Channel:
    """
    One request/response exchange with a single forked process.

    The socket pair must exist before the child is forked. Afterwards each
    side calls as_parent() or as_child() to close the half it does not use.
    close() releases anything still open and is safe to call repeatedly.
    """

    def __init__(self):
        try:
            self._child, self._parent = socket.socketpair(socket.AF_UNIX, socket.SOCK_DGRAM)
        except OSError as e:
            raise ChannelTransportError(f"Cannot create socket pair, {e}") from e

    def __enter__(self) -> "Channel":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    @property
    def closed(self) -> bool:
        return self._child is None and self._parent is None

    def open_ends(self) -> int:
        return sum(1 for s in (self._child, self._parent) if s is not None)

    def as_parent(self) -> "Channel":
        self._close_child_end()
        return self

    def as_child(self) -> "Channel":
        self._close_parent_end()
        return self

    def close(self):
        self._close_child_end()
        self._close_parent_end()

    def _close_child_end(self):
        if self._child is not None:
            self._child.close()
            self._child = None

    def _close_parent_end(self):
        if self._parent is not None:
            self._parent.close()
            self._parent = None

    # -----------------------------
    # Parent side
    # -----------------------------
    def send_request(self, source: str, destination: str):
        self._send(self._require(self._parent, "parent"), encode_request(source, destination))

    def receive_response(
        self,
        *,
        timeout: Optional[float] = None,
        poll_interval: float = 0.2,
        is_alive: Optional[Callable[[], bool]] = None,
    ) -> int:
        """
        Block until the child answers.

        Between polls the child's liveness is checked, so a child that died
        without answering raises ChildCrashed instead of hanging forever.
        """
        sock = self._require(self._parent, "parent")
        deadline = None if timeout is None else time.monotonic() + timeout
        sock.settimeout(poll_interval)
        while True:
            try:
                frame = self._recv(sock)
            except socket.timeout:
                if is_alive is not None and not is_alive():
                    frame = self._drain(sock)
                    if frame is None:
                        raise ChildCrashed("Worker exited without sending a response")
                elif deadline is not None and time.monotonic() >= deadline:
                    raise ChannelTransportError(f"No response within {timeout} seconds")
                else:
                    continue
            except ConnectionResetError as e:
                raise ChildCrashed(f"Worker closed the channel, {e}") from e
            if not frame:
                raise ChildCrashed("Worker closed the channel without a response")
            return decode_response(frame)

    # -----------------------------
    # Child side
    # -----------------------------
    def receive_request(self, timeout: Optional[float] = None) -> Tuple[str, str]:
        sock = self._require(self._child, "child")
        sock.settimeout(timeout)
        try:
            frame = self._recv(sock)
        except socket.timeout as e:
            raise ChannelTransportError("No request received") from e
        if not frame:
            raise ChannelTransportError("Parent closed the channel before sending a request")
        return decode_request(frame)

    def send_response(self, page_count: int):
        self._send(self._require(self._child, "child"), encode_response(page_count))

    def send_failure(self, error: BaseException):
        self._send(self._require(self._child, "child"), encode_failure(error))

    # -----------------------------
    # Helpers
    # -----------------------------
    @staticmethod
    def _require(sock: Optional[socket.socket], side: str) -> socket.socket:
        if sock is None:
            raise ChannelTransportError(f"The {side} end of the channel is closed")
        return sock

    @staticmethod
    def _send(sock: socket.socket, frame: bytes):
        try:
            sock.send(frame)
        except OSError as e:
            raise ChannelTransportError(f"Send failed, {e}") from e

    @staticmethod
    def _recv(sock: socket.socket) -> bytes:
        # Ask for one byte more than allowed: a datagram is truncated silently otherwise
        try:
            frame = sock.recv(MAX_FRAME + 1)
        except (socket.timeout, BlockingIOError, ConnectionResetError):
            raise
        except OSError as e:
            raise ChannelTransportError(f"Receive failed, {e}") from e
        if len(frame) > MAX_FRAME:
            raise ChannelTransportError(f"Received frame exceeds the {MAX_FRAME} byte limit")
        return frame

    @classmethod
    def _drain(cls, sock: socket.socket) -> Optional[bytes]:
        """Pick up a response the child sent just before exiting."""
        sock.settimeout(0)
        try:
            return cls._recv(sock)
        except (BlockingIOError, socket.timeout, ConnectionResetError):
            return None
