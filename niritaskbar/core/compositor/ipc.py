import logging
import os
import socket
from functools import wraps
from typing import Any, Dict, Optional

import orjson as json

from niritaskbar.errors import ProtocolError, TransportError, UnexpectedReply

logger = logging.getLogger(__name__)

SOCKET_ENV = "NIRI_SOCKET"


def handle_ipc_error(func):
    """Decorator translating socket failures into TransportError."""

    @wraps(func)
    def wrapper(self, *args, **kwargs):
        try:
            return func(self, *args, **kwargs)
        except (socket.error, ConnectionRefusedError, BrokenPipeError) as e:
            logger.error(f"IPC connection error in '{func.__name__}': {e}")
            raise TransportError(f"{func.__name__}: {e}") from e

    return wrapper


def expect_handled(reply: Dict[str, Any]) -> None:
    """Checks that a reply is the plain `Handled` acknowledgement."""
    if expect_variant("Handled", reply) is not None:
        raise UnexpectedReply("Handled", reply)


def expect_variant(name: str, reply: Dict[str, Any]) -> Any:
    """
    Unwraps the `Ok` payload of a compositor reply.

    Args:
        name: The response variant the request should produce.
        reply: The decoded reply object.

    Returns:
        The inner payload of the named variant, or None for `Handled`.

    Raises:
        ProtocolError: The compositor returned an `Err` reply.
        UnexpectedReply: The reply is some other variant.
    """
    if not isinstance(reply, dict):
        raise UnexpectedReply(name, reply)
    if "Err" in reply:
        raise ProtocolError(f"compositor reply: {reply['Err']}")
    if "Ok" not in reply:
        raise UnexpectedReply(name, reply)
    response = reply["Ok"]
    if response == name:
        return None
    if isinstance(response, dict) and name in response:
        return response[name]
    raise UnexpectedReply(name, response)


class CompositorSocket:
    """A single connection to the compositor's IPC socket."""

    def __init__(self, path: str, timeout: Optional[float] = None):
        self.path = path
        self.sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        self.sock.settimeout(timeout)
        # Bytes, so a multi-byte character split across reads survives.
        self.buffer: bytes = b""

    def connect(self) -> "CompositorSocket":
        try:
            self.sock.connect(self.path)
        except FileNotFoundError as e:
            self.close()
            raise TransportError(f"Socket file not found: {self.path}") from e
        except OSError as e:
            self.close()
            raise TransportError(f"Cannot connect to {self.path}: {e}") from e
        return self

    def send(self, request: Any) -> Dict[str, Any]:
        """Writes one request line and reads back one reply line."""
        self.sock.sendall(json.dumps(request) + b"\n")
        line = self.read_line()
        if line is None:
            raise TransportError("Socket closed by compositor before reply")
        try:
            return json.loads(line)
        except json.JSONDecodeError as e:
            raise ProtocolError(f"Undecodable compositor reply: {e}") from e

    def read_line(self) -> Optional[bytes]:
        """
        Returns the next non-empty line, or None once the peer has closed.
        """
        while True:
            if b"\n" in self.buffer:
                line, self.buffer = self.buffer.split(b"\n", 1)
                line = line.strip()
                if line:
                    return line
                continue
            chunk = self.sock.recv(4096)
            if not chunk:
                return None
            self.buffer += chunk

    def close(self) -> None:
        try:
            self.sock.close()
        except OSError:
            pass

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class IPC:
    """
    Request/response access to the compositor.

    Every request uses a fresh connection; the event stream keeps its own
    connection for the lifetime of the reader.
    """

    def __init__(self, socket_path: Optional[str] = None, timeout: float = 5.0):
        self._socket_path = socket_path
        self.timeout = timeout

    @property
    def socket_path(self) -> str:
        path = self._socket_path or os.getenv(SOCKET_ENV)
        if not path:
            raise TransportError(f"{SOCKET_ENV} is not set; is the compositor running?")
        return path

    def connect(self, timeout: Optional[float] = None) -> CompositorSocket:
        return CompositorSocket(self.socket_path, timeout).connect()

    @handle_ipc_error
    def request(self, request: Any) -> Dict[str, Any]:
        with self.connect(self.timeout) as sock:
            return sock.send(request)

    def activate_window(self, window_id: int) -> None:
        """Focuses the window with the given id."""
        reply = self.request({"Action": {"FocusWindow": {"id": window_id}}})
        expect_handled(reply)

    @handle_ipc_error
    def open_event_stream(self) -> CompositorSocket:
        """
        Subscribes to the event stream.

        Returns:
            The connected socket; every following line is one event.
        """
        sock = self.connect()
        try:
            expect_handled(sock.send("EventStream"))
        except Exception:
            sock.close()
            raise
        return sock
