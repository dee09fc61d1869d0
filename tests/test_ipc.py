"""Tests for the compositor socket protocol and event reader."""

import asyncio
import socket
import threading

import orjson
import pytest

from niritaskbar.core.compositor.events import (
    IgnoredEvent,
    WindowClosed,
    WindowFocusChanged,
)
from niritaskbar.core.compositor.ipc import (
    IPC,
    CompositorSocket,
    expect_handled,
    expect_variant,
)
from niritaskbar.errors import ProtocolError, TransportError, UnexpectedReply
from niritaskbar.ipc.client import CompositorEventReader


class FakeCompositor:
    """Serves one scripted exchange per connection on a unix socket."""

    def __init__(self, path, replies, events=()):
        self.path = str(path)
        self.replies = list(replies)
        self.events = list(events)
        self.requests = []
        self.server = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        self.server.bind(self.path)
        self.server.listen(1)
        self.thread = threading.Thread(target=self.serve, daemon=True)
        self.thread.start()

    def serve(self):
        for reply in self.replies:
            conn, _ = self.server.accept()
            with conn:
                request = b""
                while not request.endswith(b"\n"):
                    request += conn.recv(1024)
                self.requests.append(orjson.loads(request))
                conn.sendall(orjson.dumps(reply) + b"\n")
                for event in self.events:
                    conn.sendall(event)
        self.server.close()


class TestReplies:
    def test_handled(self):
        assert expect_variant("Handled", {"Ok": "Handled"}) is None
        expect_handled({"Ok": "Handled"})

    def test_payload_variant(self):
        reply = {"Ok": {"FocusedWindow": {"id": 3}}}

        assert expect_variant("FocusedWindow", reply) == {"id": 3}
        with pytest.raises(UnexpectedReply):
            expect_handled(reply)

    def test_error_reply(self):
        with pytest.raises(ProtocolError, match="no such window"):
            expect_handled({"Err": "no such window"})

    @pytest.mark.parametrize("reply", ["Handled", {}, {"Ok": "Version"}])
    def test_unexpected_reply(self, reply):
        with pytest.raises(UnexpectedReply):
            expect_handled(reply)


class TestCompositorSocket:
    def test_read_line_reassembles_chunks(self):
        left, right = socket.socketpair()
        sock = CompositorSocket("unused")
        sock.sock.close()
        sock.sock = left
        try:
            right.sendall(b'{"a":')
            right.sendall(b' 1}\n\n{"b": "\xc3')
            right.sendall(b'\xa9"}\n')
            right.close()

            assert orjson.loads(sock.read_line()) == {"a": 1}
            assert orjson.loads(sock.read_line()) == {"b": "é"}
            assert sock.read_line() is None
        finally:
            sock.close()

    def test_connect_to_missing_socket(self, tmp_path):
        with pytest.raises(TransportError):
            CompositorSocket(str(tmp_path / "missing.sock")).connect()


class TestIPC:
    def test_socket_path_from_environment(self, monkeypatch):
        monkeypatch.setenv("NIRI_SOCKET", "/run/user/1000/niri.sock")

        assert IPC().socket_path == "/run/user/1000/niri.sock"

    def test_socket_path_required(self, monkeypatch):
        monkeypatch.delenv("NIRI_SOCKET", raising=False)

        with pytest.raises(TransportError):
            IPC().socket_path

    def test_activate_window(self, tmp_path):
        compositor = FakeCompositor(tmp_path / "niri.sock", [{"Ok": "Handled"}])

        IPC(compositor.path).activate_window(42)

        compositor.thread.join(timeout=5)
        assert compositor.requests == [{"Action": {"FocusWindow": {"id": 42}}}]

    def test_activate_window_error(self, tmp_path):
        compositor = FakeCompositor(tmp_path / "niri.sock", [{"Err": "bad id"}])

        with pytest.raises(ProtocolError):
            IPC(compositor.path).activate_window(42)


@pytest.mark.asyncio
async def test_event_reader_forwards_events_in_order(tmp_path):
    compositor = FakeCompositor(
        tmp_path / "niri.sock",
        [{"Ok": "Handled"}],
        events=[
            b'{"WindowClosed": {"id": 1}}\n',
            b"not json\n",
            b'{"WindowClosed": {}}\n',
            b'{"OverviewOpenedOrClosed": {"is_open": false}}\n',
            b'{"WindowFocusChanged": {"id": 2}}\n',
        ],
    )
    received = []
    reader = CompositorEventReader(IPC(compositor.path), received.append)

    thread = reader.start()
    await asyncio.get_running_loop().run_in_executor(None, thread.join, 5)
    await asyncio.sleep(0)

    assert compositor.requests == ["EventStream"]
    assert received == [
        WindowClosed(1),
        IgnoredEvent("OverviewOpenedOrClosed"),
        WindowFocusChanged(2),
    ]
    assert reader.client_socket is None
