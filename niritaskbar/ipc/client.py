import asyncio
import logging
import threading
from typing import Any, Callable, Optional

import orjson as json

from niritaskbar.core.compositor.events import Event, parse_event
from niritaskbar.core.compositor.ipc import IPC, CompositorSocket
from niritaskbar.errors import DeliveryError, ProtocolError, TaskbarError

logger = logging.getLogger(__name__)


class CompositorEventReader:
    """
    Reads the compositor event stream on a dedicated thread.

    Each decoded event is handed to `handle_event` on the asyncio loop, so the
    consumer sees events in arrival order on a single task. The reader never
    reconnects: a closed socket or read error ends the thread.
    """

    def __init__(
        self,
        ipc: IPC,
        handle_event: Callable[[Event], Any],
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self.ipc = ipc
        self.handle_event = handle_event
        self.loop = loop
        self.thread: Optional[threading.Thread] = None
        self.client_socket: Optional[CompositorSocket] = None

    def start(self) -> threading.Thread:
        if self.loop is None:
            self.loop = asyncio.get_running_loop()
        self.thread = threading.Thread(
            target=self.run, name="CompositorEventReader", daemon=True
        )
        self.thread.start()
        return self.thread

    def run(self) -> None:
        try:
            self.client_socket = self.ipc.open_event_stream()
            logger.info(f"Subscribed to compositor events on {self.ipc.socket_path}")
            self.read_events(self.client_socket)
        except DeliveryError:
            logger.info("Event consumer has gone away; stopping event reader.")
        except TaskbarError as e:
            logger.error(f"Compositor event stream failed: {e}")
        except OSError as e:
            logger.error(f"Critical socket error: {e}", exc_info=True)
        finally:
            self.disconnect_socket()

    def read_events(self, client_socket: CompositorSocket) -> None:
        while True:
            line = client_socket.read_line()
            if line is None:
                logger.warning("Socket closed by compositor; event stream ended.")
                return
            try:
                event = parse_event(json.loads(line))
            except json.JSONDecodeError as e:
                logger.error(f"JSON decode error: {e}")
                logger.debug(f"Failed payload: {line.decode('utf-8', errors='replace')}")
                continue
            except ProtocolError as e:
                logger.error(f"Skipping compositor event: {e}")
                continue
            self.process_event(event)

    def process_event(self, event: Event) -> None:
        """Forwards the event to the loop thread."""
        if self.loop is None or self.loop.is_closed():
            raise DeliveryError("event loop is closed")
        try:
            self.loop.call_soon_threadsafe(self.handle_event, event)
        except RuntimeError as e:
            raise DeliveryError(str(e)) from e

    def disconnect_socket(self) -> None:
        if self.client_socket:
            self.client_socket.close()
            self.client_socket = None
