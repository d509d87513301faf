"""
Local control socket
Lets an operator force a job run out of schedule and follow its progress.

Wire format: one JSON object per line, {"event": <name>, "data": <string or null>}.
The client sends a single `trigger` event; the server answers with zero or more
`progress` events and exactly one terminal event.
"""

import json
import os
import socket
import socketserver
import threading
import time
from collections import namedtuple
from typing import Iterator, Optional

import structlog

from mdchecker.constants import CONTROL_COMMANDS, JOB_DEEP_CHECK
from mdchecker.exceptions import ControlPlaneException
from mdchecker.jobs.results import RunStatus

logger = structlog.get_logger("control_plane")

EVENT_TRIGGER = "trigger"
EVENT_PROGRESS = "progress"
EVENT_UNSUPPORTED = "unsupported"
EVENT_ALREADY_RUNNING = "already-running"
EVENT_NO_ITEMS = "no-items"
EVENT_FAILURE = "failure"
EVENT_SUCCESS = "success"

TERMINAL_EVENTS = (EVENT_UNSUPPORTED, EVENT_ALREADY_RUNNING, EVENT_NO_ITEMS, EVENT_FAILURE, EVENT_SUCCESS)

ControlEvent = namedtuple("ControlEvent", ["event", "data"])


def encode_event(event: str, data=None) -> bytes:
    return (json.dumps({"event": event, "data": data}) + "\n").encode("utf-8")


def decode_event(line: bytes) -> ControlEvent:
    try:
        message = json.loads(line.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise ControlPlaneException(f"Invalid control message: {line[:100]!r}") from e
    if not isinstance(message, dict) or not isinstance(message.get("event"), str):
        raise ControlPlaneException(f"Control message has no event: {message!r}")
    data = message.get("data")
    return ControlEvent(message["event"], None if data is None else str(data))


def terminal_event(command: str, result) -> ControlEvent:
    """Map a coordinator result to the terminal wire event"""
    if result.status == RunStatus.ALREADY_RUNNING:
        return ControlEvent(EVENT_ALREADY_RUNNING, None)
    if result.status == RunStatus.NO_ITEMS:
        return ControlEvent(EVENT_NO_ITEMS, None)
    if result.is_failure:
        return ControlEvent(EVENT_FAILURE, str(result.code))
    if command == JOB_DEEP_CHECK:
        # A deep check reports how many titles it probed
        return ControlEvent(EVENT_SUCCESS, str(result.extra if result.extra is not None else result.count))
    return ControlEvent(EVENT_SUCCESS, str(result.count))


def socket_is_live(socket_path: str, timeout: float = 0.5) -> bool:
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    sock.settimeout(timeout)
    try:
        sock.connect(socket_path)
        return True
    except OSError:
        return False
    finally:
        sock.close()


def remove_stale_socket(socket_path: str, retries: int = 3, retry_delay: float = 0.5):
    """Clear a socket file left behind by a previous process.

    A socket nobody listens on is removed right away. One that still answers is
    given `retries` chances to go away, then removed anyway.
    """
    for attempt in range(1, retries + 1):
        if not os.path.exists(socket_path):
            return
        if not socket_is_live(socket_path, timeout=retry_delay):
            logger.info(f"Removing stale control socket {socket_path}")
            _unlink(socket_path)
            return
        logger.warning(f"Control socket {socket_path} still answering (attempt {attempt}/{retries})")
        time.sleep(retry_delay)

    if os.path.exists(socket_path):
        logger.warning(f"Force removing control socket {socket_path}")
        _unlink(socket_path)


def _unlink(path: str):
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass


class ControlRequestHandler(socketserver.StreamRequestHandler):
    """Handles one trigger request per connection"""

    def setup(self):
        super().setup()
        self.connected = True

    def send(self, event: str, data=None):
        if not self.connected:
            return
        try:
            self.wfile.write(encode_event(event, data))
            self.wfile.flush()
        except OSError as e:
            # The run keeps going even if the operator went away
            self.connected = False
            logger.info(f"Control client disconnected: {e}")

    def handle(self):
        line = self.rfile.readline()
        if not line.strip():
            return

        try:
            request = decode_event(line)
        except ControlPlaneException as e:
            logger.warning(e.message)
            self.send(EVENT_UNSUPPORTED)
            return

        command = request.data
        if request.event != EVENT_TRIGGER or command not in CONTROL_COMMANDS:
            logger.warning(f"Unsupported control request: {request.event} {command}")
            self.send(EVENT_UNSUPPORTED)
            return

        logger.info(f"Control request to run {command}")

        def on_progress(current: int, total: int):
            self.send(EVENT_PROGRESS, f"{current}/{total}")

        result = self.server.coordinator.trigger(command, on_progress=on_progress)
        event = terminal_event(command, result)
        self.send(event.event, event.data)


class ControlServer(socketserver.ThreadingMixIn, socketserver.UnixStreamServer):
    daemon_threads = True

    def __init__(self, socket_path: str, coordinator, retries: int = 3, retry_delay: float = 0.5):
        self.socket_path = socket_path
        self.coordinator = coordinator
        self._thread = None
        remove_stale_socket(socket_path, retries=retries, retry_delay=retry_delay)
        super().__init__(socket_path, ControlRequestHandler)

    @classmethod
    def from_settings(cls, coordinator, settings):
        control = settings["control"]
        return cls(control["socket_path"], coordinator,
                   retries=control["stale_retries"], retry_delay=control["stale_retry_delay"])

    def start(self):
        self._thread = threading.Thread(target=self.serve_forever, name="control-plane", daemon=True)
        self._thread.start()
        logger.info(f"Control socket listening on {self.socket_path}")

    def stop(self):
        if self._thread:
            self.shutdown()
            self._thread.join(timeout=5)
            self._thread = None
        self.server_close()
        _unlink(self.socket_path)
        logger.info("Control socket closed")


class TriggerCall:
    """A trigger in flight: a progress stream followed by one terminal event"""

    def __init__(self, sock: socket.socket):
        self._sock = sock
        self._reader = sock.makefile("rb")
        self._result: Optional[ControlEvent] = None

    def progress(self) -> Iterator[str]:
        while self._result is None:
            line = self._reader.readline()
            if not line:
                self.close()
                raise ControlPlaneException("Control socket closed before the run finished")
            event = decode_event(line)
            if event.event == EVENT_PROGRESS:
                yield event.data
            elif event.event in TERMINAL_EVENTS:
                self._result = event
                self.close()
            else:
                logger.debug(f"Ignoring unknown control event {event.event}")

    def result(self) -> ControlEvent:
        for _ in self.progress():
            pass
        return self._result

    def close(self):
        self._reader.close()
        self._sock.close()


class ControlClient:
    def __init__(self, socket_path: str, timeout: Optional[float] = None):
        self.socket_path = socket_path
        self.timeout = timeout

    def trigger(self, command: str) -> TriggerCall:
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.settimeout(self.timeout)
        try:
            sock.connect(self.socket_path)
            sock.sendall(encode_event(EVENT_TRIGGER, command))
        except OSError:
            sock.close()
            raise
        return TriggerCall(sock)
