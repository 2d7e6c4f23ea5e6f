"""Push channel - long-lived WebSocket subscription for node changes.

Each text frame carries either a flat node record, an envelope
``{"type": "...", "node": {...}}`` or a JSON array of records. The client
can also join per-node groups to receive changes for the node the user is
currently looking at.
"""

from __future__ import annotations

import json
import threading
from typing import Any, Callable, Dict, List, Optional, Set

from websockets.exceptions import ConnectionClosed, WebSocketException
from websockets.sync.client import ClientConnection, connect

from .base import BaseSource, SourceError

DEFAULT_PUSH_URL = "wss://localhost:7068/treeNodeHub"


def _log(msg: str) -> None:
    print(f"[push] {msg}", flush=True)


def decode_frame(text: str) -> List[Dict[str, Any]]:
    """Decode one frame into a list of raw node records.

    Returns an empty list for frames that carry no node (pings, acks).

    Raises:
        ValueError: If the frame is not valid JSON.
    """
    data = json.loads(text)
    if isinstance(data, list):
        return [item for item in data if isinstance(item, dict)]
    if not isinstance(data, dict):
        return []
    if "node" in data:
        node = data["node"]
        if isinstance(node, list):
            return [item for item in node if isinstance(item, dict)]
        return [node] if isinstance(node, dict) else []
    if "id" in data:
        return [data]
    return []


class PushChannel(BaseSource):
    """WebSocket subscription delivering node-changed events.

    Args:
        url: WebSocket endpoint
        on_event: Called with each raw node record, on the listening thread
        open_timeout: Seconds allowed for the opening handshake
    """

    def __init__(
        self,
        url: str = DEFAULT_PUSH_URL,
        on_event: Optional[Callable[[Dict[str, Any]], None]] = None,
        open_timeout: float = 10,
        recv_timeout: float = 1.0,
    ):
        self.url = url
        self.on_event = on_event
        self.open_timeout = open_timeout
        self.recv_timeout = recv_timeout
        self._conn: Optional[ClientConnection] = None
        self._groups: Set[Any] = set()
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "push"

    @property
    def display_name(self) -> str:
        return "Push Channel"

    def is_available(self) -> bool:
        return self._conn is not None

    @property
    def connected(self) -> bool:
        return self._conn is not None

    def connect(self) -> None:
        """Open the connection and re-join any groups joined earlier.

        Raises:
            SourceError: If the connection cannot be established.
        """
        try:
            conn = connect(self.url, open_timeout=self.open_timeout)
        except (OSError, TimeoutError, WebSocketException) as e:
            raise SourceError(self.name, f"Cannot connect to {self.url}: {e}", e)
        with self._lock:
            self._conn = conn
            groups = list(self._groups)
        for node_id in groups:
            self._send({"action": "JoinNodeGroupAsync", "nodeId": node_id})
        _log(f"Connected to {self.url}")

    def listen(self, stop_event: threading.Event) -> None:
        """Deliver events until ``stop_event`` is set or the connection drops.

        Raises:
            SourceError: If the connection is lost while listening.
        """
        conn = self._conn
        if conn is None:
            raise SourceError(self.name, "listen() called before connect()")
        while not stop_event.is_set():
            try:
                text = conn.recv(timeout=self.recv_timeout)
            except TimeoutError:
                continue
            except ConnectionClosed as e:
                self._drop()
                raise SourceError(self.name, f"Connection closed: {e}", e)
            if isinstance(text, bytes):
                text = text.decode("utf-8", errors="replace")
            try:
                records = decode_frame(text)
            except ValueError:
                _log(f"Ignoring malformed frame: {text[:80]!r}")
                continue
            for record in records:
                if self.on_event is not None:
                    self.on_event(record)

    def join_group(self, node_id: Any) -> None:
        """Subscribe to change events for ``node_id``."""
        with self._lock:
            self._groups.add(node_id)
        self._send({"action": "JoinNodeGroupAsync", "nodeId": node_id})

    def leave_group(self, node_id: Any) -> None:
        """Stop receiving change events for ``node_id``."""
        with self._lock:
            self._groups.discard(node_id)
        self._send({"action": "LeaveNodeGroupAsync", "nodeId": node_id})

    def follow(self, previous: Any, current: Any) -> None:
        """Move the group subscription from ``previous`` to ``current``."""
        if previous is not None and previous != current:
            self.leave_group(previous)
        if current is not None:
            self.join_group(current)

    @property
    def groups(self) -> Set[Any]:
        with self._lock:
            return set(self._groups)

    def _send(self, message: Dict[str, Any]) -> None:
        conn = self._conn
        if conn is None:
            return
        try:
            conn.send(json.dumps(message))
        except (ConnectionClosed, OSError) as e:
            _log(f"Failed to send {message.get('action')}: {e}")

    def _drop(self) -> None:
        with self._lock:
            self._conn = None

    def close(self) -> None:
        """Close the connection; joined groups are remembered for reconnects."""
        with self._lock:
            conn, self._conn = self._conn, None
        if conn is not None:
            try:
                conn.close()
            except (OSError, WebSocketException) as e:
                _log(f"Error while closing: {e}")
