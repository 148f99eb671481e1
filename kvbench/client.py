import json
import socket
import threading
from typing import Any, Dict, List, Optional, Set, Tuple

import redis

from kvbench.store import (
    Batch,
    KeyValueStore,
    StoreClient,
    StoreCommandError,
    StoreConnectionError,
)

NOT_FOUND = "Key not found"
DEFAULT_PORTS = {"redis": 6379, "tcp": 8000}


def _to_message(cmd_type: str, args: Tuple[Any, ...]) -> Dict[str, Any]:
    if cmd_type == "SET":
        return {"command": "SET", "key": args[0], "value": args[1]}
    if cmd_type == "GET":
        return {"command": "GET", "key": args[0]}
    raise StoreCommandError(f"Unknown command: {cmd_type}")


class _TCPBatch(Batch):
    def __init__(self, client: "TCPClient"):
        super().__init__()
        self.client = client

    def _send(self, commands):
        messages = [_to_message(cmd_type, args) for cmd_type, args in commands]
        return [self.client._unwrap(reply, allow_missing=True) for reply in self.client.send_many(messages)]


class TCPClient(StoreClient):
    """
    Client for the JSON-line protocol served by kvbench.tcp_server.

    Each thread keeps its own persistent connection, so one client can be
    shared by a worker pool.
    """

    name = "tcp"

    def __init__(self, host: str = "localhost", port: int = 8000):
        self.host = host
        self.port = port
        self._local = threading.local()
        self._connections: List[socket.socket] = []
        self._connections_lock = threading.Lock()

    def _connection(self) -> Tuple[socket.socket, Any]:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            try:
                sock = socket.create_connection((self.host, self.port))
            except OSError as e:
                raise StoreConnectionError(f"Could not connect to {self.host}:{self.port}: {e}") from e
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            conn = (sock, sock.makefile("rb"))
            self._local.conn = conn
            with self._connections_lock:
                self._connections.append(sock)
        return conn

    def _read_reply(self, reader) -> Dict[str, Any]:
        line = reader.readline()
        if not line:
            raise StoreConnectionError("Connection closed by server")
        return json.loads(line.decode('utf-8'))

    def send_command(self, command: Dict[str, Any]) -> Dict[str, Any]:
        """Send a JSON command to the server and receive the response."""
        sock, reader = self._connection()
        try:
            sock.sendall((json.dumps(command) + "\n").encode('utf-8'))
            return self._read_reply(reader)
        except OSError as e:
            raise StoreConnectionError(str(e)) from e

    def send_many(self, commands: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Pipeline commands on one connection: write every line, then read one
        reply per command. Writing happens on a helper thread so that a large
        batch cannot deadlock against the server's replies.
        """
        sock, reader = self._connection()
        payload = "".join(json.dumps(cmd) + "\n" for cmd in commands).encode('utf-8')
        errors: List[BaseException] = []

        def write():
            try:
                sock.sendall(payload)
            except OSError as e:
                errors.append(e)

        writer = threading.Thread(target=write, daemon=True)
        writer.start()
        try:
            replies = [self._read_reply(reader) for _ in commands]
        except OSError as e:
            raise StoreConnectionError(str(e)) from e
        finally:
            writer.join()
        if errors:
            raise StoreConnectionError(str(errors[0])) from errors[0]
        return replies

    def _unwrap(self, response: Dict[str, Any], allow_missing: bool = False) -> Any:
        if response.get("status") == "success":
            return response.get("result")
        message = response.get("message", "")
        if allow_missing and message == NOT_FOUND:
            return None
        raise StoreCommandError(message)

    def flush_all(self) -> None:
        self._unwrap(self.send_command({"command": "FLUSHALL"}))

    def set(self, key: str, value: Any) -> None:
        self._unwrap(self.send_command({"command": "SET", "key": key, "value": value}))

    def get(self, key: str) -> Optional[Any]:
        return self._unwrap(self.send_command({"command": "GET", "key": key}), allow_missing=True)

    def keys(self, pattern: str = "*") -> Set[str]:
        return set(self._unwrap(self.send_command({"command": "KEYS", "pattern": pattern})))

    def pipeline(self) -> Batch:
        return _TCPBatch(self)

    def close(self) -> None:
        with self._connections_lock:
            connections, self._connections = self._connections, []
        for sock in connections:
            try:
                sock.close()
            except OSError:
                pass
        self._local = threading.local()


class _RedisBatch(Batch):
    def __init__(self, client: redis.Redis):
        super().__init__()
        self.client = client

    def _send(self, commands):
        pipe = self.client.pipeline(transaction=False)
        for cmd_type, args in commands:
            if cmd_type == "SET":
                pipe.set(*args)
            elif cmd_type == "GET":
                pipe.get(*args)
            else:
                raise StoreCommandError(f"Unknown command: {cmd_type}")
        return pipe.execute()


class RedisStoreClient(StoreClient):
    """redis-py backed client; the connection pool makes it thread-safe."""

    name = "redis"

    def __init__(self, host: str = "localhost", port: int = 6379, db: int = 0, client: Optional[redis.Redis] = None):
        self.client = client if client is not None else redis.Redis(host=host, port=port, db=db, decode_responses=True)

    def flush_all(self) -> None:
        self.client.flushdb()

    def set(self, key: str, value: Any) -> None:
        self.client.set(key, value)

    def get(self, key: str) -> Optional[Any]:
        return self.client.get(key)

    def keys(self, pattern: str = "*") -> Set[str]:
        return set(self.client.keys(pattern))

    def pipeline(self) -> Batch:
        return _RedisBatch(self.client)

    def close(self) -> None:
        self.client.close()


def create_client(store: str, host: str = "localhost", port: Optional[int] = None, db: int = 0) -> StoreClient:
    """Build the store client for a backend name (redis, tcp or memory)."""
    if store == "redis":
        return RedisStoreClient(host=host, port=port or DEFAULT_PORTS["redis"], db=db)
    if store == "tcp":
        return TCPClient(host=host, port=port or DEFAULT_PORTS["tcp"])
    if store == "memory":
        return KeyValueStore()
    raise ValueError(f"Unknown store backend: {store}")
