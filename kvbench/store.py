import fnmatch
import threading
from typing import Any, Dict, List, Optional, Set, Tuple


class StoreError(Exception):
    """Base class for failures reported by a store client."""
    pass


class StoreConnectionError(StoreError):
    """Raised when the store cannot be reached."""
    pass


class StoreCommandError(StoreError):
    """Raised when the store rejects a command."""
    pass


class Batch:
    """
    Queue of commands sent to the store in one round-trip.

    Used as a context manager: commands are enqueued inside the block and
    executed together when the block exits without an exception.
    """

    def __init__(self):
        self.commands: List[Tuple[str, Tuple[Any, ...]]] = []
        self.results: List[Any] = []

    def set(self, key: str, value: Any) -> "Batch":
        self.commands.append(("SET", (key, value)))
        return self

    def get(self, key: str) -> "Batch":
        self.commands.append(("GET", (key,)))
        return self

    def execute(self) -> List[Any]:
        """Send every queued command and return the replies in order."""
        commands, self.commands = self.commands, []
        if not commands:
            self.results = []
            return self.results
        self.results = self._send(commands)
        return self.results

    def _send(self, commands: List[Tuple[str, Tuple[Any, ...]]]) -> List[Any]:
        raise NotImplementedError

    def __len__(self) -> int:
        return len(self.commands)

    def __enter__(self) -> "Batch":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            self.execute()
        else:
            self.commands = []
        return False


class StoreClient:
    """
    Operations the benchmark needs from a key-value store.

    Implementations must be safe to share between threads.
    """

    name = "store"

    def flush_all(self) -> None:
        raise NotImplementedError

    def set(self, key: str, value: Any) -> None:
        raise NotImplementedError

    def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    def keys(self, pattern: str = "*") -> Set[str]:
        raise NotImplementedError

    def pipeline(self) -> Batch:
        raise NotImplementedError

    def close(self) -> None:
        pass

    def __enter__(self) -> "StoreClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False


class _LocalBatch(Batch):
    def __init__(self, store: "KeyValueStore"):
        super().__init__()
        self.store = store

    def _send(self, commands):
        return self.store.apply_batch(commands)


class KeyValueStore(StoreClient):
    """
    An in-memory key-value store.
    Thread-safe: every operation holds a single lock, and a batch is applied
    atomically under that lock.
    """

    name = "memory"

    def __init__(self):
        self.store: Dict[str, Any] = {}
        self.lock = threading.Lock()

    def flush_all(self) -> None:
        """Remove every key."""
        with self.lock:
            self.store.clear()

    def set(self, key: str, value: Any) -> None:
        """Create or update a key with a value."""
        with self.lock:
            self.store[key] = value

    def get(self, key: str) -> Optional[Any]:
        """Retrieve a value by its key."""
        with self.lock:
            return self.store.get(key)

    def keys(self, pattern: str = "*") -> Set[str]:
        """Return the keys matching a glob-style pattern."""
        with self.lock:
            if pattern == "*":
                return set(self.store)
            return {k for k in self.store if fnmatch.fnmatchcase(k, pattern)}

    def pipeline(self) -> Batch:
        return _LocalBatch(self)

    def apply_batch(self, commands: List[Tuple[str, Tuple[Any, ...]]]) -> List[Any]:
        results = []
        with self.lock:
            for cmd_type, args in commands:
                if cmd_type == "SET":
                    key, value = args
                    self.store[key] = value
                    results.append(True)
                elif cmd_type == "GET":
                    results.append(self.store.get(args[0]))
                else:
                    raise StoreCommandError(f"Unknown command: {cmd_type}")
        return results

    def __len__(self) -> int:
        with self.lock:
            return len(self.store)
