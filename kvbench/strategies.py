"""
The three dispatch strategies under benchmark.

Every strategy follows the same protocol against the store it is given:
flush once, time trial_count SET passes, then time trial_count GET passes over
the keys the SET phase left behind, then report both averages.
"""

from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Any, Callable, Iterable, Optional, Set, Tuple

from kvbench.store import StoreClient
from kvbench.timing import Operation, TimingResult, WorkloadSpec, measure, monotonic_millis

DEFAULT_WORKERS = 50


class Phase(Enum):
    IDLE = "idle"
    FLUSHED = "flushed"
    SET_TIMING = "set_timing"
    SET_DONE = "set_done"
    GET_TIMING = "get_timing"
    GET_DONE = "get_done"
    REPORTED = "reported"


class BenchmarkStateError(Exception):
    """Raised when a strategy is driven out of its phase order."""
    pass


class Strategy:
    name = "strategy"

    def __init__(
        self,
        store: StoreClient,
        clock: Callable[[], int] = monotonic_millis,
        progress: Optional[Callable[[str, Operation, int, int], None]] = None,
    ):
        self.store = store
        self.clock = clock
        self.progress = progress
        self.phase = Phase.IDLE

    def _advance(self, expected: Phase, new: Phase) -> None:
        if self.phase is not expected:
            raise BenchmarkStateError(
                f"{self.name}: cannot enter {new.value} from {self.phase.value} (expected {expected.value})"
            )
        self.phase = new

    def _on_trial(self, operation: Operation) -> Optional[Callable[[int, int], None]]:
        if self.progress is None:
            return None
        return lambda trial, elapsed: self.progress(self.name, operation, trial, elapsed)

    def list_keys(self) -> Set[str]:
        return self.store.keys("*")

    def set_all(self, workload: WorkloadSpec) -> None:
        raise NotImplementedError

    def get_all(self, keys: Iterable[str]) -> None:
        raise NotImplementedError

    def run(self, workload: WorkloadSpec, report: Callable[[TimingResult], None]) -> Tuple[TimingResult, TimingResult]:
        """Flush, time the SET and GET phases, and report both results."""
        self._advance(Phase.IDLE, Phase.FLUSHED)
        self.store.flush_all()

        self._advance(Phase.FLUSHED, Phase.SET_TIMING)
        set_result = measure(
            Operation.SET, self.name, workload.trial_count,
            lambda: self.set_all(workload),
            clock=self.clock, progress=self._on_trial(Operation.SET),
        )
        self._advance(Phase.SET_TIMING, Phase.SET_DONE)

        self._advance(Phase.SET_DONE, Phase.GET_TIMING)
        get_result = measure(
            Operation.GET, self.name, workload.trial_count,
            self.get_all, prepare=self.list_keys,
            clock=self.clock, progress=self._on_trial(Operation.GET),
        )
        self._advance(Phase.GET_TIMING, Phase.GET_DONE)

        report(set_result)
        report(get_result)
        self._advance(Phase.GET_DONE, Phase.REPORTED)
        return set_result, get_result


class SequentialStrategy(Strategy):
    """One request at a time, waiting for each reply."""

    name = "sequential"

    def set_all(self, workload: WorkloadSpec) -> None:
        for record in workload.records():
            self.store.set(record.key, record.value)

    def get_all(self, keys: Iterable[str]) -> None:
        for key in keys:
            self.store.get(key)


class BatchedStrategy(Strategy):
    """Every command of a trial goes out in a single pipeline."""

    name = "batched"

    def set_all(self, workload: WorkloadSpec) -> None:
        with self.store.pipeline() as batch:
            for record in workload.records():
                batch.set(record.key, record.value)

    def get_all(self, keys: Iterable[str]) -> None:
        with self.store.pipeline() as batch:
            for key in keys:
                batch.get(key)


class ParallelStrategy(Strategy):
    """
    Independent synchronous calls spread over a bounded thread pool.
    The pool lives for the whole strategy run so thread start-up stays out of
    the timed trials.
    """

    name = "parallel"

    def __init__(self, store: StoreClient, max_workers: int = DEFAULT_WORKERS, **kwargs):
        super().__init__(store, **kwargs)
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.max_workers = max_workers
        self.executor: Optional[ThreadPoolExecutor] = None

    def _fan_out(self, fn: Callable[..., Any], calls: Iterable[Tuple[Any, ...]]) -> None:
        if self.executor is None:
            raise BenchmarkStateError(f"{self.name}: worker pool is not running")
        futures = [self.executor.submit(fn, *args) for args in calls]
        try:
            for f in futures:
                f.result()
        except BaseException:
            for f in futures:
                f.cancel()
            raise

    def set_all(self, workload: WorkloadSpec) -> None:
        self._fan_out(self.store.set, ((r.key, r.value) for r in workload.records()))

    def get_all(self, keys: Iterable[str]) -> None:
        self._fan_out(self.store.get, ((key,) for key in keys))

    def run(self, workload: WorkloadSpec, report: Callable[[TimingResult], None]) -> Tuple[TimingResult, TimingResult]:
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="kvbench") as executor:
            self.executor = executor
            try:
                return super().run(workload, report)
            finally:
                self.executor = None


STRATEGIES = (SequentialStrategy, BatchedStrategy, ParallelStrategy)
