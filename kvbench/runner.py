import sys
from typing import Callable, List, Optional, Sequence

from kvbench.client import DEFAULT_PORTS, create_client
from kvbench.config import load_config
from kvbench.store import StoreClient
from kvbench.strategies import (
    DEFAULT_WORKERS,
    BatchedStrategy,
    ParallelStrategy,
    SequentialStrategy,
    Strategy,
)
from kvbench.timing import TRIAL_COUNT, Operation, TimingResult, WorkloadSpec, monotonic_millis


class BenchmarkRunner:
    """
    Runs the sequential, batched and parallel strategies, in that order,
    against one shared store handle and prints their averaged timings.
    """

    def __init__(
        self,
        store: StoreClient,
        trial_count: int = TRIAL_COUNT,
        workers: int = DEFAULT_WORKERS,
        quiet: bool = True,
        out: Callable[[str], None] = print,
        clock: Callable[[], int] = monotonic_millis,
    ):
        self.store = store
        self.trial_count = trial_count
        self.workers = workers
        self.quiet = quiet
        self.out = out
        self.clock = clock
        self.results: List[TimingResult] = []

    def strategies(self) -> List[Strategy]:
        progress = None if self.quiet else self._progress
        return [
            SequentialStrategy(self.store, clock=self.clock, progress=progress),
            BatchedStrategy(self.store, clock=self.clock, progress=progress),
            ParallelStrategy(self.store, max_workers=self.workers, clock=self.clock, progress=progress),
        ]

    def _progress(self, strategy_name: str, operation: Operation, trial: int, elapsed: int) -> None:
        self.out(f"[{strategy_name}] {operation.value} trial {trial + 1}/{self.trial_count}: {elapsed} ms")

    def report(self, result: TimingResult) -> None:
        self.results.append(result)
        self.out(result.format())

    def run(self, record_count: int) -> None:
        workload = WorkloadSpec(record_count, self.trial_count)
        self.out(f"recordCount = {record_count}")
        for strategy in self.strategies():
            strategy.run(workload, self.report)


def main(argv: Optional[Sequence[str]] = None) -> None:
    config = load_config(argv)
    store = create_client(config.store, host=config.host, port=config.port, db=config.db)
    if config.verbose and config.store in DEFAULT_PORTS:
        print(f"Targeting {store.name} store at {config.host}:{config.port or DEFAULT_PORTS[config.store]}")
    runner = BenchmarkRunner(store, workers=config.workers, quiet=not config.verbose)
    try:
        runner.run(config.record_count)
    finally:
        store.close()
    sys.exit(0)


if __name__ == "__main__":
    main()
