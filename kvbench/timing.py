"""Workload definition, trial timing and result formatting."""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterator, Optional

TRIAL_COUNT = 3


@dataclass(frozen=True)
class KeyValueRecord:
    key: str
    value: str


@dataclass(frozen=True)
class WorkloadSpec:
    """Fixed workload: record_count sequential keys, timed trial_count times."""

    record_count: int
    trial_count: int = TRIAL_COUNT

    @staticmethod
    def key(i: int) -> str:
        return f"key{i}"

    @staticmethod
    def value(i: int) -> str:
        return f"value{i}"

    def records(self) -> Iterator[KeyValueRecord]:
        for i in range(self.record_count):
            yield KeyValueRecord(self.key(i), self.value(i))


class Operation(Enum):
    SET = "set"
    GET = "get"


@dataclass(frozen=True)
class TimingResult:
    operation: Operation
    strategy_name: str
    total_elapsed_millis: int
    trial_count: int

    @property
    def average_millis(self) -> int:
        # Always the configured trial count, even if a trial measured 0 ms.
        return self.total_elapsed_millis // self.trial_count

    def format(self) -> str:
        return f"[{self.strategy_name}] Average time for {self.operation.value} = {self.average_millis} ms"


def monotonic_millis() -> int:
    return time.monotonic_ns() // 1_000_000


def measure(
    operation: Operation,
    strategy_name: str,
    trial_count: int,
    body: Callable[..., Any],
    prepare: Optional[Callable[[], Any]] = None,
    clock: Callable[[], int] = monotonic_millis,
    progress: Optional[Callable[[int, int], None]] = None,
) -> TimingResult:
    """
    Run body trial_count times and sum the elapsed milliseconds.

    Args:
        body: The timed work. Called with the value returned by prepare when
            prepare is given, otherwise with no arguments.
        prepare: Untimed per-trial preamble (e.g. listing the keys to read).
        clock: Millisecond clock; monotonic by default.
        progress: Called with (trial_index, elapsed_millis) after each trial.
    """
    total = 0
    for trial in range(trial_count):
        if prepare is not None:
            arg = prepare()
            start = clock()
            body(arg)
        else:
            start = clock()
            body()
        elapsed = clock() - start
        total += elapsed
        if progress is not None:
            progress(trial, elapsed)
    return TimingResult(operation, strategy_name, total, trial_count)
