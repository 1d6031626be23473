"""A pool of worker threads fed by a bounded queue of work units.

Each unit records when it was submitted, started and finished, and a
shared monitor sums those times so averages can be reported at shutdown.
"""

from __future__ import annotations

import sys
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence, Tuple

NUM_WORKER_THREADS = 8
MAX_QUEUE_SIZE = 5
NUM_FUNC_CALLS = 30
ARG_MOD = 5


@dataclass
class WorkUnitStats:
    """Clock readings taken as a unit moves through the server."""

    submit_time: float = 0.0
    start_time: float = 0.0
    end_time: float = 0.0

    @property
    def enqueued_seconds(self) -> float:
        return self.start_time - self.submit_time

    @property
    def processing_seconds(self) -> float:
        return self.end_time - self.start_time


@dataclass
class WorkUnit:
    """A call of func with context; a unit without func stops a worker."""

    id: int
    func: Optional[Callable[[Any], Any]]
    context: Any = None
    stats: WorkUnitStats = field(default_factory=WorkUnitStats)


class StatMonitor:
    """Running totals of queue wait and processing time."""

    def __init__(self) -> None:
        self.n_units = 0
        self.total_enqueued_seconds = 0.0
        self.total_proc_seconds = 0.0
        self._lock = threading.Lock()

    def update(self, stats: WorkUnitStats) -> None:
        with self._lock:
            self.n_units += 1
            self.total_enqueued_seconds += stats.enqueued_seconds
            self.total_proc_seconds += stats.processing_seconds

    def _average(self, total: float) -> float:
        return total / self.n_units if self.n_units else float("nan")

    @property
    def average_wait(self) -> float:
        with self._lock:
            return self._average(self.total_enqueued_seconds)

    @property
    def average_processing(self) -> float:
        with self._lock:
            return self._average(self.total_proc_seconds)

    def report(self) -> str:
        with self._lock:
            count = self.n_units
            wait = self._average(self.total_enqueued_seconds)
            proc = self._average(self.total_proc_seconds)
        return (
            f"Total units executed: {count}\n"
            f"Average unit wait in queue: {wait:f}\n"
            f"Average execution time: {proc:f}"
        )


class WorkQueue:
    """Bounded first-in first-out queue; put blocks when full, get when empty."""

    def __init__(self, maxsize: int = MAX_QUEUE_SIZE) -> None:
        if maxsize <= 0:
            raise ValueError("queue size must be positive")
        self.maxsize = maxsize
        self._items: deque = deque()
        self._cond = threading.Condition()

    def put(self, unit: WorkUnit) -> None:
        with self._cond:
            self._cond.wait_for(lambda: len(self._items) < self.maxsize)
            self._items.append(unit)
            self._cond.notify_all()

    def get(self) -> WorkUnit:
        with self._cond:
            self._cond.wait_for(lambda: len(self._items) > 0)
            unit = self._items.popleft()
            self._cond.notify_all()
            return unit

    def __len__(self) -> int:
        with self._cond:
            return len(self._items)


class WorkServer:
    """Worker threads taking units from one shared queue."""

    def __init__(self, num_workers: int = NUM_WORKER_THREADS,
                 queue_size: int = MAX_QUEUE_SIZE) -> None:
        if num_workers <= 0:
            raise ValueError("at least one worker is needed")
        print(f"Initializing server with {num_workers} WorkingThreads")
        self.queue = WorkQueue(queue_size)
        self.monitor = StatMonitor()
        self.failures: List[Tuple[WorkUnit, Exception]] = []
        self._report: Optional[str] = None
        self._closed = False
        self._lock = threading.Lock()
        self._threads: List[Tuple[int, threading.Thread]] = []
        for num in range(num_workers):
            print(f"Initializing thread {num}")
            thread = threading.Thread(target=self._work, args=(num,), daemon=True)
            thread.start()
            self._threads.append((num, thread))

    def _work(self, num: int) -> None:
        while True:
            unit = self.queue.get()
            if unit.func is None:
                break
            print(f"Thread {num} working with unit {unit.id}")
            unit.stats.start_time = time.monotonic()
            try:
                unit.func(unit.context)
            except Exception as exc:  # a failing unit must not take the worker down
                with self._lock:
                    self.failures.append((unit, exc))
            finally:
                unit.stats.end_time = time.monotonic()
            print(f"Thread {num} finished working with unit {unit.id}")
            self.monitor.update(unit.stats)

    def submit(self, unit: WorkUnit) -> None:
        """Stamp the submission time and queue the unit."""
        if unit.func is None:
            raise ValueError("a work unit needs a function")
        with self._lock:
            if self._closed:
                raise RuntimeError("server is shut down")
        unit.stats.submit_time = time.monotonic()
        self.queue.put(unit)

    def shutdown(self) -> str:
        """Stop every worker once the queue drains; returns the statistics."""
        with self._lock:
            if self._report is not None:
                return self._report
            self._closed = True
        for _ in self._threads:
            self.queue.put(WorkUnit(-1, None))
        for num, thread in self._threads:
            thread.join()
            print(f"Thread {num} joined")
        report = self.monitor.report()
        print(report)
        with self._lock:
            self._report = report
        return report

    def __enter__(self) -> "WorkServer":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()


def fake_work(seconds: float) -> None:
    """Stand-in workload: sleep for the given number of seconds."""
    time.sleep(seconds)


def generate_fake_work(server: WorkServer, num_calls: int = NUM_FUNC_CALLS,
                       arg_mod: int = ARG_MOD) -> List[WorkUnit]:
    """Submit num_calls sleeping units, unit i sleeping i % arg_mod seconds."""
    if arg_mod <= 0:
        raise ValueError("arg_mod must be positive")
    units = []
    for index in range(num_calls):
        unit = WorkUnit(index, fake_work, index % arg_mod)
        server.submit(unit)
        units.append(unit)
    return units


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the fake workload through a server and print its statistics."""
    del argv
    try:
        with WorkServer() as server:
            generate_fake_work(server, NUM_FUNC_CALLS, ARG_MOD)
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        return 1
    return 0