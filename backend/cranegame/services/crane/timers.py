"""Cooperative delayed/periodic task queue driving a game session.

Nothing here runs on its own: whoever owns a TaskScheduler pumps it with
run_due(), either a background worker in real time or a test with a
ManualClock. Callbacks run one at a time, to completion, in deadline
order, which is what lets the engine mutate session state without locks.
"""

import heapq
import itertools
import time
from typing import Callable, List, Optional, Set, Tuple


class ManualClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 0.0):
        self._now = float(start)

    def __call__(self) -> float:
        return self._now

    def advance(self, seconds: float) -> float:
        if seconds < 0:
            raise ValueError('clock cannot go backwards')
        self._now += seconds
        return self._now


class TaskHandle:
    __slots__ = ('deadline', 'interval', 'callback', 'args', 'cancelled', '_on_cancel')

    def __init__(self, deadline: float, callback: Callable, args: tuple, interval: Optional[float] = None):
        self.deadline = deadline
        self.interval = interval
        self.callback = callback
        self.args = args
        self.cancelled = False
        self._on_cancel: Optional[Callable[['TaskHandle'], None]] = None

    def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        if self._on_cancel is not None:
            self._on_cancel(self)

    def __repr__(self):
        name = getattr(self.callback, '__name__', repr(self.callback))
        state = 'cancelled' if self.cancelled else 'pending'
        return f"<TaskHandle {name} deadline={self.deadline:.3f} {state}>"


class TaskScheduler:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self._queue: List[Tuple[float, int, TaskHandle]] = []
        self._seq = itertools.count()
        self._dispatch_time: Optional[float] = None

    def now(self) -> float:
        # Inside a callback, time stands still at that callback's deadline so
        # chained timers do not drift by however late the pump woke up.
        if self._dispatch_time is not None:
            return self._dispatch_time
        return self.clock()

    def call_later(self, delay: float, callback: Callable, *args) -> TaskHandle:
        handle = TaskHandle(self.now() + max(0.0, delay), callback, args)
        self._push(handle)
        return handle

    def call_every(self, interval: float, callback: Callable, *args) -> TaskHandle:
        """Run callback every ``interval`` seconds, first run one interval from now."""
        if interval <= 0:
            raise ValueError('interval must be positive')
        handle = TaskHandle(self.now() + interval, callback, args, interval=interval)
        self._push(handle)
        return handle

    def _push(self, handle: TaskHandle) -> None:
        heapq.heappush(self._queue, (handle.deadline, next(self._seq), handle))

    def _drop_cancelled(self) -> None:
        while self._queue and self._queue[0][2].cancelled:
            heapq.heappop(self._queue)

    def next_deadline(self) -> Optional[float]:
        self._drop_cancelled()
        return self._queue[0][0] if self._queue else None

    def pending(self) -> int:
        return sum(1 for _, _, h in self._queue if not h.cancelled)

    def run_due(self, until: Optional[float] = None) -> int:
        """Run every task due at or before ``until`` (default: the clock).

        Tasks scheduled by callbacks are picked up in the same pass if they
        fall due. Returns the number of callbacks executed.
        """
        if until is None:
            until = self.clock()
        ran = 0
        while True:
            self._drop_cancelled()
            if not self._queue or self._queue[0][0] > until:
                break
            deadline, _, handle = heapq.heappop(self._queue)
            if handle.interval is not None:
                handle.deadline = deadline + handle.interval
                self._push(handle)
            self._dispatch_time = deadline
            try:
                handle.callback(*handle.args)
            finally:
                self._dispatch_time = None
            ran += 1
        return ran

    def scope(self) -> 'TaskScope':
        return TaskScope(self)


class TaskScope:
    """Owns the handles created through it; cancel_all() tears them all down."""

    def __init__(self, scheduler: TaskScheduler):
        self.scheduler = scheduler
        self._handles: Set[TaskHandle] = set()
        self.closed = False

    def _track(self, handle: TaskHandle) -> TaskHandle:
        if handle.interval is None:
            original = handle.callback

            def _run_once(*args):
                self._handles.discard(handle)
                return original(*args)

            _run_once.__name__ = getattr(original, '__name__', 'task')
            handle.callback = _run_once
        handle._on_cancel = self._handles.discard
        self._handles.add(handle)
        return handle

    def call_later(self, delay: float, callback: Callable, *args) -> TaskHandle:
        if self.closed:
            raise RuntimeError('scope is closed')
        return self._track(self.scheduler.call_later(delay, callback, *args))

    def call_every(self, interval: float, callback: Callable, *args) -> TaskHandle:
        if self.closed:
            raise RuntimeError('scope is closed')
        return self._track(self.scheduler.call_every(interval, callback, *args))

    def __len__(self) -> int:
        return len(self._handles)

    def cancel_all(self) -> int:
        handles = list(self._handles)
        self._handles.clear()
        for handle in handles:
            handle.cancel()
        self.closed = True
        return len(handles)
