"""
Latent in-process channel from client to server.

Each update sent by the client is handed to the server after a simulated
delay, on its own schedule, and any correction the server produces is
posted to the CorrectionMailbox. send() never blocks the caller and
returns a Future resolving to the correction (or None).

ThreadedChannel runs one delayed task per update on a thread pool.
DeferredChannel holds updates until a clock says they are due and
delivers them from flush(); paired with a ManualClock it makes the whole
exchange deterministic.
"""

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor

from common.config import SERVER_DELAY_MS
from common.errors import HandoffConflictError


class _LatentChannel:
    """Shared delivery bookkeeping for both channel flavours."""

    def __init__(self, handler, mailbox, delay_ms: int = SERVER_DELAY_MS,
                 verbose: bool = True):
        if delay_ms < 0:
            raise ValueError(f"Delay must be non-negative, got {delay_ms}")
        self.handler = handler          # callable(TickUpdate) -> TickUpdate | None
        self.mailbox = mailbox
        self.delay_ms = delay_ms
        self.verbose = verbose

        # Statistics, bumped from worker threads under _stats_lock
        self._stats_lock = threading.Lock()
        self.total_sent = 0
        self.total_delivered = 0
        self.total_corrections = 0
        self.total_rejected = 0
        self.total_failed = 0

    def _log(self, msg: str):
        if self.verbose:
            print(msg, flush=True)

    def _count(self, name: str):
        with self._stats_lock:
            setattr(self, name, getattr(self, name) + 1)

    def _post(self, correction):
        """Hand a correction to the client side of the mailbox."""
        self._count('total_corrections')
        try:
            self.mailbox.offer(correction)
        except HandoffConflictError as e:
            self._count('total_rejected')
            self._log(f"[SERVER] Correction dropped: {e}")

    def flush(self) -> list:
        return []

    def shutdown(self, wait: bool = True):
        pass


class ThreadedChannel(_LatentChannel):
    """
    Runs every delivery as an independent delayed task.

    The delay sleeps only the worker thread. Tasks are never cancelled;
    shutdown(wait=True) lets every in-flight delivery finish.
    """

    def __init__(self, handler, mailbox, delay_ms: int = SERVER_DELAY_MS,
                 sleep=time.sleep, max_workers: int = None,
                 verbose: bool = True):
        super().__init__(handler, mailbox, delay_ms, verbose)
        self.sleep = sleep
        self.executor = ThreadPoolExecutor(max_workers=max_workers,
                                           thread_name_prefix='server-task')

    def send(self, update) -> Future:
        """Dispatch an update without waiting for it."""
        self._count('total_sent')
        future = self.executor.submit(self._deliver, update)
        future.add_done_callback(self._on_done)
        return future

    def _deliver(self, update):
        if self.delay_ms > 0:
            self.sleep(self.delay_ms / 1000.0)
        return self.handler(update)

    def _on_done(self, future: Future):
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            self._count('total_failed')
            self._log(f"[SERVER] Update processing failed: {exc!r}")
            return
        self._count('total_delivered')
        correction = future.result()
        if correction is not None:
            self._post(correction)

    def shutdown(self, wait: bool = True):
        self.executor.shutdown(wait=wait)


class DeferredChannel(_LatentChannel):
    """
    Queues updates with a delivery time and delivers them on flush().

    Delivery order is (due time, send order), so with a fixed delay the
    server sees updates exactly in the order they were sent.
    """

    def __init__(self, handler, mailbox, clock, delay_ms: int = SERVER_DELAY_MS,
                 verbose: bool = True):
        super().__init__(handler, mailbox, delay_ms, verbose)
        self.clock = clock
        self.delayed_updates = []   # (deliver_time, seq, update, future)
        self._seq = 0

    def send(self, update) -> Future:
        self._count('total_sent')
        future = Future()
        future.set_running_or_notify_cancel()
        deliver_time = self.clock.now_ms() + self.delay_ms
        self.delayed_updates.append((deliver_time, self._seq, update, future))
        self._seq += 1
        return future

    @property
    def in_flight(self) -> int:
        return len(self.delayed_updates)

    def flush(self) -> list:
        """Deliver every update whose time has come. Returns the corrections."""
        now = self.clock.now_ms()
        due = sorted(d for d in self.delayed_updates if d[0] <= now)
        if not due:
            return []
        self.delayed_updates = [d for d in self.delayed_updates if d[0] > now]
        return self._deliver_all(due)

    def _deliver_all(self, entries) -> list:
        """Run each entry through the server; a failure resolves only its own future."""
        corrections = []
        for _, _, update, future in entries:
            try:
                correction = self.handler(update)
            except Exception as e:
                self._count('total_failed')
                future.set_exception(e)
                self._log(f"[SERVER] Update processing failed: {e!r}")
                continue
            self._count('total_delivered')
            future.set_result(correction)
            if correction is not None:
                corrections.append(correction)
                self._post(correction)
        return corrections

    def shutdown(self, wait: bool = True):
        """Deliver whatever is still in flight, ignoring due times."""
        if wait and self.delayed_updates:
            pending = sorted(self.delayed_updates)
            self.delayed_updates = []
            self._deliver_all(pending)
