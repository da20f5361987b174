"""
Main simulation driver: ticks the predicting client, hands its updates to
the latent server channel, and applies corrections as they come back.
"""

import time

from common.clock import MonotonicClock
from common.config import (
    CLIENT_SPEED, SERVER_SPEED, SERVER_DELAY_MS, TICK_PERIOD_MS,
    HISTORY_CAPACITY, IDLE_SLEEP, DEFAULT_HANDOFF_POLICY
)
from common.errors import StaleTickError
from common.handoff import CorrectionMailbox, HandoffPolicy
from common.metrics_logger import MetricsLogger
from common.net import DeferredChannel, ThreadedChannel
from client.prediction import PredictiveSimulator
from server.authority import AuthoritativeSimulator


class ReconciliationLoop:
    """
    Interleaves correction handling and tick processing.

    Each step(): apply a pending correction if there is one, deliver any
    due server work, then advance the client if a tick period has elapsed.
    """

    def __init__(self, client: PredictiveSimulator, mailbox: CorrectionMailbox,
                 channel=None, tick_period_ms: int = TICK_PERIOD_MS,
                 idle_sleep: float = IDLE_SLEEP, metrics: MetricsLogger = None,
                 metrics_file: str = None, sleep=time.sleep,
                 server=None, verbose: bool = True):
        self.client = client
        self.server = server            # AuthoritativeSimulator, if wired by build_simulation()
        self.mailbox = mailbox
        self.channel = channel
        self.tick_period_ms = tick_period_ms
        self.idle_sleep = idle_sleep
        self.metrics = metrics
        self.metrics_file = metrics_file
        self.sleep = sleep
        self.verbose = verbose
        self.running = False

        # Statistics
        self.steps = 0
        self.corrections_applied = 0
        self.stale_dropped = 0

    def _log(self, msg: str):
        if self.verbose:
            print(msg, flush=True)

    def on_conflict(self, conflict):
        """Mailbox callback; runs on the server task that hit the conflict."""
        self._log(f"[CLIENT] Handoff conflict: {conflict}")
        if self.metrics:
            self.metrics.log_conflict(conflict.pending_id, conflict.incoming_id)

    def handle_correction(self, correction):
        """Reconcile against one correction. Returns the ReplayResult or None."""
        try:
            result = self.client.reconcile(correction)
        except StaleTickError as e:
            self.stale_dropped += 1
            self._log(f"[CLIENT] Dropping correction: {e}")
            if self.metrics:
                self.metrics.log_stale(e.tick_id, e.next_id)
            return None

        self.corrections_applied += 1
        if self.metrics:
            self.metrics.log_correction(result)
        return result

    def step(self):
        """Run one loop iteration. Returns the tick advanced, if any."""
        self.steps += 1

        # 1. Corrections first
        correction = self.mailbox.take()
        if correction is not None:
            self.handle_correction(correction)

        # 2. Deliver due server work (deferred channel only)
        if self.channel is not None:
            self.channel.flush()

        # 3. Advance the prediction if a tick period has elapsed
        elapsed = self.client.timer.elapsed_ms()
        if elapsed >= self.tick_period_ms:
            update = self.client.advance_tick(elapsed)
            if self.metrics:
                self.metrics.log_tick(update.id, update.delta_time, update.position)
            return update
        return None

    def drain(self) -> int:
        """Apply every correction still waiting in the mailbox."""
        count = 0
        correction = self.mailbox.take()
        while correction is not None:
            self.handle_correction(correction)
            count += 1
            correction = self.mailbox.take()
        return count

    def stop(self):
        self.running = False

    def run(self, max_steps: int = None, max_ticks: int = None):
        """
        Main loop. Runs until stop(), a step/tick limit, or Ctrl-C.

        On a normal finish the channel is shut down (letting in-flight
        server work complete) and late corrections are drained.
        """
        self.running = True
        if not self.client.bootstrapped:
            self._log("[CLIENT] Starting simulation...")
            self.client.bootstrap()

        finished = False
        try:
            while self.running:
                self.step()
                if max_steps is not None and self.steps >= max_steps:
                    break
                if max_ticks is not None and self.client.next_id > max_ticks:
                    break
                if self.idle_sleep > 0:
                    self.sleep(self.idle_sleep)
            finished = True
        except KeyboardInterrupt:
            self._log("\n[CLIENT] Interrupted")
        finally:
            self.running = False
            if self.channel is not None:
                self.channel.shutdown(wait=finished)
            if finished:
                self.drain()
            self._log(f"[CLIENT] Final position: {self.client.client_position} "
                      f"after {self.client.next_id - 1} ticks, "
                      f"{self.corrections_applied} corrections")
            if self.metrics:
                if self.metrics_file:
                    self.metrics.save(self.metrics_file)
                summary = self.metrics.get_summary()
                if summary:
                    self._log(f"[CLIENT] Metrics summary: {summary}")


def build_simulation(client_speed: int = CLIENT_SPEED,
                     server_speed: int = SERVER_SPEED,
                     delay_ms: int = SERVER_DELAY_MS,
                     tick_period_ms: int = TICK_PERIOD_MS,
                     capacity: int = HISTORY_CAPACITY,
                     policy: str = DEFAULT_HANDOFF_POLICY,
                     guard_stale: bool = False,
                     clock=None, deferred: bool = False,
                     metrics: MetricsLogger = None, metrics_file: str = None,
                     idle_sleep: float = IDLE_SLEEP,
                     verbose: bool = True) -> ReconciliationLoop:
    """
    Wire server, channel, mailbox, client and loop together.

    With ``deferred=True`` server work is delivered from the loop's own
    flush() against ``clock``; otherwise each update gets a delayed task
    on a thread pool.
    """
    clock = clock or MonotonicClock()
    server = AuthoritativeSimulator(speed=server_speed, verbose=verbose)
    mailbox = CorrectionMailbox(policy=policy)

    if deferred:
        channel = DeferredChannel(server.process_update, mailbox, clock,
                                  delay_ms=delay_ms, verbose=verbose)
    else:
        channel = ThreadedChannel(server.process_update, mailbox,
                                  delay_ms=delay_ms, verbose=verbose)

    client = PredictiveSimulator(channel=channel, speed=client_speed,
                                 capacity=capacity, clock=clock,
                                 guard_stale=guard_stale, verbose=verbose)
    loop = ReconciliationLoop(client, mailbox, channel,
                              tick_period_ms=tick_period_ms,
                              idle_sleep=idle_sleep, metrics=metrics,
                              metrics_file=metrics_file, server=server,
                              verbose=verbose)
    mailbox.on_conflict = loop.on_conflict
    return loop


def main():
    """Entry point for running the simulation standalone."""
    import argparse
    parser = argparse.ArgumentParser(
        description='Client prediction / server reconciliation simulator')
    parser.add_argument('--client-speed', type=int, default=CLIENT_SPEED,
                        help='Client movement per millisecond')
    parser.add_argument('--server-speed', type=int, default=SERVER_SPEED,
                        help='Server movement per millisecond')
    parser.add_argument('--delay-ms', type=int, default=SERVER_DELAY_MS,
                        help='Simulated server delay (ms)')
    parser.add_argument('--tick-ms', type=int, default=TICK_PERIOD_MS,
                        help='Client tick period (ms)')
    parser.add_argument('--capacity', type=int, default=HISTORY_CAPACITY,
                        help='History ring buffer size')
    parser.add_argument('--policy', choices=HandoffPolicy.ALL,
                        default=DEFAULT_HANDOFF_POLICY,
                        help='What to do with a correction that arrives '
                             'while another is pending')
    parser.add_argument('--guard-stale', action='store_true',
                        help='Drop corrections for ticks evicted from history')
    parser.add_argument('--max-ticks', type=int, default=None,
                        help='Stop after this many ticks (default: run forever)')
    parser.add_argument('--metrics', default=None,
                        help='Save metrics JSON under analysis/logs with this name')
    parser.add_argument('--quiet', action='store_true',
                        help='Suppress progress narration')
    args = parser.parse_args()

    metrics = MetricsLogger() if args.metrics else None
    loop = build_simulation(
        client_speed=args.client_speed, server_speed=args.server_speed,
        delay_ms=args.delay_ms, tick_period_ms=args.tick_ms,
        capacity=args.capacity, policy=args.policy,
        guard_stale=args.guard_stale, metrics=metrics,
        metrics_file=args.metrics, verbose=not args.quiet
    )
    loop.run(max_ticks=args.max_ticks)


if __name__ == '__main__':
    main()
