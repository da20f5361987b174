"""
Integration tests: drive the full reconciliation loop against the
authoritative server on a virtual clock, and briefly on real threads.
"""

import os
import tempfile
import unittest

from client.client import ReconciliationLoop, build_simulation
from client.prediction import PredictiveSimulator
from common.clock import ManualClock
from common.handoff import CorrectionMailbox, HandoffPolicy
from common.metrics_logger import MetricsLogger
from common.net import DeferredChannel, ThreadedChannel
from common.update import TickUpdate
from server.authority import AuthoritativeSimulator


def virtual_loop(client_speed=1, server_speed=2, capacity=20,
                 policy=HandoffPolicy.REPLACE, guard_stale=False,
                 metrics=None):
    """A loop whose idle sleep advances a ManualClock by 100 ms."""
    clock = ManualClock()
    loop = build_simulation(client_speed=client_speed,
                            server_speed=server_speed, delay_ms=3500,
                            tick_period_ms=1000, capacity=capacity,
                            policy=policy, guard_stale=guard_stale,
                            clock=clock, deferred=True, metrics=metrics,
                            idle_sleep=0.1, verbose=False)
    loop.sleep = lambda seconds: clock.advance(int(seconds * 1000))
    return loop, clock


class TestLoopStep(unittest.TestCase):
    """Single iterations of the loop."""

    def setUp(self):
        self.clock = ManualClock()
        self.server = AuthoritativeSimulator(speed=5, verbose=False)
        self.mailbox = CorrectionMailbox()
        self.channel = DeferredChannel(self.server.process_update, self.mailbox,
                                       self.clock, delay_ms=3500, verbose=False)
        self.client = PredictiveSimulator(channel=self.channel, speed=1,
                                          clock=self.clock, verbose=False)
        self.loop = ReconciliationLoop(self.client, self.mailbox, self.channel,
                                       verbose=False)
        self.client.bootstrap()

    def test_no_tick_before_period(self):
        self.clock.advance(999)
        self.assertIsNone(self.loop.step())
        self.assertEqual(self.client.next_id, 1)

    def test_tick_at_period(self):
        self.clock.advance(1000)
        update = self.loop.step()
        self.assertEqual(update.id, 1)
        self.assertEqual(update.delta_time, 1000)

    def test_elapsed_time_is_used_as_delta(self):
        self.clock.advance(1250)
        update = self.loop.step()
        self.assertEqual(update.delta_time, 1250)
        self.assertEqual(self.client.client_position, 1250)

    def test_pending_correction_applied_before_tick(self):
        self.clock.advance(1000)
        self.loop.step()
        self.clock.advance(1000)
        self.loop.step()
        self.mailbox.offer(TickUpdate(1, 1000, 5000))
        self.clock.advance(1000)
        update = self.loop.step()
        # Correction at tick 1 plus replayed tick 2, then tick 3
        self.assertEqual(update.position, 7000)
        self.assertEqual(self.loop.corrections_applied, 1)
        self.assertEqual(self.mailbox.pending, 0)

    def test_server_correction_reaches_client(self):
        self.clock.advance(1000)
        self.loop.step()                  # tick 1 sent, due at 4500
        self.clock.advance(3500)
        self.loop.step()                  # delivered, correction posted
        self.assertEqual(self.mailbox.pending, 1)
        self.loop.step()                  # correction applied
        self.assertEqual(self.loop.corrections_applied, 1)
        self.assertEqual(self.client.history.get(1).position, 5000)

    def test_server_failure_does_not_stop_loop(self):
        def broken(update):
            raise RuntimeError("boom")

        channel = DeferredChannel(broken, self.mailbox, self.clock,
                                  delay_ms=0, verbose=False)
        client = PredictiveSimulator(channel=channel, speed=1,
                                     clock=self.clock, verbose=False)
        loop = ReconciliationLoop(client, self.mailbox, channel, verbose=False)
        client.bootstrap()

        self.clock.advance(1000)
        loop.step()                       # tick 1 sent, due immediately
        self.clock.advance(1000)
        update = loop.step()              # delivery fails, tick 2 still runs
        self.assertEqual(update.id, 2)
        self.assertEqual(channel.total_failed, 1)
        self.assertEqual(self.mailbox.pending, 0)


class TestVirtualRun(unittest.TestCase):
    """Complete runs on a virtual clock."""

    def test_agreement_never_corrects(self):
        loop, _ = virtual_loop(client_speed=1, server_speed=1)
        loop.run(max_ticks=10)
        self.assertEqual(loop.client.next_id, 11)
        self.assertEqual(loop.client.client_position, 10000)
        self.assertEqual(loop.server.server_position, 10000)
        self.assertEqual(loop.mailbox.offered, 0)
        self.assertEqual(loop.corrections_applied, 0)

    def test_divergence_converges_to_server(self):
        loop, _ = virtual_loop(client_speed=1, server_speed=2)
        loop.run(max_ticks=10)
        self.assertEqual(loop.server.processed, 10)
        self.assertGreater(loop.corrections_applied, 0)
        self.assertEqual(loop.server.server_position, 20000)
        self.assertEqual(loop.client.client_position,
                         loop.server.server_position)

    def test_queue_policy_converges(self):
        loop, _ = virtual_loop(policy=HandoffPolicy.QUEUE)
        loop.run(max_ticks=8)
        self.assertEqual(loop.client.client_position,
                         loop.server.server_position)

    def test_guarded_history_drops_stale_corrections(self):
        loop, _ = virtual_loop(capacity=2, guard_stale=True)
        loop.run(max_ticks=6)
        self.assertGreater(loop.stale_dropped, 0)
        # The final correction is for the newest tick and is still retained
        self.assertEqual(loop.client.client_position,
                         loop.server.server_position)

    def test_max_steps(self):
        loop, clock = virtual_loop()
        loop.run(max_steps=25)
        self.assertEqual(loop.steps, 25)
        self.assertEqual(loop.client.next_id, 3)

    def test_metrics_recorded(self):
        metrics = MetricsLogger(log_dir=tempfile.mkdtemp())
        loop, _ = virtual_loop(metrics=metrics)
        loop.metrics_file = 'run.json'
        loop.run(max_ticks=6)

        self.assertEqual(len(metrics.data['ticks']), 6)
        self.assertEqual(len(metrics.data['corrections']),
                         loop.corrections_applied)
        summary = metrics.get_summary()
        self.assertEqual(summary['ticks'], 6)
        self.assertGreater(summary['error_max'], 0)
        self.assertTrue(os.path.exists(os.path.join(metrics.log_dir, 'run.json')))


class TestThreadedRun(unittest.TestCase):
    """A short real-time run with server tasks on worker threads."""

    def test_agreement_on_threads(self):
        server = AuthoritativeSimulator(speed=1, verbose=False)
        mailbox = CorrectionMailbox()
        channel = ThreadedChannel(server.process_update, mailbox, delay_ms=5,
                                  max_workers=1, verbose=False)
        client = PredictiveSimulator(channel=channel, speed=1, verbose=False)
        loop = ReconciliationLoop(client, mailbox, channel, tick_period_ms=10,
                                  idle_sleep=0.001, verbose=False)
        loop.run(max_ticks=5)

        self.assertEqual(server.processed, 5)
        self.assertEqual(mailbox.offered, 0)
        self.assertEqual(server.server_position, client.client_position)


if __name__ == '__main__':
    unittest.main()
