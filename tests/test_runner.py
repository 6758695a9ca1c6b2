import threading
import time

import numpy as np
import pytest
from loguru import logger

from ik_resolver.resolver import NonFiniteError, TickResult
from ik_resolver.runner import ResolverRunner
from ik_resolver.se3 import Pose


class CountingResolver:
    """Adds a fixed step to the joints on every tick."""

    def __init__(self, step=0.1, fail_after=None):
        self.step = step
        self.fail_after = fail_after
        self.calls = 0
        self.seen = []

    def tick(self, joints):
        self.calls += 1
        self.seen.append(joints)
        if self.fail_after is not None and self.calls > self.fail_after:
            raise NonFiniteError("Non-finite Jacobian")
        step = np.full_like(joints, self.step)
        zeros = np.zeros(6)
        pose = Pose.identity()
        return TickResult(
            joints=joints + step,
            step=step,
            raw_step=step,
            current_pose=pose,
            target_pose=pose,
            body_twist_error=zeros,
            spatial_twist_error=zeros,
            residual=zeros,
        )


def test_step_updates_joints_and_publishes():
    runner = ResolverRunner(CountingResolver(), np.zeros(3), rate_hz=100.0)
    received = []
    runner.subscribe(received.append)

    result = runner.step()
    np.testing.assert_allclose(result.joints, [0.1, 0.1, 0.1])
    np.testing.assert_allclose(runner.joints, [0.1, 0.1, 0.1])
    assert runner.latest is result
    assert runner.tick_count == 1
    assert received == [result]

    runner.step()
    np.testing.assert_allclose(runner.joints, [0.2, 0.2, 0.2])


def test_joints_property_returns_a_copy():
    runner = ResolverRunner(CountingResolver(), np.zeros(3))
    joints = runner.joints
    joints[0] = 5.0
    np.testing.assert_allclose(runner.joints, np.zeros(3))


def test_failing_subscriber_is_logged_and_skipped():
    runner = ResolverRunner(CountingResolver(), np.zeros(2))
    received = []

    def broken(result):
        raise RuntimeError("transport down")

    runner.subscribe(broken)
    runner.subscribe(received.append)

    logs = []
    handler_id = logger.add(lambda msg: logs.append(msg), level="ERROR")
    try:
        runner.step()
    finally:
        logger.remove(handler_id)

    assert len(received) == 1
    assert any("transport down" in str(m) for m in logs)


def test_pause_is_called_before_every_tick():
    resolver = CountingResolver()
    order = []
    runner = ResolverRunner(resolver, np.zeros(1), pause=lambda: order.append(resolver.calls))
    runner.step()
    runner.step()
    assert order == [0, 1]


def test_run_stops_after_max_ticks():
    resolver = CountingResolver(step=0.5)
    runner = ResolverRunner(resolver, np.zeros(2), rate_hz=1000.0)
    runner.run(max_ticks=5)
    assert resolver.calls == 5
    np.testing.assert_allclose(runner.joints, [2.5, 2.5])


def test_run_propagates_non_finite_error():
    runner = ResolverRunner(CountingResolver(fail_after=2), np.zeros(2), rate_hz=1000.0)
    with pytest.raises(NonFiniteError):
        runner.run()
    assert runner.tick_count == 2
    np.testing.assert_allclose(runner.joints, [0.2, 0.2])


def test_start_and_stop_worker_thread():
    resolver = CountingResolver(step=0.0)
    runner = ResolverRunner(resolver, np.zeros(2), rate_hz=500.0)
    runner.start()
    try:
        assert runner.running
        with pytest.raises(RuntimeError):
            runner.start()
        deadline = time.monotonic() + 2.0
        while runner.tick_count < 3 and time.monotonic() < deadline:
            time.sleep(0.01)
    finally:
        runner.stop(timeout=2.0)

    assert not runner.running
    assert runner.tick_count >= 3
    assert runner.error is None


def test_worker_records_non_finite_error():
    runner = ResolverRunner(CountingResolver(fail_after=1), np.zeros(2), rate_hz=1000.0)
    runner.start()
    runner._thread.join(timeout=2.0)
    assert isinstance(runner.error, NonFiniteError)
    assert not runner.running
    runner.stop()


def test_stop_interrupts_slow_loop():
    runner = ResolverRunner(CountingResolver(), np.zeros(1), rate_hz=0.5)
    started = threading.Event()
    runner.subscribe(lambda result: started.set())
    runner.start()
    assert started.wait(timeout=2.0)

    begin = time.monotonic()
    runner.stop(timeout=2.0)
    # The two second tick period is not waited out.
    assert time.monotonic() - begin < 1.0
    assert runner.tick_count == 1


def test_rejects_non_positive_rate():
    with pytest.raises(ValueError):
        ResolverRunner(CountingResolver(), np.zeros(1), rate_hz=0.0)


def test_worker_records_any_resolver_failure():
    class ShapeMismatch(CountingResolver):
        def tick(self, joints):
            raise ValueError("Jacobian shape (6, 6) does not match 5 joints")

    runner = ResolverRunner(ShapeMismatch(), np.zeros(5), rate_hz=1000.0)
    logs = []
    handler_id = logger.add(lambda msg: logs.append(msg), level="ERROR")
    try:
        runner.start()
        runner._thread.join(timeout=2.0)
    finally:
        logger.remove(handler_id)

    assert isinstance(runner.error, ValueError)
    assert not runner.running
    assert any("does not match" in str(m) for m in logs)
    runner.stop()
