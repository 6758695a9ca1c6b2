import threading
import time
from typing import Callable, List, Optional
import numpy as np
from loguru import logger
from ik_resolver.resolver import IKResolver, TickResult

TickCallback = Callable[[TickResult], None]


class ResolverRunner:
    """
    Drives an :class:`IKResolver` at a fixed rate and owns the joint vector.

    Every tick result is forwarded to the subscribed callbacks (joint command
    transport, visualization, ...). A failing subscriber is logged and skipped;
    a resolver failure (e.g. :class:`NonFiniteError`) stops the loop. On the
    worker thread it is logged and kept in ``error``.
    """

    def __init__(
        self,
        resolver: IKResolver,
        initial_joints: np.ndarray,
        rate_hz: float = 512.0,
        pause: Optional[Callable[[], None]] = None,
        status_every: int = 512,
    ):
        """
        Initialize the runner.

        Args:
            resolver: The resolver to tick.
            initial_joints: Starting joint vector.
            rate_hz: Tick rate.
            pause: Optional blocking callable invoked before every tick (step-through debugging).
            status_every: Log a status line every this many ticks.
        """
        if rate_hz <= 0.0:
            raise ValueError("rate_hz must be positive")
        self.resolver = resolver
        self.rate_hz = rate_hz
        self.pause = pause
        self.status_every = status_every

        self._lock = threading.Lock()
        self._joints = np.array(initial_joints, dtype=float)
        self._latest: TickResult | None = None
        self._subscribers: List[TickCallback] = []
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._last_tick_time: float | None = None

        self.tick_count = 0
        self.loop_rate_hz = 0.0
        self.error: Exception | None = None

    @property
    def joints(self) -> np.ndarray:
        with self._lock:
            return self._joints.copy()

    @property
    def latest(self) -> TickResult | None:
        with self._lock:
            return self._latest

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def subscribe(self, callback: TickCallback) -> None:
        """Register a callback receiving every TickResult."""
        self._subscribers.append(callback)

    def step(self) -> TickResult:
        """Run a single tick, publish it and return it."""
        if self.pause is not None:
            self.pause()

        result = self.resolver.tick(self.joints)

        now = time.perf_counter()
        if self._last_tick_time is not None and now > self._last_tick_time:
            self.loop_rate_hz = 1.0 / (now - self._last_tick_time)
        self._last_tick_time = now

        with self._lock:
            self._joints = result.joints
            self._latest = result
        self.tick_count += 1

        for callback in self._subscribers:
            try:
                callback(result)
            except Exception as e:
                logger.error(f"[Runner] Error in subscriber {callback}: {e}")

        if self.status_every > 0 and self.tick_count % self.status_every == 0:
            logger.debug(
                f"[Runner] Loop is running at {self.loop_rate_hz:.1f} Hz\n"
                f"       step (deg): {np.round(np.degrees(result.step), 3)}\n"
                f"current joints (deg): {np.round(np.degrees(result.joints), 3)}"
            )
        return result

    def run(self, max_ticks: int | None = None) -> None:
        """
        Tick at the configured rate until stopped or ``max_ticks`` is reached.

        Raises:
            NonFiniteError: Propagated from the resolver, like any other tick failure.
        """
        self._stop_event.clear()
        self._loop(max_ticks)

    def _loop(self, max_ticks: int | None) -> None:
        period = 1.0 / self.rate_hz
        ticks = 0
        next_time = time.perf_counter()
        while not self._stop_event.is_set():
            if max_ticks is not None and ticks >= max_ticks:
                break
            self.step()
            ticks += 1

            next_time += period
            delay = next_time - time.perf_counter()
            if delay > 0:
                self._stop_event.wait(delay)
            else:
                # Fell behind, do not try to catch up with a burst of ticks.
                next_time = time.perf_counter()

    def _run_in_thread(self, max_ticks: int | None) -> None:
        try:
            self._loop(max_ticks)
        except Exception as e:
            self.error = e
            logger.exception(f"[Runner] Stopping resolver loop: {e}")

    def start(self, max_ticks: int | None = None) -> None:
        """Start ticking on a daemon worker thread."""
        if self.running:
            raise RuntimeError("Runner is already running")
        self.error = None
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_in_thread, args=(max_ticks,), daemon=True
        )
        self._thread.start()
        logger.info(f"[Runner] Started at {self.rate_hz:.0f} Hz")

    def stop(self, timeout: float | None = None) -> None:
        """Signal the loop to stop and wait for the worker thread."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info(f"[Runner] Stopped after {self.tick_count} ticks")
