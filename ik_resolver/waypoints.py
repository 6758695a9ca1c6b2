import threading
from typing import Sequence
from loguru import logger
from ik_resolver.se3 import Pose

DEFAULT_NAMES = ("eef_target1", "eef_target2")


class WaypointPair:
    """
    Two round-trip targets written by an external source (e.g. a UI callback).

    Each waypoint lives in its own lock-guarded cell. Writers replace the whole
    Pose and readers get the stored snapshot, so a reader never observes a
    partially written pose. ``ready`` is set once both cells have been written.
    """

    def __init__(self, names: Sequence[str] = DEFAULT_NAMES):
        if len(names) != 2:
            raise ValueError(f"WaypointPair needs exactly two names, got {names}")
        self.names = tuple(names)
        self._locks = (threading.Lock(), threading.Lock())
        self._poses: list[Pose | None] = [None, None]
        self._ready = threading.Event()

    def set(self, index: int, pose: Pose) -> None:
        """Replace waypoint ``index`` (0 or 1) with a copy of ``pose``."""
        snapshot = Pose(pose.position, pose.orientation)
        with self._locks[index]:
            self._poses[index] = snapshot
        if not self._ready.is_set() and all(p is not None for p in self._poses):
            self._ready.set()
            logger.info("[Waypoints] Both waypoints initialized")

    def set_by_name(self, name: str, pose: Pose) -> None:
        """Feedback entry point addressing a waypoint by its name."""
        try:
            index = self.names.index(name)
        except ValueError:
            raise KeyError(
                f"Unknown waypoint '{name}', expected one of {self.names}"
            ) from None
        logger.info(f"[Waypoints] {name} is now at {pose}")
        self.set(index, pose)

    def initialize(self, first: Pose, second: Pose) -> None:
        self.set(0, first)
        self.set(1, second)

    def get(self, index: int) -> Pose:
        """Return the latest snapshot of waypoint ``index``."""
        with self._locks[index]:
            pose = self._poses[index]
        if pose is None:
            raise LookupError(f"Waypoint '{self.names[index]}' has not been set yet")
        return pose

    @property
    def ready(self) -> bool:
        return self._ready.is_set()

    def wait_until_ready(self, poll_interval: float = 1.0) -> None:
        """Block until both waypoints have been written at least once."""
        while not self._ready.wait(timeout=poll_interval):
            logger.info("[Waypoints] Waiting for waypoint initialization...")
