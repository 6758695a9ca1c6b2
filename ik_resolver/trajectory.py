import time
from typing import Callable
import numpy as np
from loguru import logger
from ik_resolver.config import ResolverSettings
from ik_resolver.se3 import Pose, align_quaternion, quaternion_angle, slerp
from ik_resolver.waypoints import WaypointPair


class TargetTrajectory:
    """
    Moving intermediate target shuttling between the two waypoints.

    The output travels from its current pose to the active waypoint at bounded
    linear and angular speed (linear interpolation for position, slerp for
    orientation). Once it arrives within tolerance the next ``update`` resets
    the leg towards the other waypoint; a leg that starts within tolerance
    runs until the output equals its destination. The destination is read from the
    waypoint pair only at reset time, so moving a waypoint mid-leg does not
    retarget the current leg.
    """

    waypoints: WaypointPair
    max_linear_speed: float
    max_angular_speed: float
    tolerance: float

    def __init__(
        self,
        waypoints: WaypointPair,
        initial_pose: Pose,
        max_linear_speed: float,
        max_angular_speed: float,
        tolerance: float = 0.01,
        clock: Callable[[], float] = time.monotonic,
        poll_interval: float = 1.0,
    ):
        """
        Initialize the trajectory and start the first leg towards waypoint 0.

        Blocks until ``waypoints`` has been populated.

        Args:
            waypoints: The externally updated waypoint pair.
            initial_pose: Starting pose of the output, usually the current end-effector pose.
            max_linear_speed: Linear speed bound [m/sec].
            max_angular_speed: Angular speed bound [rad/sec].
            tolerance: Per-component arrival tolerance on position and quaternion.
            clock: Monotonic time source in seconds.
            poll_interval: Period of the "waiting" log while blocked.
        """
        if max_linear_speed <= 0.0 or max_angular_speed <= 0.0:
            raise ValueError("Trajectory speeds must be positive")
        self.waypoints = waypoints
        self.max_linear_speed = max_linear_speed
        self.max_angular_speed = max_angular_speed
        self.tolerance = tolerance
        self._clock = clock

        waypoints.wait_until_ready(poll_interval)

        self._pose = initial_pose
        self._reset(0)

    @classmethod
    def from_settings(
        cls,
        waypoints: WaypointPair,
        initial_pose: Pose,
        settings: ResolverSettings,
        **kwargs,
    ) -> "TargetTrajectory":
        return cls(
            waypoints,
            initial_pose,
            max_linear_speed=settings.max_linear_speed,
            max_angular_speed=settings.max_angular_speed,
            tolerance=settings.arrival_tolerance,
            **kwargs,
        )

    @property
    def pose(self) -> Pose:
        return self._pose

    @property
    def waypoint_id(self) -> int:
        return self._waypoint_id

    @property
    def source(self) -> Pose:
        return self._source

    @property
    def destination(self) -> Pose:
        return self._destination

    @property
    def start_time(self) -> float | None:
        return self._start_time

    @property
    def duration(self) -> float:
        return self._duration

    def is_close(self) -> bool:
        """Whether the output is within tolerance of the active destination."""
        q_dst = self._destination.orientation
        q_out = align_quaternion(self._pose.orientation, q_dst)
        return bool(
            np.all(np.abs(self._pose.position - self._destination.position) < self.tolerance)
            and np.all(np.abs(q_out - q_dst) < self.tolerance)
        )

    def _arrived(self) -> bool:
        # A leg that began inside the tolerance band only ends at its destination.
        if self._leg_complete:
            return True
        return not self._started_close and self.is_close()

    def update(self) -> Pose:
        """Advance the output pose to the current time and return it."""
        now = self._clock()
        if self._arrived():
            self._reset(1 - self._waypoint_id)
        if self._start_time is None:
            self._start_time = now

        elapsed = now - self._start_time
        if self._duration <= 0.0:
            t = 1.0
        else:
            t = min(max(elapsed / self._duration, 0.0), 1.0)

        if t >= 1.0:
            self._pose = self._destination
            self._leg_complete = True
        else:
            position = self._source.position + t * (
                self._destination.position - self._source.position
            )
            orientation = slerp(
                self._source.orientation, self._destination.orientation, t
            )
            self._pose = Pose(position, orientation)
        return self._pose

    def _reset(self, waypoint_id: int) -> None:
        self._waypoint_id = waypoint_id
        self._source = self._pose
        self._destination = self.waypoints.get(waypoint_id)
        # The leg clock starts on the first update of the leg.
        self._start_time = None
        self._leg_complete = False
        self._started_close = self.is_close()

        linear_dist = float(
            np.linalg.norm(self._destination.position - self._source.position)
        )
        angle = quaternion_angle(self._source.orientation, self._destination.orientation)
        self._duration = max(
            linear_dist / self.max_linear_speed, angle / self.max_angular_speed
        )
        logger.debug(
            f"[TargetTrajectory] Heading to waypoint {waypoint_id} "
            f"({linear_dist:.3f} m, {np.degrees(angle):.1f} deg) over {self._duration:.2f} s"
        )
