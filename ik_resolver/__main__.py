import sys
import time
from collections import deque
from dataclasses import dataclass
from typing import Deque, Tuple

import numpy as np
import tyro
from loguru import logger
from rich import box
from rich.console import Console, Group
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from ik_resolver.common_cli import CommonCLI
from ik_resolver.kinematics import ScrewChainKinematics
from ik_resolver.resolver import IKResolver
from ik_resolver.runner import ResolverRunner
from ik_resolver.se3 import Pose
from ik_resolver.trajectory import TargetTrajectory
from ik_resolver.waypoints import WaypointPair


@dataclass
class ResolverCLI(CommonCLI):
    """CLI options for the singularity round-trip demo."""

    target1_offset: Tuple[float, float, float] = (-0.1, 0.1, 0.0)
    """Offset of the first waypoint from the initial end-effector position [m]."""
    target2_offset: Tuple[float, float, float] = (0.3, 0.0, 0.0)
    """Offset of the second waypoint from the initial end-effector position [m]."""
    duration: float = 0.0
    """Seconds to run, 0 runs until Ctrl+C."""
    debug: bool = False
    """Pause before every tick until ENTER is pressed (disables the TUI)."""
    tui: bool = True
    """Show a live status panel."""
    log_level: str = "INFO"
    """Loguru log level."""


def offset_pose(pose: Pose, offset: Tuple[float, float, float]) -> Pose:
    return Pose(pose.position + np.asarray(offset, dtype=float), pose.orientation)


def debug_pause() -> None:
    logger.warning("Press ENTER to continue...")
    input()


def _fmt(vec: np.ndarray, precision: int = 3) -> str:
    return "  ".join(f"{v:.{precision}f}" for v in vec)


def generate_status_table(
    runner: ResolverRunner, trajectory: TargetTrajectory
) -> Panel:
    table = Table(box=box.ROUNDED, expand=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Loop Rate", f"{runner.loop_rate_hz:.1f} Hz")
    table.add_row("Ticks", str(runner.tick_count))
    name = trajectory.waypoints.names[trajectory.waypoint_id]
    table.add_row("Heading To", f"{name} ({trajectory.duration:.2f} s leg)")

    result = runner.latest
    if result is not None:
        table.add_section()
        table.add_row("EEF Pos", _fmt(result.current_pose.position))
        table.add_row("Target Pos", _fmt(result.target_pose.position))
        pos_error = np.linalg.norm(
            result.target_pose.position - result.current_pose.position
        )
        table.add_row("Position Error", f"{pos_error * 1000:.2f} mm")
        table.add_row(
            "Residual", f"{np.linalg.norm(result.residual):.2e}"
        )
        table.add_section()
        table.add_row("Step (deg)", _fmt(np.degrees(result.step)))
        table.add_row("Joints (deg)", _fmt(np.degrees(result.joints), 2))

        if np.any(np.abs(result.raw_step) > np.abs(result.step)):
            table.add_row("Clamp", "[bold yellow]joint step clamped[/bold yellow]")

    return Panel(table, title="[bold]Resolver Status[/bold]", border_style="blue")


def generate_log_panel(log_queue: Deque[str]) -> Panel:
    return Panel(
        Group(*[str(m).rstrip() for m in list(log_queue)[-15:]]),
        title="[bold]Logs[/bold]",
        border_style="white",
        box=box.ROUNDED,
    )


def main():
    cli = tyro.cli(ResolverCLI)
    settings = cli.to_settings()
    use_tui = cli.tui and not cli.debug

    log_queue: Deque[str] = deque(maxlen=50)
    logger.remove()
    if use_tui:
        logger.add(log_queue.append, format="{time:HH:mm:ss} - {message}", level=cli.log_level)
    else:
        logger.add(
            sys.stderr,
            colorize=True,
            format="<green>{time}</green> <level>{message}</level>",
            level=cli.log_level,
        )

    kinematics = ScrewChainKinematics.puma560()
    initial_joints = kinematics.get_default_config()
    eef_pose = kinematics.forward_kinematics(initial_joints)
    logger.info(f"Initial end-effector pose: {eef_pose}")

    waypoints = WaypointPair()
    waypoints.initialize(
        offset_pose(eef_pose, cli.target1_offset),
        offset_pose(eef_pose, cli.target2_offset),
    )

    trajectory = TargetTrajectory.from_settings(waypoints, eef_pose, settings)
    resolver = IKResolver.from_settings(kinematics, trajectory, settings)
    runner = ResolverRunner(
        resolver,
        initial_joints,
        rate_hz=settings.rate_hz,
        pause=debug_pause if cli.debug else None,
    )

    max_ticks = int(cli.duration * settings.rate_hz) if cli.duration > 0 else None
    logger.info(
        f"Running {settings.strategy.value} solver, lambda={settings.damping}, "
        f"epsilon={settings.epsilon}"
    )

    try:
        if use_tui:
            layout = Layout()
            layout.split_row(
                Layout(name="status", ratio=1), Layout(name="logs", ratio=1)
            )
            runner.start(max_ticks)
            with Live(layout, refresh_per_second=10, console=Console()):
                while runner.running:
                    layout["status"].update(generate_status_table(runner, trajectory))
                    layout["logs"].update(generate_log_panel(log_queue))
                    time.sleep(0.1)
        else:
            runner.run(max_ticks)
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except Exception as e:
        logger.exception(f"Resolver loop failed: {e}")
        runner.error = e
    finally:
        runner.stop()

    if runner.error is not None:
        print(f"Resolver stopped: {runner.error}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
