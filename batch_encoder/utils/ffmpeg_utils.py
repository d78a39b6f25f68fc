"""
This module provides the low-level wrappers around the external tools.
It includes a function for running command-line processes under a wall-clock
timeout and the ffprobe call built on top of it.
"""

import json
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from loguru import logger

from ..domain.exceptions import ProbeError


@dataclass(frozen=True)
class CommandResult:
    """
    The outcome of an external command.

    Attributes:
        returncode: The exit status; `None` when the command timed out or
                    could not be started.
        stdout: Captured standard output.
        stderr: Captured standard error, the diagnostic text of ffmpeg.
        timed_out: Whether the command was killed by the timeout.
    """

    returncode: Optional[int]
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out


def _to_text(data: Any) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return str(data)


def run_cmd(
    cmd_list: List[str],
    timeout: Optional[float] = None,
    show_cmd: bool = False,
) -> CommandResult:
    """
    Executes an external command and captures its output.

    This is a wrapper around `subprocess.run` that adds logging and turns
    every way a command can go wrong into a `CommandResult`, so callers only
    have one shape to inspect.

    Args:
        cmd_list: The command to execute, as a list of arguments.
        timeout: Wall-clock limit in seconds. On expiry the process is killed
                 and the result is marked as timed out.
        show_cmd: If True, the command is logged at DEBUG level before execution.

    Returns:
        A `CommandResult` with the return code, stdout and stderr.
    """
    if not cmd_list:
        raise ValueError("run_cmd received an empty command list.")

    display_cmd_str = shlex.join(str(part) for part in cmd_list)
    if show_cmd:
        logger.debug(f"Executing: {display_cmd_str}")

    try:
        result = subprocess.run(
            [str(part) for part in cmd_list],
            stdin=subprocess.DEVNULL,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
            shell=False,
        )
    except subprocess.TimeoutExpired as e:
        logger.warning(f"Command timed out after {timeout}s: {display_cmd_str}")
        return CommandResult(
            returncode=None,
            stdout=_to_text(e.stdout),
            stderr=_to_text(e.stderr) + f"\nTimed out after {timeout} seconds",
            timed_out=True,
        )
    except FileNotFoundError:
        logger.error(f"Command not found: {cmd_list[0]}. Is it installed and in PATH?")
        return CommandResult(returncode=None, stderr=f"Command not found: {cmd_list[0]}")
    except OSError as e:
        logger.error(f"Could not start command {display_cmd_str}: {e}")
        return CommandResult(returncode=None, stderr=str(e))

    if result.stdout:
        logger.trace(f"Command stdout: {result.stdout[:500]}")
    if result.stderr and result.returncode != 0:
        logger.debug(f"Command stderr (rc={result.returncode}): {result.stderr[-2000:]}")
    elif result.stderr:
        logger.trace(f"Command stderr (rc={result.returncode}): {result.stderr[-2000:]}")

    return CommandResult(
        returncode=result.returncode, stdout=result.stdout, stderr=result.stderr
    )


def probe_media(
    path: Path, ffprobe_cmd: str = "ffprobe", timeout: Optional[float] = None
) -> Dict[str, Any]:
    """
    Probes a media file with ffprobe and parses its JSON report.

    Args:
        path: The file to probe.
        ffprobe_cmd: The ffprobe executable.
        timeout: Wall-clock limit in seconds; the process is killed on expiry.

    Returns:
        The parsed ffprobe JSON output (format and streams).

    Raises:
        ProbeError: If ffprobe fails, times out, cannot be started, or prints
                    something that is not a JSON object.
    """
    cmd_list = [
        ffprobe_cmd, "-v", "error", "-show_format", "-show_streams", "-of", "json", str(path)
    ]
    result = run_cmd(cmd_list, timeout=timeout)
    if result.timed_out:
        raise ProbeError(f"ffprobe timed out after {timeout}s for {path}")
    if not result.ok:
        raise ProbeError(f"ffprobe failed for {path}: {result.stderr.strip()}")
    try:
        probe_data = json.loads(result.stdout)
    except ValueError as e:
        raise ProbeError(f"Unreadable ffprobe output for {path}: {e}") from e
    if not isinstance(probe_data, dict):
        raise ProbeError(f"Unexpected ffprobe output for {path}")
    return probe_data
