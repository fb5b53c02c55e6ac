"""Fixed-width table of per-step, per-container timings for a build."""

from datetime import timedelta
from typing import Optional, Tuple

from circlewait.circle.builds import BuildDetail, Step

STEP_WIDTH = 45
CELL_WIDTH = 8

RED = "\033[38;05;160m"
RESET = "\033[0m"

_NANOSECOND = 1
_MICROSECOND = 1000 * _NANOSECOND
_MILLISECOND = 1000 * _MICROSECOND
_SECOND = 1000 * _MILLISECOND
_MINUTE = 60 * _SECOND


def _round_ns(ns: int, multiple: int) -> int:
    """Round ns to the nearest multiple, halfway values away from zero."""
    remainder = ns % multiple
    if remainder + remainder < multiple:
        return ns - remainder
    return ns + multiple - remainder


def round_runtime(runtime_ms: Optional[int]) -> Optional[int]:
    """Round an action runtime (milliseconds) for display, in nanoseconds.

    Runtimes over a minute round to the second, others to 10ms. None (the
    runtime is unknown) stays None.
    """
    if runtime_ms is None or runtime_ms < 0:
        return None
    ns = runtime_ms * _MILLISECOND
    if ns > _MINUTE:
        return _round_ns(ns, _SECOND)
    return _round_ns(ns, 10 * _MILLISECOND)


def format_duration(ns: Optional[int]) -> str:
    """Format a duration so decimals line up in the fourth column from the end."""
    if ns is None:
        return ""
    if ns == 0:
        return "0.0ms"
    if ns >= _MINUTE:
        minutes, rest = divmod(ns, _MINUTE)
        return f"{minutes}m{round(rest / _SECOND):02d}s"
    if ns >= _SECOND:
        return f"{ns / _SECOND:.1f}s"
    if ns >= 50 * _MICROSECOND:
        return f"{ns / _MILLISECOND:.0f}ms"
    if ns >= _MICROSECOND:
        return f"{ns / _MICROSECOND:.0f}µs"
    return f"{ns}ns"


def format_elapsed(elapsed: timedelta) -> str:
    """Format an elapsed time rounded to the second, e.g. 1h2m3s, 4m0s, 12s."""
    total = int(elapsed.total_seconds() + 0.5)
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours:
        return f"{hours}h{minutes}m{seconds}s"
    if minutes:
        return f"{minutes}m{seconds}s"
    return f"{seconds}s"


def format_cell(runtime_ms: Optional[int], failed: bool = False, use_color: bool = False) -> str:
    text = format_duration(round_runtime(runtime_ms)).rjust(CELL_WIDTH)
    if failed and use_color:
        return f"{RED}{text}{RESET}"
    return text


def format_step_name(name: str) -> str:
    name = name.replace("\n", "\\n")
    if len(name) > STEP_WIDTH - 2:
        return name[:STEP_WIDTH - 2] + "… "
    return name.ljust(STEP_WIDTH)


def _step_cells(step: Step, parallel: int, use_color: bool):
    cells = []
    for action in step.actions:
        while len(cells) < action.index:
            cells.append(" " * CELL_WIDTH)
        cells.append(format_cell(action.runtime_ms, action.failed, use_color))
    while len(cells) < parallel:
        cells.append(" " * CELL_WIDTH)
    return cells


def running_line(build_num: int, elapsed: timedelta) -> str:
    return f"Build {build_num} running... {format_elapsed(elapsed)} elapsed"


def render_statistics(build: BuildDetail, use_color: bool = False) -> Tuple[str, int]:
    """Render the statistics table for build.

    Returns the table and the number of terminal lines it occupies once
    followed by a newline, which is how many lines a redraw must erase.
    """
    lines = []
    header = "Step".ljust(STEP_WIDTH)
    width = STEP_WIDTH
    for i in range(build.parallel):
        header += str(i).ljust(CELL_WIDTH)
        width += CELL_WIDTH
    lines.append(header)
    lines.append("=" * width)
    for step in build.steps:
        lines.append(format_step_name(step.name) + "".join(_step_cells(step, build.parallel, use_color)))
    text = "\n".join(lines) + "\n"
    if build.running:
        text += running_line(build.build_num, build.elapsed()) + "\n"
    return text, text.count("\n") + 1
