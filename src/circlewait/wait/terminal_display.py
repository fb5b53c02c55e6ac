"""TerminalDisplay: in-place redraw of the statistics table.

Used as a context manager so the cursor is shown again however the wait ends.
"""

import os
import sys

from circlewait.circle.build_statistics import render_statistics

HIDE_CURSOR = "\033[?25l"
SHOW_CURSOR = "\033[?25h"
ERASE_LINE_AND_UP = "\033[2K\r\033[1A"
UP_TWO_AND_ERASE_LINE = "\033[2A\r\033[2K"


class TerminalDisplay:
    """Writes statistics tables to stream, overwriting the previous table on a TTY.

    Args:
        stream: Output stream, stdout by default.
        interactive: Force TTY behaviour on or off; detected from stream if None.
    """

    def __init__(self, stream=None, interactive=None):
        self._stream = stream or sys.stdout
        if interactive is None:
            isatty = getattr(self._stream, "isatty", None)
            interactive = bool(isatty and isatty())
        self.interactive = interactive
        self._erase_enabled = os.environ.get("DEBUG_HTTP_TRAFFIC") != "true"

    def __enter__(self) -> "TerminalDisplay":
        if self.interactive:
            self._write(HIDE_CURSOR)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if self.interactive:
            self._write(SHOW_CURSOR)
        return False

    def _write(self, text):
        self._stream.write(text)
        self._stream.flush()

    def clear(self, lines: int):
        """Erase lines lines, leaving the cursor where the first of them began."""
        if self._erase_enabled and lines > 0:
            self._write(ERASE_LINE_AND_UP * lines)

    def draw(self, build, prev_lines_drawn: int) -> int:
        """Replace the previous table with build's statistics.

        Returns the number of lines the next draw must erase.
        """
        stats, lines = render_statistics(build, use_color=self.interactive)
        self.clear(prev_lines_drawn)
        self._write(stats + "\n")
        return lines

    def draw_final(self, build, prev_lines_drawn: int):
        """Draw the last table, without the trailing blank line redraws need."""
        self.draw(build, prev_lines_drawn)
        self.clear(1)

    def print_statistics(self, build):
        stats, _ = render_statistics(build, use_color=False)
        self._write(stats)

    def rewrite_trailer(self, text: str):
        """Replace the last line of the table drawn by draw() with text."""
        if not self._erase_enabled:
            return
        self._write(UP_TWO_AND_ERASE_LINE + text + "\n\n")
