"""Desktop notifications with a link back to the build."""

import shutil
import subprocess
import sys


class Notifier:
    """Shows a short system notification that opens open_url when clicked.

    Uses terminal-notifier on macOS and notify-send elsewhere. If neither is
    installed, display() does nothing.
    """

    def __init__(self, name, open_url=""):
        self.name = name
        self.open_url = open_url

    def _command(self, title):
        if shutil.which("terminal-notifier"):
            cmd = ["terminal-notifier", "-title", self.name, "-message", title]
            if self.open_url:
                cmd.extend(["-open", self.open_url])
            return cmd
        if shutil.which("notify-send"):
            body = self.open_url or title
            return ["notify-send", f"{self.name}: {title}", body]
        return None

    def display(self, title):
        cmd = self._command(title)
        if cmd is None:
            return False
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=10)
        except (OSError, subprocess.TimeoutExpired) as err:
            print(f"Could not display notification: {err}", file=sys.stderr)
            return False
        if result.returncode != 0:
            print(f"Could not display notification: {result.stderr.strip()}", file=sys.stderr)
            return False
        return True
