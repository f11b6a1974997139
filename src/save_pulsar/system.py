import logging
import shutil
import subprocess
import sys

from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)


class SystemStrategy:
    """Desktop notifications for a platform. The base class shows nothing."""

    def notify(self, title: str, message: str, urgent: bool = False) -> None:
        """Shows a desktop notification.

        Args:
            title (str): The notification title.
            message (str): The notification body text.
            urgent (bool, optional): Whether the message reports a failure the
                                     user should act on. Defaults to False.
        """
        logger.debug(f"Notification not shown on {sys.platform}: {title}")

    def _send(self, cmd: list[str]) -> None:
        if shutil.which(cmd[0]) is None:
            logger.debug(f"Notifier not available: {cmd[0]}")
            return
        try:
            subprocess.run(cmd, stderr=subprocess.DEVNULL, timeout=10)
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.debug(f"Notification failed: {e}")


class MacOSStrategy(SystemStrategy):
    """Notifications through AppleScript."""

    def notify(self, title: str, message: str, urgent: bool = False) -> None:
        # Double quotes would terminate the AppleScript string literal.
        clean_msg = message.replace('"', "'")
        clean_title = title.replace('"', "'")
        script = f'display notification "{clean_msg}" with title "{clean_title}"'
        if urgent:
            script += ' sound name "Basso"'
        self._send(["osascript", "-e", script])


class LinuxStrategy(SystemStrategy):
    """Notifications through `notify-send`."""

    def notify(self, title: str, message: str, urgent: bool = False) -> None:
        urgency = "critical" if urgent else "normal"
        self._send(["notify-send", "-a", APP_NAME, "-u", urgency, title, message])


def get_system() -> SystemStrategy:
    """Returns the notification strategy for the running platform."""
    if sys.platform == "darwin":
        return MacOSStrategy()
    if sys.platform.startswith("linux"):
        return LinuxStrategy()
    return SystemStrategy()
