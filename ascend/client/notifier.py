"""User-facing notices raised by the client toolkit.

The default notifier writes to the log. Applications with a UI swap in
their own implementation (toasts, status bar) via ``set_notifier``.
"""

import logging

logger = logging.getLogger(__name__)


class Notifier:
    """Sink for short messages meant for the end user."""

    def info(self, message: str) -> None:
        logger.info(message)

    def error(self, message: str) -> None:
        logger.error(message)


_notifier = Notifier()


def get_notifier() -> Notifier:
    return _notifier


def set_notifier(notifier: Notifier) -> None:
    global _notifier
    _notifier = notifier
