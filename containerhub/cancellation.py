"""Cooperative cancellation for import runs."""

import logging

from .errors import CancelledByUser

logger = logging.getLogger(__name__)


class CancellationToken:
    """Flag set by the user and polled before every unit of work.

    Work already in flight when the flag is set is allowed to finish.
    """

    def __init__(self):
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if not self._cancelled:
            logger.info("Import cancellation requested")
        self._cancelled = True

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise CancelledByUser("Import cancelled by user")
