"""
Cooperative cancellation for classification runs.

A CancellationToken is handed to every operation that can suspend
(network attempts, backoff sleeps, per-file iterations). Aborting cancels
the current token and hands out a fresh one, so the next command does
not start out cancelled.

Usage:
    controller = AbortController()
    token = controller.token
    await classifier.classify_vault(InputType.CONTENT, token)
    ...
    controller.abort()   # e.g. from a SIGINT handler
"""

import asyncio
import logging

from .errors import ClassificationAborted

logger = logging.getLogger(__name__)


class CancellationToken:
    """One-shot cancellation flag shared by the operations of a single run"""

    def __init__(self):
        self._cancelled = False
        self._event = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self):
        self._cancelled = True
        if self._event is not None:
            self._event.set()

    def raise_if_cancelled(self):
        if self._cancelled:
            raise ClassificationAborted("Classification aborted")

    async def sleep(self, delay: float):
        """Sleep for `delay` seconds, waking early if the token is cancelled"""
        if self._cancelled:
            return
        if self._event is None:
            self._event = asyncio.Event()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass


class AbortController:
    """Owns the current token; abort() cancels it and installs a new one"""

    def __init__(self):
        self._token = CancellationToken()

    @property
    def token(self) -> CancellationToken:
        return self._token

    def abort(self) -> CancellationToken:
        """Cancel the running token and return the one that replaced it"""
        logger.info("Aborting classification")
        self._token.cancel()
        self._token = CancellationToken()
        return self._token
