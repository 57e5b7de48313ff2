"""
Interrupt handling for Twitch Scrapurr.

SIGINT and SIGTERM never unwind the stack directly. The handler only sets a
cancellation event; whoever is waiting on it decides what to do based on the
current session phase.
"""

import asyncio
import signal
from enum import Enum
from typing import List, Optional

from .capture import ActiveCapture
from .logger import get_logger


class Phase(Enum):
    """Session lifecycle."""
    IDLE = "idle"
    POLLING = "polling"
    CAPTURING = "capturing"
    POST_PROCESSING = "post_processing"
    DONE = "done"


HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class InterruptHandler:
    """
    Turns termination signals into a cooperative cancellation.

    First signal: sets `cancel`. While idle or polling this ends the run
    with no post-processing; while capturing it stops the child and lets
    post-processing finish. Later signals are ignored with a warning.
    """

    def __init__(self, active: Optional[ActiveCapture] = None):
        self.active = active or ActiveCapture()
        self.cancel = asyncio.Event()
        self.phase = Phase.IDLE
        self.signals_received = 0
        self._logger = get_logger('interrupt')
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._installed: List[signal.Signals] = []
        self._previous = {}

    def enter(self, phase: Phase) -> None:
        self._logger.debug(f"Phase: {self.phase.value} -> {phase.value}")
        self.phase = phase

    @property
    def interrupted(self) -> bool:
        return self.cancel.is_set()

    def trigger(self) -> None:
        """Handle one termination signal."""
        self.signals_received += 1

        if self.cancel.is_set():
            if self.phase is Phase.POST_PROCESSING:
                self._logger.warning("Already shutting down, waiting for post-processing to finish...")
            else:
                self._logger.warning("Already shutting down...")
            return

        self._logger.info("Received Ctrl+C, shutting down gracefully ᗜˬᗜ")
        if self.phase is Phase.CAPTURING:
            current = self.active.current_path
            if current:
                self._logger.info(f"Interrupt received. Current file: {current}")
        self.cancel.set()

    def install(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """Register signal handlers on the running loop."""
        self._loop = loop or asyncio.get_running_loop()
        for sig in HANDLED_SIGNALS:
            try:
                self._loop.add_signal_handler(sig, self.trigger)
            except NotImplementedError:
                # Windows event loops have no add_signal_handler
                self._previous[sig] = signal.signal(
                    sig, lambda signum, frame: self._loop.call_soon_threadsafe(self.trigger)
                )
            self._installed.append(sig)

    def uninstall(self) -> None:
        for sig in self._installed:
            if sig in self._previous:
                signal.signal(sig, self._previous.pop(sig))
            elif self._loop is not None:
                self._loop.remove_signal_handler(sig)
        self._installed.clear()
