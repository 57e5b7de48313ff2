"""
Availability poller for Twitch Scrapurr.
Asks the capture tool whether a channel is broadcasting.
"""

import asyncio

from .errors import ToolInvocationError
from .logger import get_channel_logger
from .targets import channel_url
from .tools import ToolSet, output_tail, spawn, stop_process, wait_or_cancel


class AvailabilityPoller:
    """
    Polls a channel until it goes live.

    A check is a single run of the inspection command; exit status 0 means
    the channel has a playable stream. Failures of the tool itself count as
    offline and are retried on the next cycle.
    """

    def __init__(self, tools: ToolSet, check_interval: int = 60):
        """
        Initialize poller.

        Args:
            tools: External tool set.
            check_interval: Seconds to sleep after an offline check.
        """
        self.tools = tools
        self.check_interval = check_interval
        self.checks = 0

    async def is_live(self, channel: str, cancel: asyncio.Event) -> bool:
        """
        Check once whether a channel is broadcasting.

        Args:
            channel: Twitch username.
            cancel: Set to abandon the check.

        Returns:
            True if live. False if offline, on tool failure, or when cancelled.
        """
        logger = get_channel_logger(channel, 'poller')
        argv = self.tools.probe_command(channel_url(channel))
        self.checks += 1

        try:
            process = await spawn(argv)
        except ToolInvocationError as e:
            logger.error(f"Live check failed: {e}")
            return False

        cancelled, result = await wait_or_cancel(process.communicate(), cancel)
        if cancelled:
            await stop_process(process, logger)
            return False

        stdout, _ = result
        if process.returncode == 0:
            return True

        output = output_tail(stdout.decode('utf-8', errors='ignore'), lines=3)
        if output:
            logger.debug(f"{self.tools.downloader}: {output}")
        return False

    async def pause(self, cancel: asyncio.Event) -> bool:
        """
        Sleep for one check interval.

        Returns:
            True if cancel was set during the sleep.
        """
        try:
            await asyncio.wait_for(cancel.wait(), timeout=self.check_interval)
            return True
        except asyncio.TimeoutError:
            return False

    async def wait_until_live(self, channel: str, cancel: asyncio.Event) -> bool:
        """
        Poll until the channel is live. There is no upper bound on attempts.

        Returns:
            True once live, False if cancelled first.
        """
        logger = get_channel_logger(channel, 'poller')

        while not cancel.is_set():
            if await self.is_live(channel, cancel):
                logger.info(f"Stream is live! Recording {channel}'s stream.")
                return True
            if cancel.is_set():
                break

            logger.info(f"No available streams found, checking again in {self.check_interval} seconds...")
            if await self.pause(cancel):
                break

        return False
