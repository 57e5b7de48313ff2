"""
Twitch Scrapurr - main orchestrator.

Record mode: poll a channel, capture the broadcast, post-process, repeat.
Download mode: capture one VOD or clip, post-process, exit.
"""

from pathlib import Path
from typing import Optional

from .capture import ActiveCapture, CaptureResult, CaptureStatus, CaptureSupervisor
from .config import Settings
from .interrupt import InterruptHandler, Phase
from .logger import get_channel_logger, get_logger
from .poller import AvailabilityPoller
from .postprocess import DerivedArtifacts, PostProcessor
from .targets import VideoTarget, channel_url, live_capture_path, video_capture_path
from .tools import ToolSet


class ScrapurrApp:
    """
    Coordinates polling, capture and post-processing for one target.

    Every stage runs sequentially on one task; the interrupt handler's
    cancellation event is the only thing that reroutes the flow.
    """

    def __init__(
        self,
        settings: Settings,
        output_dir: Optional[Path] = None,
        tools: Optional[ToolSet] = None,
        once: bool = False
    ):
        """
        Initialize application.

        Args:
            settings: Loaded settings.
            output_dir: Output directory override for this run.
            tools: External tool set (default: derived from settings).
            once: Stop after the first recorded broadcast.
        """
        self.settings = settings
        self.output_dir = Path(output_dir).expanduser() if output_dir else settings.output_path
        self.tools = tools or ToolSet.from_settings(settings)
        self.once = once
        self._logger = get_logger('app')

        self.active = ActiveCapture()
        self.interrupts = InterruptHandler(self.active)
        self.poller = AvailabilityPoller(self.tools, settings.check_interval)
        self.supervisor = CaptureSupervisor(self.tools, self.active)
        self.postprocessor = PostProcessor.from_settings(self.tools, settings)

    async def _finish_capture(self, result: CaptureResult, label: str) -> Optional[DerivedArtifacts]:
        """Post-process a capture unless it produced nothing."""
        logger = get_channel_logger(label, 'app')
        self.interrupts.enter(Phase.POST_PROCESSING)

        if not result.has_media:
            logger.info("No media was captured, skipping post-processing")
            return None

        if result.status is CaptureStatus.FAILED:
            # Partial media from a failed capture is still processed
            logger.warning("Capture failed but wrote data, processing partial file")

        return await self.postprocessor.process(result.output_path, label)

    async def record(self, username: str) -> int:
        """
        Record a channel whenever it is live.

        Returns:
            Process exit status.
        """
        logger = get_channel_logger(username, 'app')
        vods_dir = self.output_dir / username / "vods"
        vods_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Recording {username} into {vods_dir}")

        cancel = self.interrupts.cancel
        while True:
            self.interrupts.enter(Phase.POLLING)
            if not await self.poller.wait_until_live(username, cancel):
                logger.info("Stopped while waiting for the stream, nothing to process")
                break

            self.interrupts.enter(Phase.CAPTURING)
            output_path = live_capture_path(self.output_dir, username)
            result = await self.supervisor.capture(channel_url(username), output_path, cancel, username)

            await self._finish_capture(result, username)

            if self.interrupts.interrupted or self.once:
                break

            logger.info("Waiting briefly before checking for the next stream...")
            self.interrupts.enter(Phase.POLLING)
            if await self.poller.pause(cancel):
                break

        self.interrupts.enter(Phase.DONE)
        return 0

    async def download(self, target: VideoTarget) -> int:
        """
        Download one VOD or clip.

        Returns:
            Process exit status.
        """
        logger = get_channel_logger(target.identifier, 'app')
        output_path = video_capture_path(self.output_dir, target)
        logger.info(f"Downloading {target.kind.value}: {target.url}")

        self.interrupts.enter(Phase.CAPTURING)
        result = await self.supervisor.capture(
            target.url, output_path, self.interrupts.cancel, target.identifier,
            start_offset=target.start_offset
        )

        await self._finish_capture(result, target.identifier)
        self.interrupts.enter(Phase.DONE)

        if result.status is CaptureStatus.FAILED and not result.has_media:
            logger.error(f"Failed to download {target.kind.value}")
            return 1
        return 0

    async def run(self, username: Optional[str] = None, target: Optional[VideoTarget] = None) -> int:
        """Run record or download mode with signal handlers installed."""
        self.interrupts.install()
        try:
            if target is not None:
                return await self.download(target)
            return await self.record(username)
        finally:
            self.interrupts.uninstall()
