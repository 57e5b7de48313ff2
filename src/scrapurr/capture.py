"""
Capture supervisor for Twitch Scrapurr.
Runs the capture tool and waits for it to exit or for an interrupt.
"""

import asyncio
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple

from .errors import ToolInvocationError
from .logger import get_channel_logger
from .tools import ToolSet, kill_group, pump_output, spawn, stop_process, wait_or_cancel


class CaptureStatus(Enum):
    """How a capture ended."""
    COMPLETED = "completed"
    INTERRUPTED = "interrupted"
    FAILED = "failed"


@dataclass
class CaptureResult:
    """Result of one capture run."""
    output_path: Path
    status: CaptureStatus
    returncode: Optional[int]
    started_at: datetime
    ended_at: datetime
    error: Optional[str] = None

    @property
    def file_size_bytes(self) -> int:
        try:
            return self.output_path.stat().st_size
        except OSError:
            return 0

    @property
    def has_media(self) -> bool:
        """The artifact exists and is non-empty."""
        return self.file_size_bytes > 0

    @property
    def duration_seconds(self) -> float:
        return (self.ended_at - self.started_at).total_seconds()

    @property
    def duration_formatted(self) -> str:
        hours = int(self.duration_seconds // 3600)
        minutes = int((self.duration_seconds % 3600) // 60)
        seconds = int(self.duration_seconds % 60)
        return f"{hours:02d}:{minutes:02d}:{seconds:02d}"

    @property
    def file_size_formatted(self) -> str:
        size = float(self.file_size_bytes)
        for unit in ['B', 'KB', 'MB', 'GB']:
            if size < 1024:
                return f"{size:.2f} {unit}"
            size /= 1024
        return f"{size:.2f} TB"


class ActiveCapture:
    """
    The capture child currently running, if any.

    Shared between the supervisor, which attaches and detaches it, and the
    interrupt handler, which reports it.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._process: Optional[asyncio.subprocess.Process] = None
        self._path: Optional[Path] = None

    def attach(self, process: asyncio.subprocess.Process, path: Path) -> None:
        with self._lock:
            if self._process is not None and self._process.returncode is None:
                raise RuntimeError(f"A capture is already running: {self._path}")
            self._process = process
            self._path = path

    def detach(self) -> None:
        with self._lock:
            self._process = None
            self._path = None

    def snapshot(self) -> Tuple[Optional[asyncio.subprocess.Process], Optional[Path]]:
        with self._lock:
            return self._process, self._path

    @property
    def current_path(self) -> Optional[Path]:
        return self.snapshot()[1]

    @property
    def is_running(self) -> bool:
        process, _ = self.snapshot()
        return process is not None and process.returncode is None


class CaptureSupervisor:
    """
    Launches and supervises the capture tool.

    One capture at a time. The child writes MPEG-TS, which stays playable
    when the write is cut short.
    """

    def __init__(self, tools: ToolSet, active: Optional[ActiveCapture] = None):
        self.tools = tools
        self.active = active or ActiveCapture()

    async def start_capture(
        self,
        target_url: str,
        output_path: Path,
        start_offset: Optional[str] = None
    ) -> asyncio.subprocess.Process:
        """
        Spawn the capture tool.

        Args:
            target_url: Channel, VOD or clip URL.
            output_path: Destination .ts file.
            start_offset: Optional VOD start offset ("1h2m3s").

        Returns:
            The running child process.

        Raises:
            ToolInvocationError: If the tool cannot be started.
            RuntimeError: If another capture is still running.
        """
        if self.active.is_running:
            raise RuntimeError(f"A capture is already running: {self.active.current_path}")

        output_path.parent.mkdir(parents=True, exist_ok=True)
        argv = self.tools.capture_command(target_url, output_path, start_offset)
        # Own process group, so helpers the tool starts can be stopped with it
        process = await spawn(argv, new_session=True)
        self.active.attach(process, output_path)
        return process

    async def supervise(
        self,
        process: asyncio.subprocess.Process,
        output_path: Path,
        cancel: asyncio.Event,
        label: str,
        started_at: Optional[datetime] = None
    ) -> CaptureResult:
        """
        Wait until the child exits or cancel is set.

        On cancel the child is stopped and reaped before returning, so the
        output file is closed before anything else reads it.
        """
        logger = get_channel_logger(label, 'capture')
        started_at = started_at or datetime.now()
        pump = asyncio.ensure_future(pump_output(process, logger, self.tools.downloader))

        try:
            interrupted, _ = await wait_or_cancel(process.wait(), cancel)
            if interrupted:
                logger.warning("Interrupt received, stopping capture...")
                await stop_process(process, logger, group=True)
            # Leftover helpers would hold the pipe open and keep writing
            kill_group(process)
            output = await pump
        finally:
            if not pump.done():
                pump.cancel()
            self.active.detach()

        # The child may exit on its own (stream ended, tool crashed)
        # just before the cancel is observed.
        if interrupted or cancel.is_set():
            status = CaptureStatus.INTERRUPTED
            error = None
        elif process.returncode == 0:
            status = CaptureStatus.COMPLETED
            error = None
        else:
            status = CaptureStatus.FAILED
            error = output[-500:] or f"exit status {process.returncode}"

        return CaptureResult(
            output_path=output_path,
            status=status,
            returncode=process.returncode,
            started_at=started_at,
            ended_at=datetime.now(),
            error=error,
        )

    async def capture(
        self,
        target_url: str,
        output_path: Path,
        cancel: asyncio.Event,
        label: str,
        start_offset: Optional[str] = None
    ) -> CaptureResult:
        """
        Capture target_url into output_path.

        Args:
            target_url: Channel, VOD or clip URL.
            output_path: Destination .ts file.
            cancel: Cancellation token set by the interrupt handler.
            label: Channel or target name for log context.
            start_offset: Optional VOD start offset.

        Returns:
            CaptureResult. A spawn failure yields FAILED, not an exception.
        """
        logger = get_channel_logger(label, 'capture')
        started_at = datetime.now()
        logger.info(f"Starting capture: {output_path.name}")

        try:
            process = await self.start_capture(target_url, output_path, start_offset)
        except ToolInvocationError as e:
            logger.error(f"Capture failed to start: {e}")
            return CaptureResult(
                output_path=output_path,
                status=CaptureStatus.FAILED,
                returncode=None,
                started_at=started_at,
                ended_at=datetime.now(),
                error=str(e),
            )

        result = await self.supervise(process, output_path, cancel, label, started_at)

        if result.status is CaptureStatus.COMPLETED:
            logger.info(f"Capture completed ({result.duration_formatted}, {result.file_size_formatted})")
        elif result.status is CaptureStatus.INTERRUPTED:
            logger.info(f"Capture interrupted ({result.duration_formatted}, {result.file_size_formatted})")
        elif result.has_media:
            logger.warning(f"Capture failed after writing {result.file_size_formatted}: {result.error}")
        else:
            logger.error(f"Capture failed: {result.error}")

        return result
