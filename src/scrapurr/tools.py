"""
External tool command lines and subprocess helpers for Twitch Scrapurr.

Stream discovery and capture are done by streamlink (or yt-dlp), conversion
by ffmpeg and contact sheets by vcsi. Everything here treats them as
black boxes: argv in, exit status and output text back.
"""

import asyncio
import os
import re
import shutil
import signal
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from .errors import ToolInvocationError


# Contact sheet layout
CONTACT_SHEET_GRID = "4x6"
CONTACT_SHEET_WIDTH = 1500

# Seconds to wait at each stage of stopping a child process
STOP_GRACE_SECONDS = 10
TERMINATE_GRACE_SECONDS = 5

OUTPUT_TAIL_LINES = 20

# Child output is split into lines on CR as well as LF
LINE_BREAK = re.compile(rb"[\r\n]")
OUTPUT_CHUNK_SIZE = 4096
MAX_LINE_BYTES = 64 * 1024


@dataclass
class ToolSet:
    """Executables and options used for every external invocation."""
    downloader: str = "streamlink"  # "streamlink" or "yt-dlp"
    quality: str = "best"
    downloader_path: Optional[str] = None  # Defaults to the downloader name on PATH
    ffmpeg_path: str = "ffmpeg"
    vcsi_path: str = "vcsi"

    @classmethod
    def from_settings(cls, settings) -> 'ToolSet':
        return cls(downloader=settings.downloader, quality=settings.quality)

    @property
    def downloader_executable(self) -> str:
        return self.downloader_path or self.downloader

    def probe_command(self, url: str) -> List[str]:
        """Command that exits 0 only when a stream is available at url."""
        if self.downloader == "yt-dlp":
            return [
                self.downloader_executable,
                '--simulate', '--quiet', '--no-warnings',
                '--format', self.quality,
                url,
            ]
        return [self.downloader_executable, '--stream-url', url, self.quality]

    def capture_command(
        self,
        url: str,
        output_path: Path,
        start_offset: Optional[str] = None
    ) -> List[str]:
        """Command that writes the stream at url into output_path (MPEG-TS)."""
        if self.downloader == "yt-dlp":
            cmd = [
                self.downloader_executable,
                '--no-part',
                '--hls-use-mpegts',
                '--format', self.quality,
                '--output', str(output_path),
            ]
            if start_offset:
                cmd.extend(['--download-sections', f"*{offset_to_seconds(start_offset)}-inf"])
            cmd.append(url)
            return cmd

        cmd = [self.downloader_executable, url, self.quality, '--output', str(output_path)]
        if start_offset:
            cmd.extend(['--hls-start-offset', start_offset])
        return cmd

    def convert_command(self, input_path: Path, output_path: Path, reencode: bool) -> List[str]:
        """ffmpeg command: stream copy into MP4, or a full re-encode."""
        cmd = [
            self.ffmpeg_path,
            '-hide_banner', '-loglevel', 'error', '-nostdin',
            '-y',
            '-i', str(input_path),
        ]
        if reencode:
            cmd.extend([
                '-c:v', 'libx264', '-preset', 'veryfast', '-crf', '20',
                '-c:a', 'aac', '-b:a', '160k',
            ])
        else:
            cmd.extend(['-c', 'copy'])  # Remux only
        cmd.extend(['-movflags', '+faststart', str(output_path)])
        return cmd

    def contact_sheet_command(self, input_path: Path, output_path: Path) -> List[str]:
        return [
            self.vcsi_path,
            str(input_path),
            '-g', CONTACT_SHEET_GRID,
            '-w', str(CONTACT_SHEET_WIDTH),
            '-t',
            '-o', str(output_path),
        ]


def offset_to_seconds(offset: str) -> int:
    """Convert a Twitch "1h2m3s" offset to seconds."""
    total = 0
    for amount, unit in re.findall(r'(\d+)([hms])', offset):
        total += int(amount) * {'h': 3600, 'm': 60, 's': 1}[unit]
    return total


def find_executable(name: str) -> Optional[str]:
    return shutil.which(name)


def verify_tools(tools: ToolSet, need_ffmpeg: bool, need_vcsi: bool) -> List[str]:
    """
    Check that external tools are on PATH.

    Args:
        tools: Tool set to check.
        need_ffmpeg: Conversion is enabled.
        need_vcsi: Contact sheets are enabled.

    Returns:
        Warnings for missing optional tools.

    Raises:
        ToolInvocationError: If the capture tool is missing.
    """
    if not find_executable(tools.downloader_executable):
        raise ToolInvocationError(
            tools.downloader_executable,
            detail="not found on PATH; it is required for checking and capturing streams"
        )

    warnings = []
    if need_ffmpeg and not find_executable(tools.ffmpeg_path):
        warnings.append(f"{tools.ffmpeg_path} not found on PATH, MP4 conversion will fail")
    if need_vcsi and not find_executable(tools.vcsi_path):
        warnings.append(f"{tools.vcsi_path} not found on PATH, contact sheets will fail")
    return warnings


async def spawn(argv: List[str], new_session: bool = False) -> asyncio.subprocess.Process:
    """
    Start an external tool with stdout and stderr merged into one pipe.

    Raises:
        ToolInvocationError: If the executable cannot be started.
    """
    try:
        return await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,  # Merge to avoid pipe deadlock
            start_new_session=new_session and os.name != 'nt',
        )
    except OSError as e:
        raise ToolInvocationError(argv[0], detail=str(e)) from e


def output_tail(output: str, lines: int = OUTPUT_TAIL_LINES) -> str:
    return '\n'.join(output.strip().splitlines()[-lines:])


async def run_tool(argv: List[str], new_session: bool = False) -> str:
    """
    Run a tool to completion.

    Returns:
        Combined stdout/stderr text.

    Raises:
        ToolInvocationError: If the tool is missing or exits non-zero.
    """
    process = await spawn(argv, new_session=new_session)
    stdout, _ = await process.communicate()
    output = stdout.decode('utf-8', errors='ignore')

    if process.returncode != 0:
        raise ToolInvocationError(Path(argv[0]).name, process.returncode, output_tail(output))
    return output


async def wait_or_cancel(aw, cancel: asyncio.Event):
    """
    Wait for an awaitable or for cancel to be set, whichever comes first.

    Returns:
        (cancelled, result). result is None when cancelled.
    """
    work = asyncio.ensure_future(aw)
    cancelled = asyncio.ensure_future(cancel.wait())
    try:
        done, _ = await asyncio.wait({work, cancelled}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (work, cancelled):
            if not task.done():
                task.cancel()
        await asyncio.gather(work, cancelled, return_exceptions=True)

    if work in done and not work.cancelled():
        return False, work.result()
    return True, None


async def stop_process(process: asyncio.subprocess.Process, logger, group: bool = False) -> None:
    """
    Stop a child process: SIGINT, then SIGTERM, then SIGKILL.

    Args:
        process: Child to stop.
        logger: Logger for escalation warnings.
        group: The child leads its own process group (spawned with
            new_session); signal the whole group so helpers it started stop too.

    Returns once the process has been reaped.
    """
    if process.returncode is not None:
        return

    group = group and os.name != 'nt'
    try:
        if group:
            os.killpg(process.pid, signal.SIGINT)
        elif os.name == 'nt':
            process.terminate()
        else:
            # SIGINT lets the capture tool flush and close the file
            process.send_signal(signal.SIGINT)

        try:
            await asyncio.wait_for(process.wait(), timeout=STOP_GRACE_SECONDS)
            return
        except asyncio.TimeoutError:
            logger.warning("Timeout, sending SIGTERM...")
            if group:
                os.killpg(process.pid, signal.SIGTERM)
            else:
                process.terminate()

        try:
            await asyncio.wait_for(process.wait(), timeout=TERMINATE_GRACE_SECONDS)
        except asyncio.TimeoutError:
            logger.warning("Force killing process...")
            if group:
                os.killpg(process.pid, signal.SIGKILL)
            else:
                process.kill()
            await process.wait()
    except ProcessLookupError:
        # Already gone
        await process.wait()


def kill_group(process: asyncio.subprocess.Process) -> None:
    """SIGKILL whatever is left of the process group led by an exited child."""
    if os.name == 'nt':
        return
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        pass  # Group is empty


async def pump_output(process: asyncio.subprocess.Process, logger, prefix: str) -> str:
    """
    Relay a child's output to the debug log until EOF.

    Output is read in chunks and split on both CR and LF, so progress bars
    redrawn with a bare CR never build up an unbounded line.

    Returns:
        The last lines of output, for error messages.
    """
    tail: deque = deque(maxlen=OUTPUT_TAIL_LINES)
    if process.stdout is None:
        return ""

    def record(raw: bytes) -> None:
        text = raw.decode('utf-8', errors='ignore').strip()
        if text:
            tail.append(text)
            logger.debug(f"{prefix}: {text}")

    pending = b""
    while True:
        chunk = await process.stdout.read(OUTPUT_CHUNK_SIZE)
        if not chunk:
            break
        *lines, pending = LINE_BREAK.split(pending + chunk)
        for line in lines:
            record(line)
        if len(pending) > MAX_LINE_BYTES:
            record(pending)
            pending = b""

    record(pending)
    return '\n'.join(tail)
