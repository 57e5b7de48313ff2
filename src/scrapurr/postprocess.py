"""
Post-processing module for Twitch Scrapurr.
Converts captures to MP4 with ffmpeg and renders contact sheets with vcsi.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .errors import ToolInvocationError
from .logger import get_channel_logger
from .tools import ToolSet, run_tool


@dataclass
class DerivedArtifacts:
    """Files produced from one capture."""
    source: Path
    converted: Optional[Path] = None
    contact_sheet: Optional[Path] = None
    skipped: bool = False

    @property
    def conversion_source(self) -> Path:
        return self.converted or self.source


def converted_path(capture_path: Path) -> Path:
    return capture_path.with_suffix('.mp4')


def contact_sheet_path(capture_path: Path) -> Path:
    return capture_path.with_suffix('.jpg')


class PostProcessor:
    """
    Runs the optional conversion and contact sheet steps on a capture.

    Both steps are independent: a failure is logged and the other step
    still runs. The raw capture is never modified or removed.
    """

    def __init__(
        self,
        tools: ToolSet,
        convert_to_mp4: bool = True,
        use_ffmpeg_convert: bool = False,
        generate_contact_sheet: bool = True
    ):
        """
        Initialize post-processor.

        Args:
            tools: External tool set.
            convert_to_mp4: Produce an MP4 next to the capture.
            use_ffmpeg_convert: Re-encode instead of stream copy.
            generate_contact_sheet: Produce a JPEG thumbnail grid.
        """
        self.tools = tools
        self.convert_to_mp4 = convert_to_mp4
        self.use_ffmpeg_convert = use_ffmpeg_convert
        self.generate_contact_sheet = generate_contact_sheet

    @classmethod
    def from_settings(cls, tools: ToolSet, settings) -> 'PostProcessor':
        return cls(
            tools,
            convert_to_mp4=settings.convert_to_mp4,
            use_ffmpeg_convert=settings.use_ffmpeg_convert,
            generate_contact_sheet=settings.generate_contact_sheet,
        )

    async def convert(self, capture_path: Path, logger) -> Optional[Path]:
        """
        Convert the capture to MP4.

        Returns:
            Path of the MP4, or None on failure.
        """
        output_path = converted_path(capture_path)
        mode = "re-encoding" if self.use_ffmpeg_convert else "remuxing"
        logger.info(f"[ffmpeg] {mode} {capture_path.name}...")

        argv = self.tools.convert_command(capture_path, output_path, reencode=self.use_ffmpeg_convert)
        try:
            await run_tool(argv, new_session=True)
        except ToolInvocationError as e:
            logger.warning(f"[ffmpeg] Conversion failed, keeping original file: {e}")
            if output_path.exists():
                output_path.unlink()
            return None

        if not output_path.exists() or output_path.stat().st_size == 0:
            logger.warning("[ffmpeg] Conversion produced no output, keeping original file")
            if output_path.exists():
                output_path.unlink()
            return None

        logger.info(f"[ffmpeg] Converted and saved as: {output_path}")
        return output_path

    async def render_contact_sheet(self, media_path: Path, logger) -> Optional[Path]:
        """
        Render a thumbnail grid for media_path.

        Returns:
            Path of the image, or None on failure.
        """
        output_path = contact_sheet_path(media_path)
        argv = self.tools.contact_sheet_command(media_path, output_path)
        try:
            await run_tool(argv, new_session=True)
        except ToolInvocationError as e:
            logger.warning(f"[vcsi] Failed to generate contact sheet: {e}")
            return None

        if not output_path.exists():
            logger.warning("[vcsi] Contact sheet was not written")
            return None

        logger.info(f"[vcsi] Generated contact sheet: {output_path}")
        return output_path

    async def process(self, capture_path: Path, label: str = "-") -> DerivedArtifacts:
        """
        Run the enabled steps on a capture.

        Args:
            capture_path: Raw .ts capture.
            label: Channel or target name for log context.

        Returns:
            DerivedArtifacts. skipped is True when the capture is missing or empty.
        """
        logger = get_channel_logger(label, 'postprocess')
        artifacts = DerivedArtifacts(source=capture_path)

        if not capture_path.exists() or capture_path.stat().st_size == 0:
            logger.info("File is empty or does not exist. Skipping processing.")
            artifacts.skipped = True
            return artifacts

        if self.convert_to_mp4:
            artifacts.converted = await self.convert(capture_path, logger)
        else:
            logger.info(f"Saved as: {capture_path}")

        if self.generate_contact_sheet:
            artifacts.contact_sheet = await self.render_contact_sheet(artifacts.conversion_source, logger)

        return artifacts
