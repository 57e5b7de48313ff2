"""Shared helpers for tests: fake external tools and settings."""

import os
import stat
from pathlib import Path

import pytest

from scrapurr.config import Settings
from scrapurr.tools import ToolSet


posix_only = pytest.mark.skipif(os.name == 'nt', reason="fake tools are POSIX shell scripts")


# Sets $out to the value following --output (streamlink/yt-dlp style)
PARSE_OUTPUT = '''
out=""
while [ $# -gt 0 ]; do
  case "$1" in
    --output) out="$2"; shift ;;
  esac
  shift
done
'''


def make_tool(directory: Path, name: str, body: str) -> Path:
    """Write an executable shell script standing in for an external tool."""
    path = directory / name
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


def read_calls(calls_log: Path):
    if not calls_log.exists():
        return []
    return calls_log.read_text().splitlines()


def make_settings(tmp_path, **overrides) -> Settings:
    values = dict(
        output_directory=str(tmp_path / "recordings"),
        convert_to_mp4=True,
        use_ffmpeg_convert=False,
        generate_contact_sheet=True,
        check_interval=1,
    )
    values.update(overrides)
    return Settings(**values)


def make_tools(downloader=None, ffmpeg=None, vcsi=None) -> ToolSet:
    return ToolSet(
        downloader_path=str(downloader) if downloader else None,
        ffmpeg_path=str(ffmpeg) if ffmpeg else "ffmpeg",
        vcsi_path=str(vcsi) if vcsi else "vcsi",
    )
