"""
Download targets and artifact naming for Twitch Scrapurr.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional
from urllib.parse import parse_qs, urlparse

from .errors import UsageError


TWITCH_HOSTS = ("twitch.tv", "www.twitch.tv", "m.twitch.tv")
CLIP_HOSTS = ("clips.twitch.tv",)

TIMESTAMP_FORMAT = '%d_%m_%y-%H_%M_%S'
START_OFFSET_PATTERN = re.compile(r'^(?:\d+h)?(?:\d+m)?(?:\d+s)?$')


class TargetKind(Enum):
    """Kind of downloadable content."""
    VOD = "vod"
    CLIP = "clip"


@dataclass(frozen=True)
class VideoTarget:
    """A VOD or clip resolved from a URL."""
    kind: TargetKind
    url: str
    identifier: str  # VOD id or clip slug
    start_offset: Optional[str] = None  # e.g. "1h2m3s", VODs only


def channel_url(username: str) -> str:
    return f"https://www.twitch.tv/{username}"


def parse_video_url(url: str) -> VideoTarget:
    """
    Classify a Twitch VOD or clip URL.

    Accepted forms:
        https://www.twitch.tv/videos/<id>[?t=1h2m3s]
        https://www.twitch.tv/<channel>/clip/<slug>
        https://clips.twitch.tv/<slug>

    Raises:
        UsageError: If the URL is not a recognized VOD or clip URL.
    """
    parsed = urlparse(url.strip())
    if parsed.scheme not in ("http", "https"):
        raise UsageError(f"Invalid Twitch URL: {url}")

    host = (parsed.hostname or "").lower()
    segments = [s for s in parsed.path.split('/') if s]

    if host in CLIP_HOSTS:
        if len(segments) != 1:
            raise UsageError(f"Invalid clip URL: {url}")
        return VideoTarget(TargetKind.CLIP, url, segments[0])

    if host not in TWITCH_HOSTS:
        raise UsageError(f"Invalid Twitch URL: {url}")

    if len(segments) == 2 and segments[0] == "videos":
        video_id = segments[1]
        if not video_id.isdigit():
            raise UsageError(f"Invalid VOD URL: {url}")
        start_offset = parse_qs(parsed.query).get("t", [None])[0]
        if start_offset and not START_OFFSET_PATTERN.match(start_offset):
            raise UsageError(f"Invalid VOD start time: {start_offset}")
        return VideoTarget(TargetKind.VOD, url, video_id, start_offset or None)

    if len(segments) == 3 and segments[1] == "clip":
        return VideoTarget(TargetKind.CLIP, url, segments[2])

    raise UsageError(f"Invalid Twitch URL: {url}")


def _stamp(now: Optional[datetime]) -> str:
    return (now or datetime.now()).strftime(TIMESTAMP_FORMAT)


def live_capture_path(output_dir: Path, username: str, now: Optional[datetime] = None) -> Path:
    """<out>/<user>/vods/<user>-<timestamp>.ts"""
    return Path(output_dir) / username / "vods" / f"{username}-{_stamp(now)}.ts"


def video_capture_path(output_dir: Path, target: VideoTarget, now: Optional[datetime] = None) -> Path:
    """<out>/vod_<id>-<timestamp>.ts or <out>/clips/<slug>-<timestamp>.ts"""
    if target.kind is TargetKind.VOD:
        return Path(output_dir) / f"vod_{target.identifier}-{_stamp(now)}.ts"
    return Path(output_dir) / "clips" / f"{target.identifier}-{_stamp(now)}.ts"
