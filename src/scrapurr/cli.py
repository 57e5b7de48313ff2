"""
Command-line entry point for Twitch Scrapurr.
"""

import argparse
import asyncio
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Union

from . import __version__
from .app import ScrapurrApp
from .config import default_config_path, load_or_init
from .errors import ConfigParseError, ToolInvocationError, UsageError
from .logger import get_logger, setup_logging
from .targets import VideoTarget, parse_video_url
from .tools import ToolSet, verify_tools


EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


@dataclass(frozen=True)
class RecordByUsername:
    name: str


@dataclass(frozen=True)
class DownloadByUrl:
    url: str

    def resolve(self) -> VideoTarget:
        return parse_video_url(self.url)


Mode = Union[RecordByUsername, DownloadByUrl]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="scrapurr",
        description="Record a Twitch channel whenever it goes live, or download a VOD or clip.",
    )
    parser.add_argument("-u", "--username", help="Twitch username to record")
    parser.add_argument("-v", "--video-url", help="Twitch VOD or clip URL to download")
    parser.add_argument("-o", "--output-dir", help="output directory for this run only")
    parser.add_argument(
        "--config", type=Path, default=None,
        help=f"config file (default: {default_config_path()})"
    )
    parser.add_argument("--once", action="store_true", help="exit after the first recorded broadcast")
    parser.add_argument("--verbose", action="store_true", help="debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Exits with status 2 after printing usage when --username and
    --video-url are both given.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.username and args.video_url:
        parser.error("argument -u/--username: not allowed with argument -v/--video-url")
    return args


def resolve_target(args: argparse.Namespace, prompt: Callable[[str], str] = input) -> Mode:
    """
    Decide the operating mode.

    Explicit flags win; without either flag the user is asked for a
    username. Download mode always needs --video-url.

    Raises:
        UsageError: If both flags are set or the prompt answer is empty.
    """
    if args.username and args.video_url:
        raise UsageError("--username and --video-url are mutually exclusive")
    if args.video_url:
        return DownloadByUrl(args.video_url)
    if args.username:
        return RecordByUsername(args.username)

    name = prompt("Streamer Username to record: ").strip()
    if not name:
        raise UsageError("no username given")
    return RecordByUsername(name)


def main(argv: Optional[List[str]] = None, prompt: Callable[[str], str] = input) -> int:
    """
    Run scrapurr.

    Returns:
        Exit status: 0 on success or graceful interrupt, 1 on config or
        startup failure, 2 on usage error.
    """
    args = parse_args(argv)

    try:
        mode = resolve_target(args, prompt)
        target = mode.resolve() if isinstance(mode, DownloadByUrl) else None
    except UsageError as e:
        build_parser().print_usage(sys.stderr)
        print(f"scrapurr: error: {e}", file=sys.stderr)
        return EXIT_USAGE
    except (EOFError, KeyboardInterrupt):
        print(file=sys.stderr)
        return EXIT_USAGE

    try:
        settings = load_or_init(args.config, prompt)
    except (ConfigParseError, OSError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_FAILURE
    except (EOFError, KeyboardInterrupt):
        print(file=sys.stderr)
        return EXIT_FAILURE

    setup_logging(
        level="DEBUG" if args.verbose else settings.log_level,
        log_file=settings.log_file or None,
    )
    logger = get_logger('cli')

    tools = ToolSet.from_settings(settings)
    try:
        for warning in verify_tools(tools, settings.convert_to_mp4, settings.generate_contact_sheet):
            logger.warning(warning)
    except ToolInvocationError as e:
        logger.error(f"Startup failed: {e}")
        return EXIT_FAILURE

    app = ScrapurrApp(settings, output_dir=args.output_dir, tools=tools, once=args.once)
    try:
        if target is not None:
            return asyncio.run(app.run(target=target))
        return asyncio.run(app.run(username=mode.name))
    except OSError as e:
        logger.error(f"Fatal error: {e}")
        return EXIT_FAILURE


def run() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == '__main__':
    run()
