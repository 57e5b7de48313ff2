import logging

import pytest

from scrapurr.logger import ROOT_LOGGER
from tests.helpers import make_tool


@pytest.fixture(autouse=True)
def reset_logging():
    """cli.main installs handlers bound to the captured stdout; drop them after each test."""
    yield
    logger = logging.getLogger(ROOT_LOGGER)
    logger.handlers.clear()
    logger.propagate = True


@pytest.fixture
def bin_dir(tmp_path):
    directory = tmp_path / "bin"
    directory.mkdir()
    return directory


@pytest.fixture
def calls_log(tmp_path):
    return tmp_path / "calls.log"


@pytest.fixture
def fake_ffmpeg(bin_dir, calls_log):
    """ffmpeg that records its argv and writes the last argument."""
    return make_tool(bin_dir, "ffmpeg", f'''
echo "ffmpeg $*" >> "{calls_log}"
for a; do last="$a"; done
printf 'MP4DATA' > "$last"
''')


@pytest.fixture
def failing_ffmpeg(bin_dir, calls_log):
    """ffmpeg that leaves a partial output and fails."""
    return make_tool(bin_dir, "ffmpeg", f'''
echo "ffmpeg $*" >> "{calls_log}"
for a; do last="$a"; done
printf 'PARTIAL' > "$last"
echo "Invalid data found when processing input" >&2
exit 1
''')


@pytest.fixture
def fake_vcsi(bin_dir, calls_log):
    """vcsi that records its argv and writes the -o argument."""
    return make_tool(bin_dir, "vcsi", f'''
echo "vcsi $*" >> "{calls_log}"
out=""
while [ $# -gt 0 ]; do
  case "$1" in
    -o) out="$2"; shift ;;
  esac
  shift
done
printf 'JPEGDATA' > "$out"
''')
