import asyncio

import pytest

from scrapurr.capture import ActiveCapture, CaptureStatus, CaptureSupervisor
from tests.helpers import PARSE_OUTPUT, make_tool, make_tools, posix_only


async def wait_for_bytes(path, timeout=10.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not (path.exists() and path.stat().st_size > 0):
        if loop.time() > deadline:
            raise AssertionError(f"{path} was never written")
        await asyncio.sleep(0.02)


@posix_only
def test_completed_capture(tmp_path, bin_dir):
    tool = make_tool(bin_dir, "streamlink", PARSE_OUTPUT + 'printf "TSDATA" > "$out"\n')
    output = tmp_path / "out" / "teststreamer" / "vods" / "capture.ts"
    supervisor = CaptureSupervisor(make_tools(downloader=tool))

    result = asyncio.run(supervisor.capture(
        "https://www.twitch.tv/teststreamer", output, asyncio.Event(), "teststreamer"
    ))

    assert result.status is CaptureStatus.COMPLETED
    assert result.returncode == 0
    assert result.has_media
    assert output.read_bytes() == b"TSDATA"
    assert not supervisor.active.is_running


@posix_only
def test_failed_capture_without_bytes(tmp_path, bin_dir):
    tool = make_tool(bin_dir, "streamlink", 'echo "error: No playable streams found"\nexit 1\n')
    output = tmp_path / "capture.ts"
    supervisor = CaptureSupervisor(make_tools(downloader=tool))

    result = asyncio.run(supervisor.capture("https://x", output, asyncio.Event(), "teststreamer"))

    assert result.status is CaptureStatus.FAILED
    assert result.returncode == 1
    assert not result.has_media
    assert "No playable streams" in result.error


@posix_only
def test_failed_capture_with_partial_bytes(tmp_path, bin_dir):
    tool = make_tool(bin_dir, "streamlink", PARSE_OUTPUT + 'printf "TS" > "$out"\nexit 1\n')
    output = tmp_path / "capture.ts"
    supervisor = CaptureSupervisor(make_tools(downloader=tool))

    result = asyncio.run(supervisor.capture("https://x", output, asyncio.Event(), "teststreamer"))

    assert result.status is CaptureStatus.FAILED
    assert result.has_media


@posix_only
def test_interrupt_stops_child_before_returning(tmp_path, bin_dir):
    tool = make_tool(bin_dir, "streamlink", PARSE_OUTPUT + 'printf "TSDATA" > "$out"\nexec sleep 30\n')
    output = tmp_path / "capture.ts"
    supervisor = CaptureSupervisor(make_tools(downloader=tool))

    async def scenario():
        cancel = asyncio.Event()
        task = asyncio.ensure_future(supervisor.capture("https://x", output, cancel, "teststreamer"))
        await wait_for_bytes(output)
        assert supervisor.active.is_running
        assert supervisor.active.current_path == output
        cancel.set()
        return await asyncio.wait_for(task, timeout=20)

    result = asyncio.run(scenario())

    assert result.status is CaptureStatus.INTERRUPTED
    assert result.returncode is not None
    assert result.has_media
    assert supervisor.active.snapshot() == (None, None)


def test_missing_capture_tool_is_a_failed_capture(tmp_path):
    supervisor = CaptureSupervisor(make_tools(downloader=tmp_path / "missing"))

    result = asyncio.run(supervisor.capture("https://x", tmp_path / "c.ts", asyncio.Event(), "teststreamer"))

    assert result.status is CaptureStatus.FAILED
    assert result.returncode is None
    assert not result.has_media


@posix_only
def test_only_one_capture_at_a_time(tmp_path, bin_dir):
    tool = make_tool(bin_dir, "streamlink", 'exec sleep 30\n')
    active = ActiveCapture()
    supervisor = CaptureSupervisor(make_tools(downloader=tool), active)

    async def scenario():
        process = await supervisor.start_capture("https://x", tmp_path / "a.ts")
        try:
            with pytest.raises(RuntimeError):
                await supervisor.start_capture("https://x", tmp_path / "b.ts")
        finally:
            process.kill()
            await process.wait()

    asyncio.run(scenario())


# yt-dlp redraws its progress line with a bare CR when piped
PROGRESS_BAR = '''
i=0
while [ $i -lt 4000 ]; do
  printf '\\r[download]  42.0%% of ~ 1.21GiB at  3.10MiB/s ETA 04:12 (frag 120/290)'
  i=$((i + 1))
done
'''


@posix_only
def test_long_progress_output_does_not_stall_capture(tmp_path, bin_dir):
    tool = make_tool(bin_dir, "yt-dlp", PARSE_OUTPUT + 'printf "TSDATA" > "$out"\n' + PROGRESS_BAR)
    output = tmp_path / "capture.ts"
    supervisor = CaptureSupervisor(make_tools(downloader=tool))

    async def scenario():
        return await asyncio.wait_for(
            supervisor.capture("https://x", output, asyncio.Event(), "teststreamer"), timeout=20
        )

    result = asyncio.run(scenario())

    assert result.status is CaptureStatus.COMPLETED
    assert output.read_bytes() == b"TSDATA"


@posix_only
def test_failure_after_progress_output_reports_last_message(tmp_path, bin_dir):
    tool = make_tool(
        bin_dir, "yt-dlp",
        PARSE_OUTPUT + 'printf "TS" > "$out"\n' + PROGRESS_BAR + "printf '\\rERROR: fragment 121 not found'\nexit 1\n"
    )
    output = tmp_path / "capture.ts"
    supervisor = CaptureSupervisor(make_tools(downloader=tool))

    async def scenario():
        return await asyncio.wait_for(
            supervisor.capture("https://x", output, asyncio.Event(), "teststreamer"), timeout=20
        )

    result = asyncio.run(scenario())

    assert result.status is CaptureStatus.FAILED
    assert result.has_media
    assert result.error.endswith("ERROR: fragment 121 not found")


@posix_only
def test_interrupt_stops_helpers_started_by_capture_tool(tmp_path, bin_dir):
    # The helper ignores SIGINT, like a background job of a non-interactive shell
    tool = make_tool(bin_dir, "streamlink", PARSE_OUTPUT + '''
(while true; do printf x >> "$out"; sleep 0.05; done) &
exec sleep 30
''')
    output = tmp_path / "capture.ts"
    supervisor = CaptureSupervisor(make_tools(downloader=tool))

    async def scenario():
        cancel = asyncio.Event()
        task = asyncio.ensure_future(supervisor.capture("https://x", output, cancel, "teststreamer"))
        await wait_for_bytes(output)
        cancel.set()
        result = await asyncio.wait_for(task, timeout=20)
        size = output.stat().st_size
        await asyncio.sleep(0.5)
        return result, size

    result, size = asyncio.run(scenario())

    assert result.status is CaptureStatus.INTERRUPTED
    assert output.stat().st_size == size
