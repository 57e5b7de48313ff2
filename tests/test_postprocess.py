import asyncio

from scrapurr.postprocess import PostProcessor
from tests.helpers import make_tools, posix_only, read_calls


def _capture(tmp_path, data=b"TSDATA"):
    path = tmp_path / "teststreamer-09_03_24-21_05_07.ts"
    path.write_bytes(data)
    return path


@posix_only
def test_remux_then_contact_sheet(tmp_path, fake_ffmpeg, fake_vcsi, calls_log):
    capture = _capture(tmp_path)
    processor = PostProcessor(make_tools(ffmpeg=fake_ffmpeg, vcsi=fake_vcsi))

    artifacts = asyncio.run(processor.process(capture, "teststreamer"))

    assert artifacts.converted == capture.with_suffix(".mp4")
    assert artifacts.contact_sheet == capture.with_suffix(".jpg")
    assert capture.read_bytes() == b"TSDATA"

    ffmpeg_call, vcsi_call = read_calls(calls_log)
    assert "-c copy" in ffmpeg_call
    assert "libx264" not in ffmpeg_call
    # The sheet is rendered from the converted file
    assert vcsi_call.startswith(f"vcsi {capture.with_suffix('.mp4')}")


@posix_only
def test_reencode_mode(tmp_path, fake_ffmpeg, calls_log):
    capture = _capture(tmp_path)
    processor = PostProcessor(
        make_tools(ffmpeg=fake_ffmpeg),
        use_ffmpeg_convert=True,
        generate_contact_sheet=False,
    )

    artifacts = asyncio.run(processor.process(capture))

    assert artifacts.converted is not None
    assert artifacts.contact_sheet is None
    [ffmpeg_call] = read_calls(calls_log)
    assert "libx264" in ffmpeg_call
    assert "-c copy" not in ffmpeg_call


@posix_only
def test_conversion_failure_is_not_fatal(tmp_path, failing_ffmpeg, fake_vcsi, calls_log):
    capture = _capture(tmp_path)
    processor = PostProcessor(make_tools(ffmpeg=failing_ffmpeg, vcsi=fake_vcsi))

    artifacts = asyncio.run(processor.process(capture))

    assert artifacts.converted is None
    assert not capture.with_suffix(".mp4").exists()
    assert capture.read_bytes() == b"TSDATA"
    # Contact sheet falls back to the raw capture
    assert artifacts.contact_sheet == capture.with_suffix(".jpg")
    assert read_calls(calls_log)[1].startswith(f"vcsi {capture}")


def test_missing_tools_are_not_fatal(tmp_path):
    capture = _capture(tmp_path)
    processor = PostProcessor(make_tools(ffmpeg=tmp_path / "no-ffmpeg", vcsi=tmp_path / "no-vcsi"))

    artifacts = asyncio.run(processor.process(capture))

    assert artifacts.converted is None
    assert artifacts.contact_sheet is None
    assert not artifacts.skipped
    assert capture.exists()


@posix_only
def test_conversion_disabled(tmp_path, fake_ffmpeg, fake_vcsi, calls_log):
    capture = _capture(tmp_path)
    processor = PostProcessor(
        make_tools(ffmpeg=fake_ffmpeg, vcsi=fake_vcsi),
        convert_to_mp4=False,
    )

    artifacts = asyncio.run(processor.process(capture))

    assert artifacts.converted is None
    assert [call.split()[0] for call in read_calls(calls_log)] == ["vcsi"]


@posix_only
def test_empty_or_missing_capture_is_skipped(tmp_path, fake_ffmpeg, fake_vcsi, calls_log):
    processor = PostProcessor(make_tools(ffmpeg=fake_ffmpeg, vcsi=fake_vcsi))

    empty = asyncio.run(processor.process(_capture(tmp_path, b"")))
    missing = asyncio.run(processor.process(tmp_path / "missing.ts"))

    assert empty.skipped and missing.skipped
    assert read_calls(calls_log) == []
