"""
Tests for TranscodeExecutor and FFmpegTranscoder.

Executor tests use the scripted transcoder from conftest. FFmpegTranscoder
tests run tiny /bin/sh scripts in place of the ffmpeg binary, so they
exercise the real subprocess handling (progress pipe, stderr capture,
timeout, cancellation) without any media tooling.
"""

import os
import stat
import threading
from pathlib import Path

import pytest

from videomix.execution import (
    ExecutionStatus,
    FailureClass,
    FFmpegTranscoder,
    InputCorrupt,
    OutputProbe,
    TranscodeCancelled,
    TranscodeExecutor,
    TranscodeFailed,
    TranscodeTimeout,
    TranscoderUnavailable,
)
from videomix.mixing import MixPlanGenerator, MixSettings
from videomix.pipeline import PipelineCompiler

from conftest import ScriptedTranscoder, make_clip, wait_for

requires_sh = pytest.mark.skipif(not os.path.exists("/bin/sh"), reason="needs /bin/sh")


@pytest.fixture
def spec():
    settings = MixSettings.parse({"orderMixing": False})
    plan = MixPlanGenerator().generate([], settings, ungrouped=[make_clip("a", 4.0), make_clip("b", 4.0)])[0]
    return PipelineCompiler().compile(plan, settings)


def fake_ffmpeg(tmp_path: Path, body: str) -> str:
    """Write an executable shell script standing in for ffmpeg. $last is the output path."""
    script = tmp_path / "ffmpeg"
    script.write_text("#!/bin/sh\nfor last; do :; done\n" + body + "\n")
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(script)


class FixedProbe(OutputProbe):
    def __init__(self, seconds):
        super().__init__()
        self.seconds = seconds

    def duration(self, filepath):
        return self.seconds


# =============================================================================
# TranscodeExecutor
# =============================================================================

class TestTranscodeExecutor:

    def test_success(self, tmp_path, spec):
        """
        GIVEN: A transcoder that writes its output
        WHEN: The spec is executed
        THEN: SUCCESS with the file facts, progress non-decreasing up to 100
        """
        seen = []
        executor = TranscodeExecutor(ScriptedTranscoder())

        result = executor.execute(spec, str(tmp_path / "work"), on_progress=seen.append)

        assert result.status == ExecutionStatus.SUCCESS
        assert result.output_path == str(tmp_path / "work" / "mix_0000.mp4")
        assert result.size_bytes == 1024
        assert result.duration == spec.target_duration
        assert seen == sorted(seen)
        assert seen[0] == 0.0
        assert seen[-1] == 100.0

    def test_probe_duration_preferred(self, tmp_path, spec):
        executor = TranscodeExecutor(ScriptedTranscoder(), probe=FixedProbe(7.96))

        result = executor.execute(spec, str(tmp_path))

        assert result.duration == 7.96

    def test_custom_filename(self, tmp_path, spec):
        result = TranscodeExecutor(ScriptedTranscoder()).execute(spec, str(tmp_path), filename="final")
        assert Path(result.output_path).name == "final.mp4"

    def test_failure_is_classified(self, tmp_path, spec):
        transcoder = ScriptedTranscoder()
        transcoder.fail(0, FailureClass.INPUT_CORRUPT)

        result = TranscodeExecutor(transcoder).execute(spec, str(tmp_path))

        assert result.status == ExecutionStatus.FAILED
        assert result.failure_class == FailureClass.INPUT_CORRUPT
        assert result.failure_reason == "A source clip could not be read"
        assert result.diagnostics == "scripted InputCorrupt"
        assert result.retryable is False

    def test_cancelled(self, tmp_path, spec):
        transcoder = ScriptedTranscoder()
        transcoder.cancel("job-1")

        result = TranscodeExecutor(transcoder).execute(spec, str(tmp_path), cancel_key="job-1:0")

        assert result.status == ExecutionStatus.CANCELLED
        assert result.failure_class == FailureClass.CANCELLED

    def test_clean_exit_without_output_fails(self, tmp_path, spec):
        result = TranscodeExecutor(ScriptedTranscoder(write_output=False)).execute(spec, str(tmp_path))

        assert result.status == ExecutionStatus.FAILED
        assert result.failure_class == FailureClass.TRANSCODE_FAILED
        assert "wrote no output" in result.diagnostics


# =============================================================================
# FFmpegTranscoder
# =============================================================================

@requires_sh
class TestFFmpegTranscoder:

    def test_streams_progress_and_writes_output(self, tmp_path, spec):
        ffmpeg = fake_ffmpeg(tmp_path, "\n".join([
            'echo "out_time_us=2000000"',
            'echo "progress=continue"',
            'echo "out_time_us=6000000"',
            'echo "progress=end"',
            'printf data > "$last"',
        ]))
        output = tmp_path / "out.mp4"

        events = list(FFmpegTranscoder(ffmpeg).run(spec, str(output)))

        assert [event.percent for event in events] == [25.0, 75.0, 100.0]
        assert output.read_text() == "data"

    def test_unreadable_input_classified(self, tmp_path, spec):
        ffmpeg = fake_ffmpeg(tmp_path, 'echo "/media/a.mp4: moov atom not found" >&2\nexit 1')

        with pytest.raises(InputCorrupt) as exc_info:
            list(FFmpegTranscoder(ffmpeg).run(spec, str(tmp_path / "out.mp4")))

        assert exc_info.value.exit_code == 1
        assert "moov atom not found" in exc_info.value.diagnostics

    def test_generic_failure(self, tmp_path, spec):
        ffmpeg = fake_ffmpeg(tmp_path, 'echo "Conversion failed!" >&2\nexit 187')

        with pytest.raises(TranscodeFailed):
            list(FFmpegTranscoder(ffmpeg).run(spec, str(tmp_path / "out.mp4")))

    def test_timeout_terminates_process(self, tmp_path, spec):
        ffmpeg = fake_ffmpeg(tmp_path, "exec sleep 30")
        transcoder = FFmpegTranscoder(ffmpeg)

        with pytest.raises(TranscodeTimeout):
            list(transcoder.run(spec, str(tmp_path / "out.mp4"), timeout=0.3))

        assert transcoder.active_count() == 0

    def test_cancel_terminates_running_process(self, tmp_path, spec):
        """
        GIVEN: A running invocation under key job-1:0
        WHEN: cancel("job-1") is called
        THEN: The process is terminated and the run raises TranscodeCancelled
        """
        ffmpeg = fake_ffmpeg(tmp_path, "exec sleep 30")
        transcoder = FFmpegTranscoder(ffmpeg)
        outcome = {}

        def run():
            try:
                list(transcoder.run(spec, str(tmp_path / "out.mp4"), cancel_key="job-1:0"))
            except TranscodeCancelled as e:
                outcome["error"] = e

        worker = threading.Thread(target=run)
        worker.start()
        assert wait_for(lambda: transcoder.active_count() == 1, timeout=5)

        signalled = transcoder.cancel("job-1")
        worker.join(timeout=10)

        assert signalled == 1
        assert isinstance(outcome.get("error"), TranscodeCancelled)
        assert transcoder.active_count() == 0

    def test_cancelled_key_refuses_new_runs(self, tmp_path, spec):
        ffmpeg = fake_ffmpeg(tmp_path, 'printf data > "$last"')
        transcoder = FFmpegTranscoder(ffmpeg)
        transcoder.cancel("job-2")

        with pytest.raises(TranscodeCancelled):
            list(transcoder.run(spec, str(tmp_path / "out.mp4"), cancel_key="job-2:3"))

        # Other jobs are unaffected
        list(transcoder.run(spec, str(tmp_path / "out.mp4"), cancel_key="job-20:0"))

    def test_forget_drops_cancellation(self, tmp_path, spec):
        """
        GIVEN: A cancelled job key
        WHEN: The key is forgotten
        THEN: Nothing is retained for it and runs under it start again
        """
        ffmpeg = fake_ffmpeg(tmp_path, 'printf data > "$last"')
        transcoder = FFmpegTranscoder(ffmpeg)
        transcoder.cancel("job-2")

        transcoder.forget("job-2")

        assert transcoder._cancelled_keys == set()
        list(transcoder.run(spec, str(tmp_path / "out.mp4"), cancel_key="job-2:3"))

    def test_missing_binary(self, tmp_path, spec):
        transcoder = FFmpegTranscoder(str(tmp_path / "does-not-exist"))

        with pytest.raises(TranscoderUnavailable):
            list(transcoder.run(spec, str(tmp_path / "out.mp4")))
