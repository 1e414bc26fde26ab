"""
Tests for FFmpeg progress parsing.
"""

from videomix.execution import ProgressParser


class TestProgressParser:

    def test_progress_pipe_microseconds(self):
        parser = ProgressParser(duration=4.0)

        event = parser.parse_line("out_time_us=2000000\n")

        assert event.seconds == 2.0
        assert event.percent == 50.0

    def test_out_time_ms_is_microseconds_too(self):
        parser = ProgressParser(duration=10.0)
        assert parser.parse_line("out_time_ms=2500000").percent == 25.0

    def test_clock_format(self):
        parser = ProgressParser(duration=8.0)
        assert parser.parse_line("out_time=00:00:06.000000").percent == 75.0

    def test_stderr_stats_line(self):
        parser = ProgressParser(duration=120.0)

        event = parser.parse_line(
            "frame=  720 fps= 60 q=28.0 size=    2048kB time=00:01:00.00 bitrate=279.6kbits/s"
        )

        assert event.seconds == 60.0
        assert event.percent == 50.0

    def test_never_moves_backwards(self):
        """
        GIVEN: A parser that has seen 50%
        WHEN: An earlier timestamp arrives
        THEN: No event is produced and percent stays at 50
        """
        parser = ProgressParser(duration=10.0)
        parser.parse_line("out_time_us=5000000")

        assert parser.parse_line("out_time_us=3000000") is None
        assert parser.percent == 50.0

    def test_end_marker_completes(self):
        parser = ProgressParser(duration=10.0)
        parser.parse_line("out_time_us=9000000")

        event = parser.parse_line("progress=end")

        assert event.percent == 100.0

    def test_overshoot_is_clamped(self):
        parser = ProgressParser(duration=10.0)
        assert parser.parse_line("out_time_us=12000000").percent == 100.0

    def test_unrelated_lines_ignored(self):
        parser = ProgressParser(duration=10.0)

        for line in ("frame=12", "fps=30.0", "bitrate=N/A", "out_time=N/A", "progress=continue", ""):
            assert parser.parse_line(line) is None

    def test_callback_receives_events(self):
        seen = []
        parser = ProgressParser(duration=3.0, on_progress=lambda event: seen.append(event.percent))

        parser.parse_line("out_time_us=1000000")
        parser.parse_line("out_time_us=1000000")
        parser.parse_line("out_time_us=2000000")

        assert seen == [33.33, 66.67]
