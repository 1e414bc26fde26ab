"""
Tests for FFmpeg command rendering.

Checks labels and argument order only; nothing is executed.
"""

import pytest

from videomix.execution import build_command, build_filter_graph
from videomix.mixing import MixPlanGenerator, MixSettings
from videomix.pipeline import PipelineCompiler

from conftest import make_clip


def compile_first(raw, clips=None):
    clips = clips or [make_clip("a", 10.0), make_clip("b", 10.0)]
    settings = MixSettings.parse({"orderMixing": False, **raw})
    plan = MixPlanGenerator().generate([], settings, ungrouped=clips)[0]
    return PipelineCompiler().compile(plan, settings)


class TestFilterGraph:

    def test_concat_with_audio(self):
        spec = compile_first({})

        graph, video, audio = build_filter_graph(spec)

        assert graph.startswith("[0:v]trim=start=0:end=10,setpts=PTS-STARTPTS")
        assert "[0:a]atrim=start=0:end=10" in graph
        assert graph.endswith("[v0][a0][v1][a1]concat=n=2:v=1:a=1[outv][outa]")
        assert (video, audio) == ("outv", "outa")

    def test_concat_muted(self):
        spec = compile_first({"audioMode": "mute"})

        graph, _, audio = build_filter_graph(spec)

        assert graph.endswith("[v0][v1]concat=n=2:v=1:a=0[outv]")
        assert audio is None
        assert ":a]" not in graph

    def test_crossfade_chain(self):
        """
        GIVEN: Three clips with 0.5s fades
        WHEN: The graph is built
        THEN: xfade results chain through x1 into outv, audio through y1 into outa
        """
        clips = [make_clip(name, 10.0) for name in "abc"]
        spec = compile_first({"transitionType": "fade"}, clips)

        graph, _, _ = build_filter_graph(spec)

        assert "[v0][v1]xfade=transition=fade:duration=0.5:offset=9.5[x1]" in graph
        assert "[x1][v2]xfade=transition=fade:duration=0.5:offset=19[outv]" in graph
        assert "[a0][a1]acrossfade=d=0.5[y1]" in graph
        assert "[y1][a2]acrossfade=d=0.5[outa]" in graph

    def test_single_clip_passthrough(self):
        spec = compile_first({}, [make_clip("solo", 6.0)])

        graph, _, _ = build_filter_graph(spec)

        assert "[v0]null[outv]" in graph
        assert "[a0]anull[outa]" in graph

    def test_silent_clip_uses_source_filter(self):
        spec = compile_first({}, [make_clip("a", 10.0), make_clip("quiet", 10.0, has_audio=False)])

        graph, _, _ = build_filter_graph(spec)

        assert "anullsrc=channel_layout=stereo:sample_rate=48000,atrim=duration=10" in graph
        assert "[1:a]" not in graph


class TestBuildCommand:

    def test_inputs_maps_and_progress(self):
        spec = compile_first({})

        cmd = build_command(spec, "/out/mix_0000.mp4", ffmpeg_path="/opt/ffmpeg")

        assert cmd[:4] == ["/opt/ffmpeg", "-hide_banner", "-nostdin", "-y"]
        assert cmd[4:8] == ["-i", "/media/a.mp4", "-i", "/media/b.mp4"]
        assert cmd[-4:] == ["-progress", "pipe:1", "-nostats", "/out/mix_0000.mp4"]
        assert ["-map", "[outv]"] == cmd[cmd.index("-map"):cmd.index("-map") + 2]
        assert "[outa]" in cmd
        assert cmd[cmd.index("-c:v") + 1] == "libx264"
        assert "+faststart" in cmd

    def test_muted_output_has_no_audio_stream(self):
        cmd = build_command(compile_first({"audioMode": "mute"}), "/out/x.mp4")

        assert "-an" in cmd
        assert "[outa]" not in cmd

    def test_voiceover_is_extra_input(self):
        spec = compile_first({"audioMode": "voiceover", "voiceoverPath": "/media/vo.m4a"})

        cmd = build_command(spec, "/out/x.mp4")
        graph = cmd[cmd.index("-filter_complex") + 1]

        assert cmd[8:10] == ["-i", "/media/vo.m4a"]
        assert "[2:a]aresample=48000" in graph
        assert graph.endswith("asetpts=PTS-STARTPTS[outa]")
        assert cmd[cmd.index("-b:a") + 1] == "192k"

    def test_metadata_written_sorted(self):
        spec = compile_first({"metadataTags": {"campaign": "spring"}})

        cmd = build_command(spec, "/out/x.mp4")
        tags = [cmd[i + 1] for i, arg in enumerate(cmd) if arg == "-metadata"]

        assert "campaign=spring" in tags
        assert "source_clips=a,b" in tags
        assert tags == sorted(tags)

    @pytest.mark.parametrize("raw, encoder", [
        ({"outputFormat": "webm", "videoCodec": "vp9"}, "libvpx-vp9"),
        ({"outputFormat": "mkv", "videoCodec": "hevc"}, "libx265"),
    ])
    def test_encoders(self, raw, encoder):
        cmd = build_command(compile_first(raw), "/out/x")

        assert cmd[cmd.index("-c:v") + 1] == encoder
        assert "+faststart" not in cmd
