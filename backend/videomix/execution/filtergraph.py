"""
Render a PipelineSpec into an FFmpeg argument list.

Input N is stage N's source clip; the voiceover track, when present, is
the input after the last clip. Labels inside the graph:

    v<i>, a<i>   normalized clip streams
    x<i>, y<i>   intermediate crossfade results
    outv, outa   final streams
"""

from typing import List, Optional, Sequence, Tuple

from ..pipeline.compiler import render_tag_pairs
from ..pipeline.models import ClipStage, FilterStep, PipelineSpec


def _chain(steps: Sequence[FilterStep]) -> str:
    return ",".join(step.render() for step in steps)


def build_filter_graph(spec: PipelineSpec, voiceover_input: Optional[int] = None) -> Tuple[str, str, Optional[str]]:
    """
    Build the -filter_complex graph.

    Returns:
        (graph, video_label, audio_label or None when muted)
    """
    keep_audio = spec.audio.mode == "keep"
    parts: List[str] = []

    for i, stage in enumerate(spec.stages):
        parts.append(f"[{stage.input_index}:v]{_chain(stage.video)}[v{i}]")
        if keep_audio:
            parts.append(_audio_part(i, stage))

    count = len(spec.stages)
    transition = spec.transition
    audio_label: Optional[str] = None

    if transition.kind == "passthrough":
        parts.append("[v0]null[outv]")
        if keep_audio:
            parts.append("[a0]anull[outa]")
            audio_label = "outa"
    elif transition.kind == "concat":
        if keep_audio:
            inputs = "".join(f"[v{i}][a{i}]" for i in range(count))
            parts.append(f"{inputs}concat=n={count}:v=1:a=1[outv][outa]")
            audio_label = "outa"
        else:
            inputs = "".join(f"[v{i}]" for i in range(count))
            parts.append(f"{inputs}concat=n={count}:v=1:a=0[outv]")
    else:
        duration = f"{transition.duration:g}"
        previous_video, previous_audio = "v0", "a0"
        for k, (name, offset) in enumerate(zip(transition.transitions, transition.offsets)):
            last = k == count - 2
            video_out = "outv" if last else f"x{k + 1}"
            parts.append(
                f"[{previous_video}][v{k + 1}]xfade=transition={name}:"
                f"duration={duration}:offset={offset:g}[{video_out}]"
            )
            previous_video = video_out
            if keep_audio:
                audio_out = "outa" if last else f"y{k + 1}"
                parts.append(f"[{previous_audio}][a{k + 1}]acrossfade=d={duration}[{audio_out}]")
                previous_audio = audio_out
        if keep_audio:
            audio_label = "outa"

    if spec.audio.mode == "voiceover" and voiceover_input is not None:
        parts.append(f"[{voiceover_input}:a]{_chain(spec.audio.voiceover_filters)}[outa]")
        audio_label = "outa"

    return ";".join(parts), "outv", audio_label


def _audio_part(i: int, stage: ClipStage) -> str:
    if stage.has_audio:
        return f"[{stage.input_index}:a]{_chain(stage.audio)}[a{i}]"
    # Source filter: no input label
    return f"{_chain(stage.audio)}[a{i}]"


def _encode_args(spec: PipelineSpec) -> List[str]:
    encode = spec.encode
    kbps = encode.video_bitrate_kbps
    args = ["-c:v", encode.video_encoder]
    if encode.video_encoder == "libvpx-vp9":
        args += ["-crf", str(encode.crf), "-b:v", f"{kbps}k"]
    else:
        if encode.preset:
            args += ["-preset", encode.preset]
        args += ["-crf", str(encode.crf), "-maxrate", f"{kbps}k", "-bufsize", f"{kbps * 2}k"]
    args += [
        "-r", str(encode.frame_rate),
        "-pix_fmt", encode.pixel_format,
        "-g", str(encode.gop_size),
        "-keyint_min", str(encode.keyint_min),
    ]
    if encode.faststart:
        args += ["-movflags", "+faststart"]
    return args


def _audio_args(spec: PipelineSpec, has_audio: bool) -> List[str]:
    if not has_audio:
        return ["-an"]
    encode = spec.encode
    bitrate = encode.audio_bitrate_kbps
    if spec.audio.mode == "voiceover":
        bitrate = max(bitrate, 192)
    return [
        "-c:a", encode.audio_encoder,
        "-b:a", f"{bitrate}k",
        "-ar", str(encode.audio_sample_rate),
        "-ac", str(encode.audio_channels),
    ]


def build_command(spec: PipelineSpec, output_path: str, ffmpeg_path: str = "ffmpeg") -> List[str]:
    """Full argv for one invocation."""
    cmd = [ffmpeg_path, "-hide_banner", "-nostdin", "-y"]
    for stage in spec.stages:
        cmd += ["-i", stage.source_path]

    voiceover_input = None
    if spec.audio.mode == "voiceover" and spec.audio.voiceover_path:
        voiceover_input = len(spec.stages)
        cmd += ["-i", spec.audio.voiceover_path]

    graph, video_label, audio_label = build_filter_graph(spec, voiceover_input)
    cmd += ["-filter_complex", graph, "-map", f"[{video_label}]"]
    if audio_label:
        cmd += ["-map", f"[{audio_label}]"]

    cmd += _encode_args(spec)
    cmd += _audio_args(spec, audio_label is not None)

    for key, value in render_tag_pairs(spec.metadata):
        cmd += ["-metadata", f"{key}={value}"]

    cmd += ["-progress", "pipe:1", "-nostats", output_path]
    return cmd
