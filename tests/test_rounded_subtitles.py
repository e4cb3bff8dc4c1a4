"""Integration tests for rounded_subtitles CLI."""

from __future__ import annotations

import json
import subprocess
import sys
from pathlib import Path
from typing import List

import pytest

import rounded_subtitles
from domain.subtitle_cues import SubtitleValidationError

SRT_CONTENT = (
    "1\n00:00:00,000 --> 00:00:01,000\nHello world!\n\n"
    "2\n00:00:01,050 --> 00:00:02,500\nSecond cue\nover two lines\n"
)
OFFLINE_ARGS = ["--disable-precise-measurement", "--disable-rasterization"]


def run_rounded_subtitles(
    args: List[str], repo_root: Path
) -> subprocess.CompletedProcess[str]:
    """Run rounded_subtitles.py with the provided arguments."""
    return subprocess.run(
        [sys.executable, str(repo_root / "rounded_subtitles.py"), *args],
        cwd=repo_root,
        text=True,
        capture_output=True,
        check=False,
    )


def write_srt_file(target_path: Path, content: str) -> None:
    """Write SRT content to disk."""
    target_path.write_text(content, encoding="utf-8")


def dialogue_lines(document: str) -> list[str]:
    """Return the event lines of a document."""
    return [line for line in document.splitlines() if line.startswith("Dialogue:")]


def test_convert_success(tmp_path: Path) -> None:
    """Write a document next to the input by default."""
    repo_root = Path(__file__).resolve().parents[1]
    srt_path = tmp_path / "episode.srt"
    write_srt_file(srt_path, SRT_CONTENT)

    result = run_rounded_subtitles([str(srt_path), *OFFLINE_ARGS], repo_root)

    assert result.returncode == 0, result.stderr
    output_path = tmp_path / "episode.ass"
    document = output_path.read_text(encoding="utf-8")
    assert document.startswith("[Script Info]")
    events = dialogue_lines(document)
    assert len(events) == 4
    assert events[0].startswith("Dialogue: 0,0:00:00.00,0:00:01.05,Box-BG,")
    assert events[3].endswith("Second cue\\Nover two lines")
    assert "rounded_subtitles.run.converted" in result.stderr
    assert not list(tmp_path.glob(".rounded_subtitles_*"))


def test_explicit_output_and_canvas(tmp_path: Path) -> None:
    """Honour the output path and canvas size flags."""
    repo_root = Path(__file__).resolve().parents[1]
    srt_path = tmp_path / "in.srt"
    write_srt_file(srt_path, SRT_CONTENT)
    output_path = tmp_path / "custom.ass"

    result = run_rounded_subtitles(
        [
            str(srt_path),
            "--output",
            str(output_path),
            "--width",
            "1280",
            "--height",
            "720",
            "--margin-bottom",
            "20",
            *OFFLINE_ARGS,
        ],
        repo_root,
    )

    assert result.returncode == 0, result.stderr
    document = output_path.read_text(encoding="utf-8")
    assert "PlayResX: 1280\nPlayResY: 720" in document
    assert "\\pos(640,700)" in dialogue_lines(document)[0]


def test_config_file_and_cli_precedence(tmp_path: Path) -> None:
    """Let CLI flags win over the config file, and the file over defaults."""
    repo_root = Path(__file__).resolve().parents[1]
    srt_path = tmp_path / "in.srt"
    write_srt_file(srt_path, SRT_CONTENT)
    config_path = tmp_path / "config.json"
    config_path.write_text(
        json.dumps({"font_size_px": 36, "text_color": "FFFF00"}), encoding="utf-8"
    )

    result = run_rounded_subtitles(
        [
            str(srt_path),
            "--config",
            str(config_path),
            "--font-size",
            "30",
            *OFFLINE_ARGS,
        ],
        repo_root,
    )

    assert result.returncode == 0, result.stderr
    document = (tmp_path / "in.ass").read_text(encoding="utf-8")
    assert "Style: Default,Arial,30,&H0000FFFF," in document
    assert "Style: Box-BG,Arial,15," in document


def test_mistyped_config_value(tmp_path: Path) -> None:
    """Report a config value of the wrong type as a config error."""
    repo_root = Path(__file__).resolve().parents[1]
    srt_path = tmp_path / "in.srt"
    write_srt_file(srt_path, SRT_CONTENT)
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"padding_x_px": "0"}), encoding="utf-8")

    result = run_rounded_subtitles(
        [str(srt_path), "--config", str(config_path), *OFFLINE_ARGS], repo_root
    )

    assert result.returncode == 1
    assert "rounded_subtitles.input.invalid_config" in result.stderr
    assert "rounded_subtitles.unhandled_error" not in result.stderr
    assert not (tmp_path / "in.ass").exists()


def test_missing_input(tmp_path: Path) -> None:
    """Fail with an input error code when the source does not exist."""
    repo_root = Path(__file__).resolve().parents[1]
    result = run_rounded_subtitles(
        [str(tmp_path / "absent.srt"), *OFFLINE_ARGS], repo_root
    )

    assert result.returncode == 1
    assert "rounded_subtitles.input.file_error" in result.stderr
    assert not (tmp_path / "absent.ass").exists()


def test_empty_input(tmp_path: Path) -> None:
    """Fail without writing output for an empty source."""
    repo_root = Path(__file__).resolve().parents[1]
    srt_path = tmp_path / "empty.srt"
    write_srt_file(srt_path, "\n\n")

    result = run_rounded_subtitles([str(srt_path), *OFFLINE_ARGS], repo_root)

    assert result.returncode == 1
    assert "rounded_subtitles.input.empty_source" in result.stderr
    assert not (tmp_path / "empty.ass").exists()


def test_invalid_color(tmp_path: Path) -> None:
    """Reject colors that are not six hex digits."""
    repo_root = Path(__file__).resolve().parents[1]
    srt_path = tmp_path / "in.srt"
    write_srt_file(srt_path, SRT_CONTENT)

    result = run_rounded_subtitles(
        [str(srt_path), "--text-color", "red", *OFFLINE_ARGS], repo_root
    )

    assert result.returncode == 1
    assert "rounded_subtitles.input.invalid_color" in result.stderr


def test_width_requires_height(tmp_path: Path) -> None:
    """Require both canvas dimensions together."""
    repo_root = Path(__file__).resolve().parents[1]
    srt_path = tmp_path / "in.srt"
    write_srt_file(srt_path, SRT_CONTENT)

    result = run_rounded_subtitles(
        [str(srt_path), "--width", "1280", *OFFLINE_ARGS], repo_root
    )

    assert result.returncode == 1
    assert "rounded_subtitles.input.invalid_config" in result.stderr


def test_missing_video_falls_back_to_default_canvas(tmp_path: Path) -> None:
    """Warn and use 1920x1080 when the video cannot be probed."""
    repo_root = Path(__file__).resolve().parents[1]
    srt_path = tmp_path / "in.srt"
    write_srt_file(srt_path, SRT_CONTENT)

    result = run_rounded_subtitles(
        [str(srt_path), "--video-file", str(tmp_path / "absent.mp4"), *OFFLINE_ARGS],
        repo_root,
    )

    assert result.returncode == 0, result.stderr
    assert "rounded_subtitles.input.canvas_probe" in result.stderr
    document = (tmp_path / "in.ass").read_text(encoding="utf-8")
    assert "PlayResX: 1920\nPlayResY: 1080" in document


def test_parse_args_defaults(tmp_path: Path) -> None:
    """Derive the output path and keep every tier enabled by default."""
    request = rounded_subtitles.parse_args([str(tmp_path / "show.srt")])
    assert request.output_file == str(tmp_path / "show.ass")
    assert request.layout.use_precise_measurement
    assert request.layout.use_local_rasterization
    assert request.style.background_alpha == 80
    assert request.timeout_seconds is None


def test_parse_args_rejects_non_positive_timeout(tmp_path: Path) -> None:
    """Reject a whole-run timeout that has already expired."""
    with pytest.raises(SubtitleValidationError):
        rounded_subtitles.parse_args(
            [str(tmp_path / "show.srt"), "--timeout-seconds", "0"]
        )


def test_write_document_reports_unwritable_path(tmp_path: Path) -> None:
    """Raise an output error code when the target folder is missing."""
    with pytest.raises(SubtitleValidationError) as excinfo:
        rounded_subtitles.write_document(str(tmp_path / "no" / "out.ass"), "text")
    assert excinfo.value.code == rounded_subtitles.OUTPUT_FILE_CODE
