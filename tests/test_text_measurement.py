"""Unit tests for the tiered text-dimension estimator."""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

import pytest

from domain.overlay_config import LayoutConfig
from domain.scripts import ScriptFamily
from domain.subtitle_cues import SubtitlePipelineError
from service.font_profiles import FontFileLocator, FontProfileResolver
from service.text_measurement import (
    DelegatedMeasurement,
    Dimension,
    MeasurementRequest,
    RasterMeasurement,
    TextDimensionEstimator,
    apply_width_corrections,
    build_estimator,
    build_measurement_document,
    estimate_height,
    parse_measurement_report,
)

FAKE_MEASURER = """#!{python}
import sys
import time

mode = {mode!r}
if mode == "slow":
    time.sleep(5)
if mode == "fail":
    sys.exit(3)
with open(sys.argv[1], encoding="utf-8") as handle:
    texts = [
        line.split(",", 9)[9].rstrip("\\n")
        for line in handle
        if line.startswith("Dialogue:")
    ]
for index, text in enumerate(texts, start=1):
    print(f"Line {{index}}:")
    print(f'  Text: "{{text}}"')
    print(f"  Dimensions: {{10 * len(text)}} x 40 pixels")
"""


def write_fake_measurer(directory: Path, mode: str = "ok") -> str:
    """Write an executable stand-in for the external measurer."""
    script_path = directory / "fake-measure"
    script_path.write_text(
        FAKE_MEASURER.format(python=sys.executable, mode=mode), encoding="utf-8"
    )
    script_path.chmod(0o755)
    return str(script_path)


def empirical_estimator() -> TextDimensionEstimator:
    """Build an estimator with no external tiers."""
    return TextDimensionEstimator(resolver=FontProfileResolver())


def test_latin_estimate_is_within_reasonable_bounds() -> None:
    """Keep ordinary Latin text between 0.3 and 0.8 em per character."""
    dimension = empirical_estimator().estimate("Hello world!", 48, "Arial")
    assert 12 * 48 * 0.3 < dimension.width < 12 * 48 * 0.8
    assert dimension.height == pytest.approx(48)


def test_estimate_is_deterministic() -> None:
    """Return the same dimensions for the same inputs."""
    estimator = empirical_estimator()
    first = estimator.estimate("Repeatable text", 40, "Georgia")
    second = estimator.estimate("Repeatable text", 40, "Georgia")
    assert first == second


def test_empty_text_is_non_negative() -> None:
    """Measure empty text as zero width and one line high."""
    dimension = empirical_estimator().estimate("", 48, "Arial")
    assert dimension.width == 0
    assert dimension.height == pytest.approx(48)


def test_multiline_height() -> None:
    """Apply line spacing to every line but the last."""
    dimension = empirical_estimator().estimate("one\\Ntwo\\Nthree", 48, "Arial")
    assert dimension.height == pytest.approx(48 * 1.2 * 2 + 48)


def test_multiline_width_uses_widest_line() -> None:
    """Size the width by the widest line."""
    estimator = empirical_estimator()
    single = estimator.estimate("a much longer line", 48, "Arial")
    both = estimator.estimate("short\\Na much longer line", 48, "Arial")
    assert both.width >= single.width


@pytest.mark.parametrize(
    ("script", "expected"),
    [
        (ScriptFamily.THAI, 48 * 1.2),
        (ScriptFamily.DEVANAGARI, 48 * 1.2),
        (ScriptFamily.LATIN, 48),
    ],
)
def test_tall_scripts_get_taller_lines(script: ScriptFamily, expected: float) -> None:
    """Give scripts with tall marks extra line height."""
    assert estimate_height(1, 48, 1.2, script) == pytest.approx(expected)


def test_wide_font_measures_wider() -> None:
    """Apply the font category and factor."""
    estimator = empirical_estimator()
    narrow = estimator.estimate("Measure me", 48, "Times New Roman")
    wide = estimator.estimate("Measure me", 48, "Comic Sans MS")
    assert wide.width > narrow.width


def test_cjk_font_caps_latin_text() -> None:
    """Measure Latin text as CJK under a CJK face, then cap the width."""
    dimension = empirical_estimator().estimate("abc", 48, "SimSun")
    assert dimension.width == pytest.approx(3 * 48 * 0.72)


def test_apply_width_corrections_without_cap() -> None:
    """Scale by the width correction and the over-render allowance."""
    assert apply_width_corrections(100, "abcdefghij", 48, 0.95) == pytest.approx(
        100 * 0.95 * 1.05
    )


def test_apply_width_corrections_caps_outliers() -> None:
    """Replace implausibly wide results by the reasonable width."""
    assert apply_width_corrections(10_000, "ab", 48, 0.95) == pytest.approx(
        2 * 48 * 0.72
    )


def test_apply_width_corrections_ignores_line_breaks() -> None:
    """Do not count the line-break marker as characters."""
    assert apply_width_corrections(10_000, "a\\Nb", 48, 1.0) == pytest.approx(
        2 * 48 * 0.72
    )


def test_first_successful_strategy_wins() -> None:
    """Try strategies in order and keep the first result."""
    calls: list[str] = []

    def unavailable(request: MeasurementRequest) -> Dimension | None:
        calls.append("unavailable")
        return None

    def available(request: MeasurementRequest) -> Dimension | None:
        calls.append("available")
        return Dimension(100, 50)

    def never(request: MeasurementRequest) -> Dimension | None:
        calls.append("never")
        return Dimension(1, 1)

    estimator = TextDimensionEstimator(
        resolver=FontProfileResolver(),
        strategies=(("a", unavailable), ("b", available), ("c", never)),
    )
    dimension = estimator.estimate("abcdefghij", 48, "Arial")
    assert calls == ["unavailable", "available"]
    assert dimension.width == pytest.approx(100 * 0.95 * 1.05)
    assert dimension.height == pytest.approx(50)


def test_all_strategies_unavailable_falls_back_to_empirical() -> None:
    """Use the empirical model when every tier declines."""
    estimator = TextDimensionEstimator(
        resolver=FontProfileResolver(),
        strategies=(("none", lambda request: None),),
    )
    assert estimator.estimate("Hello", 48, "Arial") == empirical_estimator().estimate(
        "Hello", 48, "Arial"
    )


def test_verbose_logs_detail(caplog: pytest.LogCaptureFixture) -> None:
    """Log tier and dimensions only in verbose runs."""
    estimator = TextDimensionEstimator(resolver=FontProfileResolver(), verbose=True)
    with caplog.at_level(logging.INFO, logger="rounded_subtitles"):
        estimator.estimate("Hello", 48, "Arial")
    assert "rounded_subtitles.measure.detail" in caplog.text
    assert "tier=empirical" in caplog.text


def test_dimension_rejects_negative_values() -> None:
    """Never construct negative dimensions."""
    with pytest.raises(SubtitlePipelineError):
        Dimension(-1, 10)


def test_raster_failure_falls_back(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    """Return None and warn once when a font file cannot be loaded."""
    bogus_font = tmp_path / "broken.ttf"
    bogus_font.write_bytes(b"not a font")
    locator = FontFileLocator(use_fontconfig=False, dirs_provider=lambda: [])
    locator.cache["Arial"] = str(bogus_font)
    raster = RasterMeasurement(locator)
    estimator = TextDimensionEstimator(
        resolver=FontProfileResolver(), strategies=(("raster", raster),)
    )
    with caplog.at_level(logging.WARNING, logger="rounded_subtitles"):
        first = estimator.estimate("Hello", 48, "Arial")
        estimator.estimate("Hello again", 48, "Arial")
    assert first == empirical_estimator().estimate("Hello", 48, "Arial")
    assert caplog.text.count("rounded_subtitles.measure.raster_unavailable") == 1


def test_raster_measures_with_real_font() -> None:
    """Measure with Pillow when a system font is installed."""
    locator = FontFileLocator(use_fontconfig=False)
    font_name = "DejaVu Sans"
    if locator.locate(font_name) is None:
        pytest.skip("no DejaVu Sans font installed")
    raster = RasterMeasurement(locator)
    request = empirical_estimator().build_request("Hello\\Nworld!!", 48, font_name, 1.2)
    dimension = raster(request)
    assert dimension is not None
    assert dimension.width > 0
    assert dimension.height == pytest.approx(48 * 1.2 + 48)


def test_parse_measurement_report() -> None:
    """Parse one dimension per reported line."""
    report = (
        "Rendering...\n"
        "Line 1:\n"
        '  Text: "Hello"\n'
        "  Dimensions: 120 x 48 pixels\n"
        "Line 2:\n"
        '  Text: "World"\n'
        "  Dimensions: 130 x 50 pixels\n"
    )
    assert parse_measurement_report(report) == {
        0: Dimension(120, 48),
        1: Dimension(130, 50),
    }


def test_parse_measurement_report_ignores_noise() -> None:
    """Return nothing for output without line reports."""
    assert parse_measurement_report("Dimensions: 1 x 2 pixels\n") == {}


def test_measurement_document_holds_every_text() -> None:
    """Write one event per text in order."""
    document = build_measurement_document(["one", "two"], "Arial", 48, 1920, 1080)
    dialogues = [line for line in document.splitlines() if line.startswith("Dialogue:")]
    assert len(dialogues) == 2
    assert dialogues[0].endswith(",one")
    assert "PlayResX: 1920" in document


def test_delegated_measurement_batch(tmp_path: Path) -> None:
    """Measure all texts in one run of the external measurer."""
    delegated = DelegatedMeasurement(write_fake_measurer(tmp_path), 10.0)
    assert delegated.prepare(["Hello", "Hi"], "Arial", 48, 1920, 1080)
    estimator = TextDimensionEstimator(
        resolver=FontProfileResolver(), strategies=(("precise", delegated),)
    )
    dimension = estimator.estimate("Hello", 48, "Arial")
    assert dimension.width == pytest.approx(50 * 0.95 * 1.05)
    assert dimension.height == pytest.approx(40)
    unmeasured = estimator.estimate("Unseen", 48, "Arial")
    assert unmeasured == empirical_estimator().estimate("Unseen", 48, "Arial")


def test_delegated_measurement_missing_command(
    caplog: pytest.LogCaptureFixture,
) -> None:
    """Decline when the measurer is not installed."""
    delegated = DelegatedMeasurement("no-such-measurer-command", 1.0)
    with caplog.at_level(logging.WARNING, logger="rounded_subtitles"):
        assert not delegated.prepare(["Hello"], "Arial", 48, 1920, 1080)
    assert "rounded_subtitles.measure.precise_unavailable" in caplog.text
    assert delegated.measured == {}


@pytest.mark.parametrize("mode", ["slow", "fail"])
def test_delegated_measurement_failures(tmp_path: Path, mode: str) -> None:
    """Decline when the measurer times out or exits with an error."""
    delegated = DelegatedMeasurement(write_fake_measurer(tmp_path, mode), 0.5)
    assert not delegated.prepare(["Hello"], "Arial", 48, 1920, 1080)
    assert delegated.measured == {}


def test_delegated_measurement_found_on_path(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Look the measurer up on PATH by name."""
    write_fake_measurer(tmp_path)
    monkeypatch.setenv("PATH", f"{tmp_path}{os.pathsep}{os.environ.get('PATH', '')}")
    delegated = DelegatedMeasurement("fake-measure", 10.0)
    assert delegated.prepare(["abc"], "Arial", 48, 1920, 1080)
    assert delegated.measured == {"abc": Dimension(30, 40)}


def test_build_estimator_tiers() -> None:
    """Include only the tiers enabled by the configuration."""
    delegated = DelegatedMeasurement("mass", 1.0)
    full = build_estimator(LayoutConfig(verbose=True), delegated=delegated)
    assert [name for name, _ in full.strategies] == ["precise", "raster"]
    assert full.verbose
    bare = build_estimator(
        LayoutConfig(use_precise_measurement=False, use_local_rasterization=False),
        delegated=delegated,
    )
    assert bare.strategies == ()
