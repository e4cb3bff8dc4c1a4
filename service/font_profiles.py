"""Font calibration profiles and font-file lookup for text measurement."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import logging
import os
from pathlib import Path
import shutil
import subprocess
import sys
from typing import Callable, Sequence

from domain.scripts import ScriptFamily

LOGGER = logging.getLogger("rounded_subtitles")

FONT_FILE_MISSING_CODE = "rounded_subtitles.fonts.file_missing"
FONT_FILE_EXTENSIONS = (".ttf", ".otf", ".ttc")
MONOSPACE_KEYWORDS = (
    "mono",
    "console",
    "typewriter",
    "courier",
    "terminal",
    "fixed",
)
FC_MATCH_TIMEOUT_SECONDS = 5.0


class FontCategory(str, Enum):
    """Coarse font width classes driving empirical width ratios."""

    DEFAULT = "default"
    NARROW = "narrow"
    WIDE = "wide"
    MONOSPACE = "monospace"


@dataclass(frozen=True)
class FontProfile:
    """Width category, adjustment factor, and optional script override."""

    category: FontCategory = FontCategory.DEFAULT
    factor: float = 1.0
    script_override: ScriptFamily | None = None


def _cjk_profile() -> FontProfile:
    return FontProfile(FontCategory.DEFAULT, 1.0, ScriptFamily.CJK)


FONT_CALIBRATION: dict[str, FontProfile] = {
    "Arial": FontProfile(FontCategory.DEFAULT, 1.0),
    "Helvetica": FontProfile(FontCategory.DEFAULT, 1.0),
    "Verdana": FontProfile(FontCategory.DEFAULT, 1.05),
    "Tahoma": FontProfile(FontCategory.DEFAULT, 1.0),
    "Calibri": FontProfile(FontCategory.DEFAULT, 0.98),
    "Toucher Semibold": FontProfile(FontCategory.DEFAULT, 1.0),
    "Times New Roman": FontProfile(FontCategory.NARROW, 0.95),
    "Georgia": FontProfile(FontCategory.NARROW, 0.98),
    "Garamond": FontProfile(FontCategory.NARROW, 0.93),
    "Cambria": FontProfile(FontCategory.NARROW, 0.96),
    "Palatino": FontProfile(FontCategory.NARROW, 0.97),
    "Comic Sans MS": FontProfile(FontCategory.WIDE, 1.1),
    "Trebuchet MS": FontProfile(FontCategory.WIDE, 1.05),
    "Segoe UI": FontProfile(FontCategory.WIDE, 1.02),
    "Lucida Grande": FontProfile(FontCategory.WIDE, 1.08),
    "Courier New": FontProfile(FontCategory.MONOSPACE, 1.0),
    "Consolas": FontProfile(FontCategory.MONOSPACE, 1.0),
    "Courier": FontProfile(FontCategory.MONOSPACE, 1.0),
    "Monaco": FontProfile(FontCategory.MONOSPACE, 1.0),
    "Menlo": FontProfile(FontCategory.MONOSPACE, 1.0),
    "Lucida Console": FontProfile(FontCategory.MONOSPACE, 1.0),
    "DejaVu Sans Mono": FontProfile(FontCategory.MONOSPACE, 1.0),
    "Andale Mono": FontProfile(FontCategory.MONOSPACE, 1.0),
    "SimSun": _cjk_profile(),
    "NSimSun": _cjk_profile(),
    "SimHei": _cjk_profile(),
    "Microsoft YaHei": _cjk_profile(),
    "MS Gothic": _cjk_profile(),
    "Meiryo": _cjk_profile(),
    "Malgun Gothic": _cjk_profile(),
    "Batang": _cjk_profile(),
    "Gulim": _cjk_profile(),
    "Mingliu": _cjk_profile(),
    "PingFang SC": _cjk_profile(),
    "PingFang TC": _cjk_profile(),
    "PingFang HK": _cjk_profile(),
    "Hiragino Sans GB": _cjk_profile(),
    "Heiti SC": _cjk_profile(),
    "Heiti TC": _cjk_profile(),
    "STHeiti": _cjk_profile(),
    "Songti SC": _cjk_profile(),
    "Songti TC": _cjk_profile(),
    "Noto Sans CJK SC": _cjk_profile(),
    "Noto Sans CJK TC": _cjk_profile(),
    "Noto Sans CJK JP": _cjk_profile(),
    "Noto Sans CJK KR": _cjk_profile(),
}
DEFAULT_PROFILE = FontProfile()

# Common file names for fonts that are usually installed under another family.
FONT_FILE_ALIASES: dict[str, tuple[str, ...]] = {
    "arial": (
        "Arial.ttf",
        "arial.ttf",
        "LiberationSans-Regular.ttf",
        "DejaVuSans.ttf",
    ),
    "helvetica": ("Helvetica.ttc", "LiberationSans-Regular.ttf", "DejaVuSans.ttf"),
    "times new roman": (
        "Times New Roman.ttf",
        "times.ttf",
        "LiberationSerif-Regular.ttf",
    ),
    "courier new": ("Courier New.ttf", "cour.ttf", "LiberationMono-Regular.ttf"),
    "dejavu sans mono": ("DejaVuSansMono.ttf",),
    "noto sans cjk sc": ("NotoSansCJK-Regular.ttc", "NotoSansCJKsc-Regular.otf"),
    "microsoft yahei": ("msyh.ttc", "msyh.ttf"),
}


def is_monospace_name(font_name: str) -> bool:
    """Return True when the font name suggests a fixed-width face."""
    lowered = font_name.lower()
    return any(keyword in lowered for keyword in MONOSPACE_KEYWORDS)


@dataclass
class FontProfileResolver:
    """Resolve font names to calibration profiles, caching by exact spelling."""

    calibration: dict[str, FontProfile] = field(
        default_factory=lambda: dict(FONT_CALIBRATION)
    )
    cache: dict[str, FontProfile] = field(default_factory=dict)

    def resolve(self, font_name: str) -> FontProfile:
        """Return the profile for a font name; unknown fonts get the default."""
        cached = self.cache.get(font_name)
        if cached is not None:
            return cached
        profile = self._lookup(font_name)
        self.cache[font_name] = profile
        return profile

    def _lookup(self, font_name: str) -> FontProfile:
        exact = self.calibration.get(font_name)
        if exact is not None:
            return exact
        lowered = font_name.strip().lower()
        for known_name, profile in self.calibration.items():
            if known_name.lower() == lowered:
                return profile
        if is_monospace_name(font_name):
            return FontProfile(FontCategory.MONOSPACE, 1.0)
        return DEFAULT_PROFILE


def platform_font_dirs() -> list[Path]:
    """Return the conventional font directories for this platform."""
    home = Path.home()
    if sys.platform.startswith("win"):
        return [Path(os.environ.get("WINDIR", "C:\\Windows")) / "Fonts"]
    if sys.platform == "darwin":
        return [
            Path("/System/Library/Fonts"),
            Path("/Library/Fonts"),
            home / "Library" / "Fonts",
        ]
    return [
        Path("/usr/share/fonts"),
        Path("/usr/local/share/fonts"),
        home / ".fonts",
        home / ".local" / "share" / "fonts",
    ]


def candidate_file_names(font_name: str) -> list[str]:
    """Build lower-cased file names that may hold the named font."""
    lowered = font_name.strip().lower()
    compact = lowered.replace(" ", "")
    dashed = lowered.replace(" ", "-")
    names = [alias.lower() for alias in FONT_FILE_ALIASES.get(lowered, ())]
    for stem in (lowered, compact, dashed, f"{compact}-regular", f"{dashed}-regular"):
        for extension in FONT_FILE_EXTENSIONS:
            names.append(f"{stem}{extension}")
    return list(dict.fromkeys(names))


def find_font_in_dirs(font_name: str, font_dirs: Sequence[Path]) -> str | None:
    """Search font directories recursively for a matching file name."""
    wanted = candidate_file_names(font_name)
    wanted_set = set(wanted)
    for font_dir in font_dirs:
        if not font_dir.is_dir():
            continue
        matches: dict[str, str] = {}
        for root, _, file_names in os.walk(font_dir):
            for file_name in sorted(file_names):
                lowered = file_name.lower()
                if lowered in wanted_set and lowered not in matches:
                    matches[lowered] = os.path.join(root, file_name)
        for name in wanted:
            if name in matches:
                return matches[name]
    return None


def fc_match_font(font_name: str) -> str | None:
    """Ask fontconfig for the file that best matches the family name."""
    fc_match_path = shutil.which("fc-match")
    if not fc_match_path:
        return None
    try:
        result = subprocess.run(
            [fc_match_path, "-f", "%{file}", font_name],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            timeout=FC_MATCH_TIMEOUT_SECONDS,
            check=False,
        )
    except (OSError, subprocess.SubprocessError):
        return None
    match_path = result.stdout.strip()
    if result.returncode != 0 or not match_path or not os.path.isfile(match_path):
        return None
    return match_path


@dataclass
class FontFileLocator:
    """Resolve a font name to an optional font file path, cached per name."""

    extra_dirs: tuple[Path, ...] = ()
    use_fontconfig: bool = True
    cache: dict[str, str | None] = field(default_factory=dict)
    dirs_provider: Callable[[], list[Path]] = platform_font_dirs

    def locate(self, font_name: str) -> str | None:
        """Return a font file path for the name, or None when none is found."""
        if font_name in self.cache:
            return self.cache[font_name]
        font_path = find_font_in_dirs(
            font_name, [*self.extra_dirs, *self.dirs_provider()]
        )
        if font_path is None and self.use_fontconfig:
            font_path = fc_match_font(font_name)
        if font_path is None:
            LOGGER.warning(
                "%s: no font file found for %r", FONT_FILE_MISSING_CODE, font_name
            )
        self.cache[font_name] = font_path
        return font_path
