"""
Text texture synthesis
======================
Turns a string plus a TextStyle into an RGBA raster that can be used as a
decal texture or assigned straight to a submesh material.

The rasterizer is synchronous and keeps no state between calls other than
the FontCache it is given. Debouncing of rapid edits lives in
DebouncedTextRenderer, which tags every request with a generation number
so a late result can be recognised as stale and dropped.
"""
from __future__ import annotations

import logging
import os
import time
from collections import OrderedDict
from dataclasses import dataclass, field, replace
from typing import Callable, List, NamedTuple, Optional, Tuple

import numpy as np
from PIL import Image, ImageDraw, ImageFilter, ImageFont

from meshdecor import config
from meshdecor.errors import RasterizationOverflow
from meshdecor.materials import to_rgba

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────────────────────────────────────
# Style
# ──────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class TextStyle:
    font_family: str = config.TEXT_FONT_FAMILY
    font_size: int = config.TEXT_FONT_SIZE
    font_weight: str = "normal"
    color: object = "#ffffff"
    # None leaves the raster transparent
    background: object = None
    stroke_width: int = 0
    stroke_color: object = "#000000"
    # Shadow / emboss: offset duplicate in a darker tone, blurred
    shadow: bool = False
    shadow_offset: Tuple[int, int] = config.SHADOW_OFFSET
    shadow_blur: float = config.SHADOW_BLUR
    shadow_color: object = None
    glow: bool = False
    glow_blur: float = config.GLOW_BLUR
    glow_opacity: float = config.GLOW_OPACITY
    align: str = "center"       # left | center | right
    valign: str = "middle"      # top | middle | bottom
    width: int = config.TEXT_WIDTH
    height: int = config.TEXT_HEIGHT
    padding: int = config.TEXT_PADDING
    # Wrap width in pixels; None means width - 2 * padding
    wrap_width: Optional[int] = None
    line_height: float = config.LINE_HEIGHT_FACTOR
    # Extra px between characters
    letter_spacing: float = 0.0
    fit_height: bool = False

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Raster size must be positive, got {self.width}x{self.height}")
        if self.font_size <= 0:
            raise ValueError(f"font_size must be positive, got {self.font_size}")
        if self.align not in ("left", "center", "right"):
            raise ValueError(f"align must be left, center or right, got {self.align!r}")
        if self.valign not in ("top", "middle", "bottom"):
            raise ValueError(f"valign must be top, middle or bottom, got {self.valign!r}")

    @property
    def content_width(self) -> float:
        if self.wrap_width is not None:
            return float(self.wrap_width)
        return float(max(1, self.width - 2 * self.padding))

    @property
    def content_height(self) -> float:
        return float(max(1, self.height - 2 * self.padding))

    @classmethod
    def preset(cls, name: str, **overrides) -> "TextStyle":
        try:
            base = PRESETS[name]
        except KeyError:
            raise ValueError(f"Unknown text style preset {name!r}; choose from {sorted(PRESETS)}") from None
        return replace(base, **overrides)


_PRESET_CANVAS = dict(width=2048, height=2048, padding=100, shadow=True,
                      shadow_offset=(5, 5), shadow_blur=10.0, fit_height=True)

PRESETS = {
    "Modern": TextStyle(font_family="DejaVuSans.ttf", font_weight="bold", font_size=200,
                        letter_spacing=2, **_PRESET_CANVAS),
    "Classic": TextStyle(font_family="DejaVuSerif.ttf", font_size=180, letter_spacing=1, **_PRESET_CANVAS),
    "Handwritten": TextStyle(font_family="DejaVuSans-Oblique.ttf", font_size=220, letter_spacing=3,
                             **_PRESET_CANVAS),
    "Industrial": TextStyle(font_family="DejaVuSansCondensed-Bold.ttf", font_size=190, letter_spacing=4,
                            **_PRESET_CANVAS),
    "Minimal": TextStyle(font_family="DejaVuSans-ExtraLight.ttf", font_size=170, letter_spacing=0,
                         **_PRESET_CANVAS),
}


# ──────────────────────────────────────────────────────────────────────────────
# Fonts
# ──────────────────────────────────────────────────────────────────────────────

class FontCache:
    """
    LRU cache of loaded fonts keyed by (family, weight, size).

    A family that cannot be resolved falls back to Pillow's default font and
    is cached under the requested key, so the failing lookup runs once.
    """

    def __init__(self, capacity: int = config.FONT_CACHE_SIZE):
        if capacity < 1:
            raise ValueError("FontCache capacity must be at least 1")
        self.capacity = capacity
        self._fonts: "OrderedDict[tuple, ImageFont.ImageFont]" = OrderedDict()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def __len__(self) -> int:
        return len(self._fonts)

    def __contains__(self, key) -> bool:
        return key in self._fonts

    def get(self, family: str, size: int, weight: str = "normal"):
        key = (family, weight, int(size))
        font = self._fonts.get(key)
        if font is not None:
            self._fonts.move_to_end(key)
            self.hits += 1
            return font

        self.misses += 1
        font = self._load(family, int(size), weight)
        self._fonts[key] = font
        while len(self._fonts) > self.capacity:
            evicted, _ = self._fonts.popitem(last=False)
            self.evictions += 1
            logger.debug("[text] Evicted font %s", evicted)
        return font

    @staticmethod
    def _candidates(family: str, weight: str) -> List[str]:
        names = []
        if weight in ("bold", "700", "800", "900"):
            stem, ext = os.path.splitext(family)
            names.append(f"{stem}-Bold{ext or '.ttf'}")
        names.append(family)
        return names

    def _load(self, family: str, size: int, weight: str):
        for name in self._candidates(family, weight):
            try:
                return ImageFont.truetype(name, size)
            except OSError:
                continue
        logger.warning("[text] Font %r not found, using default font", family)
        return ImageFont.load_default(size=size)

    def clear(self) -> None:
        self._fonts.clear()


# ──────────────────────────────────────────────────────────────────────────────
# Layout
# ──────────────────────────────────────────────────────────────────────────────

def wrap_words(text: str, max_width: float, measure: Callable[[str], float]) -> List[str]:
    """
    Greedy whole-word wrap. A word is appended to the current line while the
    line stays within max_width; otherwise it starts the next line. Explicit
    newlines always break. A single word wider than max_width is kept on its
    own line and overflows.
    """
    lines: List[str] = []
    for paragraph in text.split("\n"):
        words = paragraph.split()
        if not words:
            lines.append("")
            continue
        current = words[0]
        for word in words[1:]:
            candidate = current + " " + word
            if measure(candidate) <= max_width:
                current = candidate
            else:
                lines.append(current)
                current = word
        lines.append(current)
    return lines


@dataclass(eq=False)
class RasterTexture:
    image: Image.Image
    text: str
    style: TextStyle
    lines: List[str]
    font_size: int
    # Pass names in the order they were composited, per line
    passes: Tuple[str, ...] = ()
    warnings: List[RasterizationOverflow] = field(default_factory=list)
    generation: int = 0

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    @property
    def overflowed(self) -> bool:
        return bool(self.warnings)

    def pixels(self) -> np.ndarray:
        """(H, W, 4) uint8 copy of the raster."""
        return np.asarray(self.image, dtype=np.uint8).copy()

    def close(self) -> None:
        self.image.close()


# ──────────────────────────────────────────────────────────────────────────────
# Rasterizer
# ──────────────────────────────────────────────────────────────────────────────

def _with_alpha(rgba: np.ndarray, alpha: int) -> tuple:
    return int(rgba[0]), int(rgba[1]), int(rgba[2]), int(alpha)


def _fade(layer: Image.Image, opacity: float) -> Image.Image:
    alpha = layer.getchannel("A").point(lambda a: int(a * opacity))
    layer.putalpha(alpha)
    return layer


class TextureRasterizer:
    def __init__(self, fonts: Optional[FontCache] = None,
                 measure: Optional[Callable[[str, object], float]] = None):
        self.fonts = fonts if fonts is not None else FontCache()
        # measure(text, font) -> width in px; overridable for deterministic layout
        self._measure = measure

    def measure(self, text: str, font) -> float:
        if self._measure is not None:
            return float(self._measure(text, font))
        return float(font.getlength(text))

    def line_width(self, line: str, font, letter_spacing: float = 0.0) -> float:
        """Width of line with letter_spacing added between its characters."""
        width = self.measure(line, font)
        if letter_spacing and len(line) > 1:
            width += letter_spacing * (len(line) - 1)
        return width

    def layout(self, text: str, style: TextStyle):
        """Return (lines, font, font_size, warnings) after wrapping and optional shrink-to-fit."""
        font_size = style.font_size
        font = self.fonts.get(style.font_family, font_size, style.font_weight)

        def width_of(s):
            return self.line_width(s, font, style.letter_spacing)

        lines = wrap_words(text, style.content_width, width_of)

        if style.fit_height:
            for _ in range(config.FIT_MAX_PASSES):
                block = len(lines) * font_size * style.line_height
                if block <= style.content_height or font_size <= 1:
                    break
                font_size = max(1, int(font_size * style.content_height / block))
                font = self.fonts.get(style.font_family, font_size, style.font_weight)
                lines = wrap_words(text, style.content_width, width_of)

        warnings = []
        for line in lines:
            width = width_of(line)
            if width > style.content_width:
                warnings.append(RasterizationOverflow(
                    f"Line {line!r} is {width:.0f}px wide, content area is {style.content_width:.0f}px",
                    line=line, measured=width, limit=style.content_width,
                ))
        block = len(lines) * font_size * style.line_height
        if block > style.height:
            warnings.append(RasterizationOverflow(
                f"Text block is {block:.0f}px tall, raster is {style.height}px",
                measured=block, limit=float(style.height),
            ))
        return lines, font, font_size, warnings

    def _line_layer(self, size, xy, line, font, fill, letter_spacing=0.0, **stroke) -> Image.Image:
        layer = Image.new("RGBA", size, (0, 0, 0, 0))
        draw = ImageDraw.Draw(layer)
        if not letter_spacing:
            draw.text(xy, line, font=font, fill=fill, **stroke)
            return layer
        x, y = xy
        for char in line:
            draw.text((round(x), y), char, font=font, fill=fill, **stroke)
            x += self.measure(char, font) + letter_spacing
        return layer

    def synthesize(self, text: str, style: Optional[TextStyle] = None) -> Optional[RasterTexture]:
        """
        Rasterize text with style. Returns None for empty (or blank) text.

        Per line, passes are composited in this order: shadow, stroke, fill,
        glow. Overflowing text is drawn anyway and reported on the result.
        """
        if not text or not text.strip():
            logger.debug("[text] Empty text, no texture produced")
            return None
        style = style if style is not None else TextStyle()

        lines, font, font_size, warnings = self.layout(text, style)
        for warning in warnings:
            logger.warning("[text] %s", warning)

        size = (style.width, style.height)
        background = (0, 0, 0, 0) if style.background is None else tuple(int(c) for c in to_rgba(style.background))
        image = Image.new("RGBA", size, background)

        color = to_rgba(style.color)
        if style.shadow_color is not None:
            shadow_fill = tuple(int(c) for c in to_rgba(style.shadow_color))
        else:
            shadow_fill = _with_alpha(np.round(color[:3] * config.SHADOW_DARKEN), config.SHADOW_ALPHA)
        stroke_fill = tuple(int(c) for c in to_rgba(style.stroke_color))
        fill = tuple(int(c) for c in color)

        spacing = style.letter_spacing
        line_px = font_size * style.line_height
        block = len(lines) * line_px
        if style.valign == "top":
            top = float(style.padding)
        elif style.valign == "bottom":
            top = style.height - style.padding - block
        else:
            top = (style.height - block) / 2.0

        passes = []
        if style.shadow:
            passes.append("shadow")
        if style.stroke_width > 0:
            passes.append("stroke")
        passes.append("fill")
        if style.glow:
            passes.append("glow")

        for i, line in enumerate(lines):
            if not line:
                continue
            width = self.line_width(line, font, style.letter_spacing)
            if style.align == "left":
                x = float(style.padding)
            elif style.align == "right":
                x = style.width - style.padding - width
            else:
                x = (style.width - width) / 2.0
            y = top + i * line_px + (line_px - font_size) / 2.0
            xy = (round(x), round(y))

            for name in passes:
                if name == "shadow":
                    dx, dy = style.shadow_offset
                    layer = self._line_layer(size, (xy[0] + dx, xy[1] + dy), line, font, shadow_fill, spacing)
                    if style.shadow_blur > 0:
                        layer = layer.filter(ImageFilter.GaussianBlur(radius=float(style.shadow_blur)))
                elif name == "stroke":
                    layer = self._line_layer(size, xy, line, font, stroke_fill, spacing,
                                             stroke_width=style.stroke_width, stroke_fill=stroke_fill)
                elif name == "fill":
                    layer = self._line_layer(size, xy, line, font, fill, spacing)
                else:
                    layer = self._line_layer(size, xy, line, font, fill, spacing)
                    layer = layer.filter(ImageFilter.GaussianBlur(radius=float(style.glow_blur)))
                    layer = _fade(layer, style.glow_opacity)
                image.alpha_composite(layer)

        logger.debug("[text] Rasterized %d line(s) at %dpx into %dx%d", len(lines), font_size, *size)
        return RasterTexture(
            image=image, text=text, style=style, lines=lines,
            font_size=font_size, passes=tuple(passes), warnings=warnings,
        )


# ──────────────────────────────────────────────────────────────────────────────
# Debounced requests
# ──────────────────────────────────────────────────────────────────────────────

class RenderResult(NamedTuple):
    generation: int
    texture: Optional[RasterTexture]


class DebouncedTextRenderer:
    """
    Trailing-edge debounce without timers: submit() records the latest
    request and bumps the generation; poll() rasterizes it once the window
    has passed since that request. Only the newest request is ever rendered.
    """

    def __init__(self, rasterizer: TextureRasterizer,
                 window: float = config.DEBOUNCE_SECONDS,
                 clock: Callable[[], float] = time.monotonic):
        self.rasterizer = rasterizer
        self.window = float(window)
        self.clock = clock
        self.generation = 0
        self._pending = None

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def submit(self, text: str, style: Optional[TextStyle] = None, now: Optional[float] = None) -> int:
        now = self.clock() if now is None else now
        self.generation += 1
        self._pending = (self.generation, text, style, now)
        return self.generation

    def is_current(self, generation: int) -> bool:
        return generation == self.generation

    def cancel(self) -> None:
        self._pending = None

    def poll(self, now: Optional[float] = None) -> Optional[RenderResult]:
        if self._pending is None:
            return None
        now = self.clock() if now is None else now
        generation, text, style, submitted = self._pending
        if now - submitted < self.window:
            return None
        self._pending = None
        texture = self.rasterizer.synthesize(text, style)
        if texture is not None:
            texture.generation = generation
        return RenderResult(generation, texture)
