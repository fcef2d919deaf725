import pytest

from meshdecor.errors import RasterizationOverflow
from meshdecor.text import (
    DebouncedTextRenderer, FontCache, TextStyle, TextureRasterizer, wrap_words,
)

# content width 200px
NARROW = dict(width=400, height=300, padding=100)


@pytest.fixture
def rasterizer(fake_measure):
    return TextureRasterizer(measure=fake_measure({"HELLO": 180, "WORLD": 190, "HELLO WORLD": 380}))


def test_empty_text_gives_none(rasterizer):
    assert rasterizer.synthesize("", TextStyle(**NARROW)) is None
    assert rasterizer.synthesize("   \n ", TextStyle(**NARROW)) is None


def test_hello_world_wraps_into_two_lines(rasterizer):
    texture = rasterizer.synthesize("HELLO WORLD", TextStyle(**NARROW))
    assert texture.lines == ["HELLO", "WORLD"]
    assert not texture.overflowed


def test_fitting_text_is_one_line(rasterizer):
    texture = rasterizer.synthesize("HI THERE", TextStyle(**NARROW))
    assert texture.lines == ["HI THERE"]


def test_wrapped_lines_fit_content_width(rasterizer):
    style = TextStyle(**NARROW)
    texture = rasterizer.synthesize("aa bb cc dd ee ff gg hh", style)
    assert len(texture.lines) > 1
    for line in texture.lines:
        assert rasterizer.measure(line, None) <= style.content_width


def test_explicit_newlines_always_break():
    lines = wrap_words("one\ntwo three", 1000, len)
    assert lines == ["one", "two three"]


def test_long_word_overflows_but_renders(rasterizer):
    texture = rasterizer.synthesize("SUPERCALIFRAGILISTIC", TextStyle(**NARROW))
    assert texture.lines == ["SUPERCALIFRAGILISTIC"]
    assert texture.overflowed
    assert isinstance(texture.warnings[0], RasterizationOverflow)
    assert texture.image.getbbox() is not None


def test_raster_size_and_background(rasterizer):
    texture = rasterizer.synthesize("HELLO", TextStyle(background="#000000", **NARROW))
    assert (texture.width, texture.height) == (400, 300)
    pixels = texture.pixels()
    assert pixels.shape == (300, 400, 4)
    assert pixels[0, 0].tolist() == [0, 0, 0, 255]


def test_transparent_background_by_default(rasterizer):
    texture = rasterizer.synthesize("HELLO", TextStyle(**NARROW))
    assert texture.pixels()[0, 0, 3] == 0


def test_pass_order(rasterizer):
    style = TextStyle(shadow=True, stroke_width=2, glow=True, **NARROW)
    texture = rasterizer.synthesize("HELLO", style)
    assert texture.passes == ("shadow", "stroke", "fill", "glow")

    plain = rasterizer.synthesize("HELLO", TextStyle(**NARROW))
    assert plain.passes == ("fill",)


def test_fit_height_shrinks_font(fake_measure):
    rasterizer = TextureRasterizer(measure=fake_measure(per_char=40))
    style = TextStyle(width=400, height=400, padding=100, font_size=96, fit_height=True)

    texture = rasterizer.synthesize("abc def ghi jkl mno pqr", style)

    assert len(texture.lines) == 6
    assert texture.font_size < 96
    assert len(texture.lines) * texture.font_size * style.line_height <= style.content_height


def test_letter_spacing_widens_lines_and_wraps_sooner(rasterizer):
    assert rasterizer.line_width("HELLO", None, letter_spacing=10) == 180 + 4 * 10

    tight = rasterizer.synthesize("aaaa bbbb", TextStyle(**NARROW))
    spaced = rasterizer.synthesize("aaaa bbbb", TextStyle(letter_spacing=5, **NARROW))

    assert tight.lines == ["aaaa bbbb"]
    assert spaced.lines == ["aaaa", "bbbb"]


def test_letter_spacing_spreads_drawn_glyphs(rasterizer):
    wide = dict(width=1200, height=300, padding=100, font_size=48)
    near = rasterizer.synthesize("HELLO", TextStyle(letter_spacing=10, **wide)).image.getbbox()
    far = rasterizer.synthesize("HELLO", TextStyle(letter_spacing=60, **wide)).image.getbbox()

    assert (far[2] - far[0]) - (near[2] - near[0]) >= 150


def test_presets():
    modern = TextStyle.preset("Modern")
    assert modern.font_weight == "bold"
    assert modern.shadow
    assert modern.fit_height
    assert modern.letter_spacing == 2
    assert TextStyle.preset("Industrial").letter_spacing == 4
    assert TextStyle.preset("Minimal").letter_spacing == 0
    assert TextStyle.preset("Classic", font_size=50).font_size == 50
    with pytest.raises(ValueError):
        TextStyle.preset("Gothic")


def test_style_validation():
    with pytest.raises(ValueError):
        TextStyle(align="diagonal")
    with pytest.raises(ValueError):
        TextStyle(width=0)


def test_font_cache_evicts_least_recently_used():
    cache = FontCache(capacity=2)
    cache.get("missing-font.ttf", 10)
    cache.get("missing-font.ttf", 12)
    cache.get("missing-font.ttf", 10)
    cache.get("missing-font.ttf", 14)

    assert len(cache) == 2
    assert ("missing-font.ttf", "normal", 10) in cache
    assert ("missing-font.ttf", "normal", 12) not in cache
    assert (cache.hits, cache.misses, cache.evictions) == (1, 3, 1)


def test_debounce_renders_only_latest(rasterizer):
    renderer = DebouncedTextRenderer(rasterizer, window=0.25, clock=lambda: 0.0)
    style = TextStyle(**NARROW)
    first = renderer.submit("HELLO", style, now=0.0)
    second = renderer.submit("WORLD", style, now=0.1)

    assert renderer.poll(now=0.2) is None
    result = renderer.poll(now=0.4)

    assert result.generation == second
    assert result.texture.text == "WORLD"
    assert result.texture.generation == second
    assert not renderer.is_current(first)
    assert renderer.poll(now=1.0) is None


def test_debounce_cancel(rasterizer):
    renderer = DebouncedTextRenderer(rasterizer, window=0.0, clock=lambda: 0.0)
    renderer.submit("HELLO", TextStyle(**NARROW))
    renderer.cancel()
    assert not renderer.pending
    assert renderer.poll() is None
