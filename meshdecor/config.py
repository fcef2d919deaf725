"""
Defaults shared by the decoration pipeline.

Every component takes these as keyword defaults, so a caller can override
any value per instance without touching this module.
"""

# ──────────────────────────────────────────────────────────────────────────────
# Asset normalisation
# ──────────────────────────────────────────────────────────────────────────────

# Largest bounding-box dimension after normalisation, in world units.
TARGET_SIZE = 3.0

# ──────────────────────────────────────────────────────────────────────────────
# Text rasterisation
# ──────────────────────────────────────────────────────────────────────────────

# Raster size for synthesized text textures (pixels).
TEXT_WIDTH = 1024
TEXT_HEIGHT = 1024
# Distance kept clear on every side of the text block (pixels).
TEXT_PADDING = 100
TEXT_FONT_FAMILY = "DejaVuSans.ttf"
TEXT_FONT_SIZE = 96
# Line height as a multiple of the font size.
LINE_HEIGHT_FACTOR = 1.2
# Shadow / emboss pass: offset in pixels and blur radius.
SHADOW_OFFSET = (5, 5)
SHADOW_BLUR = 4.0
# Shadow tone as a fraction of the text colour, and its opacity (0..255).
SHADOW_DARKEN = 0.35
SHADOW_ALPHA = 140
# Soft glow pass: large blur, low opacity, layered last.
GLOW_BLUR = 18.0
GLOW_OPACITY = 0.35
# Maximum shrink-to-fit passes when the wrapped block is taller than the box.
FIT_MAX_PASSES = 6
# Number of (family, weight, size) fonts kept alive by a FontCache.
FONT_CACHE_SIZE = 32

# Trailing-edge debounce window for rapid style edits (seconds).
DEBOUNCE_SECONDS = 0.25

# ──────────────────────────────────────────────────────────────────────────────
# UV inspection images
# ──────────────────────────────────────────────────────────────────────────────

UV_IMAGE_SIZE = 512
UV_BACKGROUND = (248, 249, 250, 255)
UV_FILL = (66, 135, 245, 60)
UV_STROKE = (33, 37, 41, 255)
UV_STROKE_WIDTH = 1
# Opacity of the existing texture shown beneath the wireframe (0..1).
UV_PREVIEW_OPACITY = 0.25

# ──────────────────────────────────────────────────────────────────────────────
# Raycasting & decals
# ──────────────────────────────────────────────────────────────────────────────

# Hits closer than this along the ray are ignored.
RAY_EPSILON = 1e-9
# Largest angle (degrees) between an interpolated vertex normal and the face
# normal before the face normal is used instead.
SMOOTH_NORMAL_MAX_ANGLE = 15.0
# Projection depth of the decal volume as a fraction of its size.
DECAL_DEPTH_RATIO = 0.5
# Offset along the surface normal that keeps decals off the surface.
DECAL_NORMAL_OFFSET = 1e-3
# |dot(normal, up)| above which the basis falls back to world-right.
DECAL_PARALLEL_THRESHOLD = 0.99
WORLD_UP = (0.0, 1.0, 0.0)
WORLD_RIGHT = (1.0, 0.0, 0.0)
