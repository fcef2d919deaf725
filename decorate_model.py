"""
decorate_model.py
=================
Loads a 3-D model, recolours its parts, renders a text texture, stamps it
onto the surface as a decal and exports the result as GLB.

Edit the CONFIG block below to set all options, then run:
    python decorate_model.py

Outputs
-------
  <OUT>.glb           – customised model (normalised, recoloured, decals)
  <OUT>_text.png      – the synthesized text texture
  <OUT>_uv.png        – UV layout of UV_MESH (if it has UVs)
  <OUT>_scene.json    – snapshot of the session state
"""

import json
import logging
import os
import sys

import numpy as np
import trimesh

from meshdecor import DecorSession, NoUVDataError, TextStyle, export_glb, setup_logging, snapshot

# ──────────────────────────────────────────────────────────────────────────────
# CONFIG  ← edit these values
# ──────────────────────────────────────────────────────────────────────────────

# Model to decorate (anything trimesh can load: glb, gltf, obj, stl, ply ...)
# None builds a demo model (box with a cylinder on top)
MODEL = None

# Largest side of the normalised model
TARGET_SIZE = 3.0

# Part colours, keyed by submesh id (see the printed part list)
# Ids that do not exist in the model are reported and skipped
PART_COLOURS = {
    "body": "#c8a27a",
    "post": "#4287f5",
}

# Text rendered into the decal texture
TEXT = "HELLO WORLD"
# One of: Modern, Classic, Handwritten, Industrial, Minimal
TEXT_PRESET = "Modern"
TEXT_COLOUR = "#ffffff"
TEXT_STROKE = 6
TEXT_GLOW = False

# Decal ray in normalised model space: starts at DECAL_ORIGIN, travels
# along DECAL_DIRECTION. Default hits the long side of the demo body.
DECAL_ORIGIN = (0.0, -5.0, 0.0)
DECAL_DIRECTION = (0.0, 1.0, 0.0)
# Width, height of the decal in normalised units
DECAL_SIZE = (1.2, 1.2)
# Rotation about the surface normal, degrees
DECAL_ROTATION = 0.0

# Submesh whose UV layout is written out (None = first)
UV_MESH = None

# Output stem (no extension)
OUT = "decorated"

LOG_LEVEL = logging.INFO
LOG_FILE = None

# ──────────────────────────────────────────────────────────────────────────────


def demo_model() -> trimesh.Scene:
    """Box with a cylinder on top, both with UVs from a planar projection."""
    scene = trimesh.Scene()
    box = trimesh.creation.box(extents=(2.0, 1.0, 1.0))
    cyl = trimesh.creation.cylinder(radius=0.3, height=1.0, sections=48)
    cyl.apply_translation((0.0, 0.0, 1.0))
    for name, mesh in (("body", box), ("post", cyl)):
        lo, hi = mesh.bounds
        uv = (mesh.vertices[:, :2] - lo[:2]) / np.maximum(hi[:2] - lo[:2], 1e-9)
        mesh.visual = trimesh.visual.TextureVisuals(uv=uv)
        scene.add_geometry(mesh, node_name=name, geom_name=name)
    return scene


def load_model(path):
    if path is None:
        print("[info] No MODEL set, using the demo model")
        return demo_model()
    if not os.path.isfile(path):
        sys.exit(f"[error] File not found: {path}")
    return trimesh.load(path, force="scene")


def main():
    print("=" * 60)
    print("  decorate_model.py")
    print("=" * 60)
    print(f"  model           : {MODEL or 'demo'}")
    print(f"  target_size     : {TARGET_SIZE}")
    print(f"  part colours    : {PART_COLOURS}")
    print(f"  text            : {TEXT!r}  (preset={TEXT_PRESET}  colour={TEXT_COLOUR}  stroke={TEXT_STROKE}  glow={TEXT_GLOW})")
    print(f"  decal ray       : origin={DECAL_ORIGIN}  dir={DECAL_DIRECTION}")
    print(f"  decal           : size={DECAL_SIZE}  rotation={DECAL_ROTATION}°")
    print(f"  uv mesh         : {UV_MESH or 'first'}")
    print(f"  output stem     : {OUT}")
    print("=" * 60)

    setup_logging(LOG_LEVEL, LOG_FILE)

    session = DecorSession(target_size=TARGET_SIZE)
    session.connect("decal_failed", lambda reason: print(f"[warn] Decal not placed: {reason}"))
    session.connect("uv_error", lambda err: print(f"[warn] {err}"))

    asset = session.load_asset(load_model(MODEL))
    print(f"[info] Normalised: center={np.round(asset.normalization.center, 4).tolist()}  "
          f"scale={asset.normalization.scale:.4f}")
    for info in session.mesh_info():
        print(f"  part {info['id']:<16} tris={info['triangles']:<7} uv={info['has_uv']}  colour={info['color']}")

    for mesh_id, colour in PART_COLOURS.items():
        if mesh_id not in asset.registry:
            print(f"[warn] No part named {mesh_id!r}, skipping colour")
            continue
        session.set_mesh_color(mesh_id, colour)

    style = TextStyle.preset(TEXT_PRESET, color=TEXT_COLOUR, stroke_width=TEXT_STROKE, glow=TEXT_GLOW)
    texture = session.synthesize_text(TEXT, style)
    if texture is not None:
        texture.image.save(f"{OUT}_text.png")
        print(f"[info] Text texture: {len(texture.lines)} line(s) at {texture.font_size}px → {OUT}_text.png")

    uv_mesh = UV_MESH or asset.registry.ids[0]
    try:
        projection = session.extract_uv(uv_mesh)
        projection.image.save(f"{OUT}_uv.png")
        print(f"[info] UV layout: {projection.triangle_count} triangles → {OUT}_uv.png")
    except NoUVDataError:
        pass

    decal = session.place_decal((DECAL_ORIGIN, DECAL_DIRECTION), size=DECAL_SIZE, rotation=DECAL_ROTATION)
    if decal is not None:
        print(f"[info] Decal on {decal.mesh_id} at {np.round(decal.origin, 4).tolist()}  "
              f"({decal.patch.triangle_count} triangles)")

    export_glb(session, f"{OUT}.glb")
    with open(f"{OUT}_scene.json", "w", encoding="utf-8") as fh:
        json.dump(snapshot(session), fh, indent=2)
    print(f"[export] Done → {OUT}.glb, {OUT}_scene.json")

    session.dispose()


if __name__ == "__main__":
    main()
