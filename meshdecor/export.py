"""
Hand-off of a session's in-memory state to export collaborators: a plain
dict snapshot (JSON friendly) and a GLB of the customised asset.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional, Union

import numpy as np
import trimesh
from trimesh.visual.material import PBRMaterial
from trimesh.visual.texture import TextureVisuals

from meshdecor.errors import StaleReferenceError
from meshdecor.materials import base_color_of, rgba_to_hex, texture_of

logger = logging.getLogger(__name__)


def _material_summary(material) -> Optional[dict]:
    if material is None:
        return None
    rgba = base_color_of(material)
    return {
        "type": type(material).__name__,
        "name": getattr(material, "name", None),
        "color": None if rgba is None else rgba_to_hex(rgba),
        "textured": texture_of(material) is not None,
    }


def snapshot(session) -> dict:
    """Asset frame, per-submesh state and the decal list at this instant."""
    data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "generation": session.generation,
        "asset": None,
        "submeshes": [],
        "decals": [d.summary() for d in session.decal_list()],
    }
    asset = session.asset
    if asset is None:
        return data

    data["asset"] = asset.normalization.as_dict()
    world = asset.tree.snapshot().world
    for sub in asset.registry:
        override = asset.registry.override(sub.id)
        data["submeshes"].append({
            "id": sub.id,
            "name": sub.name,
            "transform": np.asarray(world[sub.node_index]).tolist(),
            "color_override": None if override is None else override.color,
            "material": _material_summary(sub.material),
            "triangles": sub.triangle_count,
            "has_uv": sub.has_uv,
        })
    return data


def _submesh_trimesh(sub) -> trimesh.Trimesh:
    mesh = trimesh.Trimesh(
        vertices=sub.mesh.positions,
        faces=sub.mesh.triangles(),
        vertex_normals=sub.mesh.normals,
        process=False,
    )
    material = sub.material
    if sub.has_uv:
        mesh.visual = TextureVisuals(uv=sub.mesh.uvs, material=material if material is not None else PBRMaterial())
    else:
        rgba = base_color_of(material)
        if rgba is not None:
            mesh.visual.face_colors = rgba
    return mesh


def build_scene(session) -> trimesh.Scene:
    """trimesh.Scene of the normalised asset plus one textured mesh per decal."""
    asset = session.asset
    if asset is None:
        raise StaleReferenceError("No asset loaded")
    scene = trimesh.Scene()
    world = asset.tree.snapshot().world
    for sub in asset.registry:
        scene.add_geometry(_submesh_trimesh(sub), node_name=sub.id, geom_name=sub.id,
                           transform=np.array(world[sub.node_index]))
    # Decal patches are already in world space
    for decal in session.decal_list():
        name = f"decal_{decal.id}"
        scene.add_geometry(decal.patch.to_trimesh(decal.texture), node_name=name, geom_name=name)
    return scene


def export_glb(session, path: Optional[str] = None) -> Union[str, bytes]:
    """Write a GLB to path and return it, or return the GLB bytes when path is None."""
    scene = build_scene(session)
    if path is None:
        data = scene.export(file_type="glb")
        logger.info("[export] Built GLB (%d bytes)", len(data))
        return data
    scene.export(path, file_type="glb")
    logger.info("[export] Done -> %s", path)
    return path
