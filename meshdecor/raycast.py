"""
Ray queries against registered submeshes.

Each submesh is moved into world space as a trimesh.Trimesh and queried with
trimesh's ray engine (``mesh.ray.intersects_location``). Geometry is placed
with the world matrices of a SceneSnapshot so they cannot change underneath
a query.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Iterable, Optional

import numpy as np
import trimesh
from trimesh.transformations import transform_points
from trimesh.triangles import points_to_barycentric

from meshdecor import config
from meshdecor.errors import InvalidRayError
from meshdecor.scene import SceneSnapshot, normal_matrix

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Ray:
    origin: np.ndarray
    direction: np.ndarray   # unit length

    @classmethod
    def create(cls, origin, direction) -> "Ray":
        o = np.asarray(origin, dtype=np.float64).ravel()
        d = np.asarray(direction, dtype=np.float64).ravel()
        if o.shape != (3,) or d.shape != (3,):
            raise InvalidRayError(f"Ray origin and direction must be 3-vectors, got {o.shape} and {d.shape}")
        if not (np.all(np.isfinite(o)) and np.all(np.isfinite(d))):
            raise InvalidRayError("Ray contains non-finite values")
        length = float(np.linalg.norm(d))
        if length <= 1e-12:
            raise InvalidRayError("Ray direction has zero length")
        return cls(origin=o, direction=d / length)

    def at(self, t: float) -> np.ndarray:
        return self.origin + self.direction * t


@dataclass(frozen=True)
class RayHit:
    mesh_id: str
    face_index: int
    distance: float
    point: np.ndarray
    normal: np.ndarray            # unit, facing the ray origin
    barycentric: np.ndarray       # (3,) weights of the triangle corners
    triangle: np.ndarray          # (3, 3) world-space corners


def world_mesh(submesh, world: np.ndarray) -> Optional[trimesh.Trimesh]:
    """Submesh geometry placed by world as a Trimesh, or None when it has no triangles."""
    faces = submesh.mesh.triangles()
    if len(faces) == 0:
        return None
    vertices = transform_points(submesh.mesh.positions, world)
    return trimesh.Trimesh(vertices=vertices, faces=faces, process=False)


def hit_normal(submesh, world: np.ndarray, face: int, bary: np.ndarray, face_normal: np.ndarray,
               max_angle: float = config.SMOOTH_NORMAL_MAX_ANGLE) -> np.ndarray:
    """
    Surface normal at a hit. The interpolated vertex normal is used only while
    it stays within max_angle degrees of the face normal; vertices shared
    across hard edges average into normals that lean off flat faces.
    """
    normals = submesh.mesh.normals
    if normals is not None:
        corners = normals[submesh.mesh.triangles()[face]]
        smooth = (bary @ corners) @ normal_matrix(world).T
        length = float(np.linalg.norm(smooth))
        if length > 1e-12:
            smooth = smooth / length
            if abs(float(np.dot(smooth, face_normal))) >= math.cos(math.radians(max_angle)):
                return smooth
    return np.array(face_normal, dtype=np.float64)


def raycast(ray: Ray, submeshes: Iterable, snapshot: SceneSnapshot,
            eps: float = config.RAY_EPSILON) -> Optional[RayHit]:
    """Closest hit over all submeshes, or None."""
    best = None
    for sub in submeshes:
        world = snapshot.world[sub.node_index]
        mesh = world_mesh(sub, world)
        if mesh is None:
            continue
        locations, _index_ray, index_tri = mesh.ray.intersects_location(
            ray_origins=ray.origin.reshape(1, 3),
            ray_directions=ray.direction.reshape(1, 3),
        )
        if len(locations) == 0:
            continue
        distance = (locations - ray.origin) @ ray.direction
        ahead = np.flatnonzero(distance > eps)
        if len(ahead) == 0:
            continue
        i = ahead[np.argmin(distance[ahead])]
        if best is None or distance[i] < best[0]:
            best = (float(distance[i]), sub, world, mesh, int(index_tri[i]), locations[i])

    if best is None:
        return None

    distance, sub, world, mesh, face, point = best
    tri = np.array(mesh.triangles[face], dtype=np.float64)
    bary = points_to_barycentric(tri[np.newaxis], point[np.newaxis])[0]
    normal = hit_normal(sub, world, face, bary, mesh.face_normals[face])
    if float(np.dot(normal, ray.direction)) > 0:
        normal = -normal
    logger.debug("[decal] Ray hit %s face %d at t=%.4f", sub.id, face, distance)
    return RayHit(mesh_id=sub.id, face_index=face, distance=distance, point=np.array(point, dtype=np.float64),
                  normal=normal, barycentric=bary, triangle=tri)
