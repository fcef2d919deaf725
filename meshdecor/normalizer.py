"""
Bring an arbitrary loaded hierarchy into a consistent display frame:
centred on the origin, largest dimension equal to the target size.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
from trimesh.transformations import scale_matrix, translation_matrix

from meshdecor import config
from meshdecor.scene import SceneTree

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Normalization:
    center: np.ndarray   # (3,) box centroid before normalisation
    scale: float
    bounds: np.ndarray   # (2, 3) world box before normalisation

    @property
    def size(self) -> np.ndarray:
        return self.bounds[1] - self.bounds[0]

    def as_dict(self) -> dict:
        return {
            "center": self.center.tolist(),
            "scale": self.scale,
            "bounds": {
                "width": float(self.size[0]),
                "height": float(self.size[1]),
                "depth": float(self.size[2]),
            },
        }


class AssetNormalizer:
    def __init__(self, target_size: float = config.TARGET_SIZE):
        self.target_size = float(target_size)

    def measure(self, tree: SceneTree) -> Normalization:
        """Compute center and fit-scale without touching the tree."""
        bounds = tree.world_bounds()
        if bounds is None:
            bounds = np.zeros((2, 3))
        center = bounds.mean(axis=0)
        max_dim = float(np.max(bounds[1] - bounds[0]))
        # Degenerate (flat point / empty) assets keep their size
        scale = self.target_size / max_dim if max_dim > 0 else 1.0
        return Normalization(center=center, scale=scale, bounds=bounds)

    def normalize(self, tree: SceneTree) -> Normalization:
        """
        Translate the root by -center and scale it uniformly, so that the
        world box is centred at the origin with its largest side equal to
        target_size.
        """
        result = self.measure(tree)
        fit = scale_matrix(result.scale) @ translation_matrix(-result.center)
        tree.set_transform(0, fit @ tree.nodes[0].transform)
        logger.info(
            "[asset] Normalised: center=(%.3f, %.3f, %.3f) scale=%.4f",
            result.center[0], result.center[1], result.center[2], result.scale,
        )
        return result
