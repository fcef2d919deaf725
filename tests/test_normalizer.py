import numpy as np
import pytest
from trimesh.transformations import translation_matrix

from meshdecor.normalizer import AssetNormalizer
from meshdecor.scene import SceneTree


def test_box_scenario_scale_and_center(box_tree):
    result = AssetNormalizer(target_size=3.0).normalize(box_tree)

    assert result.scale == pytest.approx(0.75)
    assert np.allclose(result.center, [0, 0, 0])
    assert np.allclose(result.size, [4, 2, 2])


def test_normalized_largest_side_matches_target(quad_tree):
    quad_tree.set_transform(1, translation_matrix([7, -3, 2]))
    AssetNormalizer(target_size=3.0).normalize(quad_tree)

    bounds = quad_tree.world_bounds()
    assert np.max(bounds[1] - bounds[0]) == pytest.approx(3.0)
    assert np.allclose(bounds.mean(axis=0), 0.0)


def test_measure_leaves_tree_untouched(box_tree):
    before = box_tree.nodes[0].transform.copy()
    AssetNormalizer().measure(box_tree)
    assert np.array_equal(box_tree.nodes[0].transform, before)


def test_empty_tree_keeps_unit_scale():
    result = AssetNormalizer().normalize(SceneTree())
    assert result.scale == 1.0
    assert np.allclose(result.center, 0.0)


def test_as_dict_reports_bounds(box_tree):
    data = AssetNormalizer().measure(box_tree).as_dict()
    assert data["bounds"] == {"width": 4.0, "height": 2.0, "depth": 2.0}
    assert data["scale"] == pytest.approx(0.75)
