import pytest

from meshdecor.errors import InvalidMeshId
from meshdecor.materials import MaterialOverrideApplier
from meshdecor.registry import MeshRegistry
from meshdecor.resources import ResourceLedger
from meshdecor.scene import MeshData, SceneTree
from tests.conftest import quad_mesh


@pytest.fixture
def tree(shared_material):
    tree = SceneTree()
    tree.add_drawable(quad_mesh(), name="hull", material=shared_material)
    tree.add_drawable(quad_mesh(), name="", material=shared_material)
    tree.add_drawable(quad_mesh(with_uv=False), name="wheel")
    tree.add_drawable(quad_mesh(with_uv=False), name="wheel")
    return tree


@pytest.fixture
def registry(tree):
    registry = MeshRegistry(MaterialOverrideApplier(ResourceLedger()))
    registry.register(tree)
    return registry


def test_ids_use_unique_names_else_position(registry):
    assert registry.ids == ["hull", "mesh_1", "mesh_2", "mesh_3"]


def test_empty_geometry_is_not_registered():
    tree = SceneTree()
    tree.add_drawable(MeshData(positions=[]), name="empty")
    assert MeshRegistry().register(tree) == []


def test_register_non_tree_yields_nothing():
    registry = MeshRegistry()
    assert registry.register(None) == []
    assert len(registry) == 0


def test_set_then_get_color_round_trips(registry):
    registry.set_color("hull", "#ff8800")
    assert registry.get_color("hull") == "#ff8800"

    registry.set_color("mesh_1", (0.1, 0.2, 0.3))
    assert registry.get_color("mesh_1") == (0.1, 0.2, 0.3)


def test_get_color_without_override_reports_original(registry):
    assert registry.get_color("hull") == "#c86432"
    assert registry.get_color("mesh_2") is None


def test_restore_returns_exact_original(registry, shared_material):
    hull = registry.get("hull")
    original = hull.material
    registry.set_color("hull", "red")
    assert hull.material is not original

    registry.restore("hull")
    assert hull.material is original
    assert hull.material is shared_material
    assert registry.override("hull") is None


def test_unknown_id_raises(registry):
    with pytest.raises(InvalidMeshId) as info:
        registry.get_color("nope")
    assert info.value.mesh_id == "nope"
    with pytest.raises(InvalidMeshId):
        registry.set_color("nope", "red")


def test_invalid_color_leaves_state(registry):
    with pytest.raises(ValueError):
        registry.set_color("hull", "not-a-colour")
    assert registry.override("hull") is None


def test_mesh_info(registry):
    registry.set_color("hull", "#00ff00")
    info = {row["id"]: row for row in registry.mesh_info()}
    assert info["hull"]["color"] == "#00ff00"
    assert info["hull"]["triangles"] == 2
    assert info["hull"]["has_uv"] is True
    assert info["mesh_2"]["has_uv"] is False


def test_dispose_releases_everything(registry):
    ledger = registry.applier.ledger
    registry.set_color("hull", "blue")
    assert ledger.live("material") == 1

    registry.dispose()
    assert registry.disposed
    assert registry.tree is None
    assert len(registry) == 0
    assert ledger.live() == 0
