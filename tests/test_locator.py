import numpy as np
import pytest

from ifem.elements import map_to_physical
from ifem.errors import GeometryError
from ifem.locator import build_index, inverse_map, locate
from ifem.meshing import hyper_shell, rectangle


def test_points_are_grouped_by_owner_in_increasing_order() -> None:
    mesh = rectangle(1.0, 1.0, 2, 2)
    index = build_index(mesh)
    points = np.array([[0.75, 0.75], [0.1, 0.2], [0.8, 0.1], [0.3, 0.4]])
    groups = locate(index, points)

    assert [g.cell for g in groups] == [0, 1, 3]
    assert groups[0].indices.tolist() == [1, 3]
    for g in groups:
        back = map_to_physical(mesh.cell_vertices(g.cell), g.ref_points)
        assert np.allclose(back, points[g.indices])


def test_shared_vertex_belongs_to_lowest_cell() -> None:
    mesh = rectangle(1.0, 1.0, 2, 2)
    index = build_index(mesh)
    groups = locate(index, np.array([[0.5, 0.5], [0.5, 0.9]]))
    # (0.5, 0.5) touches all four cells; (0.5, 0.9) touches cells 2 and 3
    owners = {int(i): g.cell for g in groups for i in g.indices}
    assert owners[0] == 0
    assert owners[1] == 2


def test_repeated_queries_give_identical_groups() -> None:
    mesh = rectangle(1.0, 1.0, 3, 3)
    index = build_index(mesh)
    points = np.random.default_rng(3).uniform(0.0, 1.0, size=(50, 2))
    first = locate(index, points)
    second = locate(index, points)
    assert [g.cell for g in first] == [g.cell for g in second]
    for a, b in zip(first, second):
        assert np.array_equal(a.indices, b.indices)
        assert np.array_equal(a.ref_points, b.ref_points)


def test_point_outside_the_mesh_raises() -> None:
    index = build_index(rectangle(1.0, 1.0, 2, 2))
    with pytest.raises(GeometryError) as info:
        locate(index, np.array([[0.5, 0.5], [1.2, 0.5]]))
    assert np.allclose(info.value.points, [[1.2, 0.5]])


def test_inverse_map_on_curved_layout() -> None:
    mesh = hyper_shell((0.0, 0.0), 1.0, 2.0, n_circumferential=6, n_radial=2)
    index = build_index(mesh)
    ref = np.array([[0.3, -0.7]])
    e = 4
    x = map_to_physical(mesh.cell_vertices(e), ref)
    assert np.allclose(inverse_map(mesh.cell_vertices(e), x[0]), ref[0])

    groups = locate(index, x)
    assert groups[0].cell == e
    assert np.allclose(groups[0].ref_points, ref)
