from __future__ import annotations

"""Point location on a quadrilateral mesh.

The index is built once per mesh and queried as often as needed:

    index = build_index(mesh)
    groups = locate(index, points)

Each group lists the points owned by one cell, their reference coordinates
and their positions in the query array. A point on an edge or vertex shared
by several cells belongs to the lowest-numbered containing cell, so repeated
queries always split a point set the same way.
"""

from dataclasses import dataclass

import numpy as np
from scipy.spatial import cKDTree

from .elements import jacobian, shape_function_q4
from .errors import GeometryError
from .meshing import Mesh

INSIDE_TOLERANCE = 1e-10
NEWTON_STEPS = 20


@dataclass(frozen=True, eq=False)
class LocatorIndex:
    mesh: Mesh
    tree: cKDTree
    radius: float
    vertices: np.ndarray        # (n_elem, 4, 2)


@dataclass(frozen=True, eq=False)
class PointGroup:
    cell: int
    ref_points: np.ndarray      # (m, 2) reference coordinates in [-1, 1]^2
    indices: np.ndarray         # (m,) positions in the query array


def build_index(mesh: Mesh) -> LocatorIndex:
    vertices = mesh.nodecoordinate[mesh.element_node]
    centers = vertices.mean(axis=1)
    radius = float(np.linalg.norm(vertices - centers[:, None, :], axis=2).max())
    return LocatorIndex(mesh=mesh, tree=cKDTree(centers), radius=radius * (1 + 1e-8), vertices=vertices)


def inverse_map(node_xy: np.ndarray, point: np.ndarray) -> np.ndarray:
    """Reference coordinates of a physical point under the Q4 map of a cell."""
    ref = np.zeros(2)
    size = np.ptp(node_xy, axis=0).max()
    for _ in range(NEWTON_STEPS):
        shape, natural = shape_function_q4(ref[0], ref[1])
        residual = shape[0] @ node_xy - point
        J, _ = jacobian(node_xy, natural)
        step = np.linalg.solve(J[0], residual)
        ref = ref - step
        if np.linalg.norm(residual) <= 1e-14 * size:
            break
    return ref


def locate_point(index: LocatorIndex, point: np.ndarray) -> tuple[int, np.ndarray] | None:
    candidates = sorted(index.tree.query_ball_point(point, index.radius))
    for e in candidates:
        ref = inverse_map(index.vertices[e], point)
        if np.all(np.abs(ref) <= 1.0 + INSIDE_TOLERANCE):
            return e, np.clip(ref, -1.0, 1.0)
    return None


def locate(index: LocatorIndex, points: np.ndarray) -> list[PointGroup]:
    """Owning cells of a set of points, grouped by cell in increasing cell order.

    Raises GeometryError if any point lies outside the mesh.
    """
    points = np.atleast_2d(np.asarray(points, dtype=float))
    owners = np.zeros(points.shape[0], dtype=int)
    refs = np.zeros_like(points)
    outside = []
    for i, x in enumerate(points):
        hit = locate_point(index, x)
        if hit is None:
            outside.append(i)
            continue
        owners[i], refs[i] = hit
    if outside:
        raise GeometryError(
            f"{len(outside)} point(s) lie outside the fluid mesh, e.g. {points[outside[0]]}",
            points[outside],
        )

    groups = []
    for e in np.unique(owners):
        idx = np.nonzero(owners == e)[0]
        groups.append(PointGroup(cell=int(e), ref_points=refs[idx], indices=idx))
    return groups
