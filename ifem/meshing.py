from __future__ import annotations

"""Quadrilateral meshes for the control volume and the immersed body.

Compatibility notes:
* Node ids are 0-based. Element connectivity is Q4 with counter-clockwise
  node ordering [n1, n2, n3, n4], matching the reference vertices
  (-1,-1), (1,-1), (1,1), (-1,1).
* Boundary facets are stored as rows [element, local_face, boundary_id]
  with local faces 0: n1-n2, 1: n2-n3, 2: n3-n4, 3: n4-n1.
* Rectangles carry boundary ids 0 (left), 1 (right), 2 (bottom), 3 (top).
"""

from dataclasses import dataclass, field
import numpy as np

# local face -> (local vertex a, local vertex b)
FACE_VERTICES = np.array([[0, 1], [1, 2], [2, 3], [3, 0]], dtype=int)


@dataclass
class Mesh:
    nodecoordinate: np.ndarray       # (n_node, 2): [x, y]
    element_node: np.ndarray         # (n_elem, 4): counter-clockwise vertex ids
    boundary_facets: np.ndarray = field(default_factory=lambda: np.zeros((0, 3), dtype=int))

    @property
    def numberelements(self) -> int:
        return int(self.element_node.shape[0])

    @property
    def numbernode(self) -> int:
        return int(self.nodecoordinate.shape[0])

    def cell_vertices(self, e: int) -> np.ndarray:
        return self.nodecoordinate[self.element_node[e]]

    def cell_diameters(self) -> np.ndarray:
        xy = self.nodecoordinate[self.element_node]
        d1 = np.linalg.norm(xy[:, 2] - xy[:, 0], axis=1)
        d2 = np.linalg.norm(xy[:, 3] - xy[:, 1], axis=1)
        return np.maximum(d1, d2)

    def minimal_cell_diameter(self) -> float:
        return float(self.cell_diameters().min())


def find_boundary_facets(element_node: np.ndarray) -> np.ndarray:
    """Facets owned by exactly one element, with boundary id 0."""
    count: dict[tuple[int, int], list[tuple[int, int]]] = {}
    for e, nodes in enumerate(element_node):
        for f, (a, b) in enumerate(FACE_VERTICES):
            key = tuple(sorted((int(nodes[a]), int(nodes[b]))))
            count.setdefault(key, []).append((e, f))
    rows = [(owners[0][0], owners[0][1], 0) for owners in count.values() if len(owners) == 1]
    rows.sort()
    return np.array(rows, dtype=int).reshape(-1, 3)


def a_Q4mesh_Meshing(dx: np.ndarray, dy: np.ndarray, origin: tuple[float, float] = (0.0, 0.0)) -> tuple[np.ndarray, np.ndarray]:
    """Structured Q4 mesh from column widths dx and row heights dy.

    Returns:
        element_node: (Elements, 4) element connectivity (0-based)
        nodecoordinate: (Nodes, 2) node coordinates
    """
    dx = np.asarray(dx, dtype=float)
    dy = np.asarray(dy, dtype=float)
    nx_e = int(len(dx))
    ny_e = int(len(dy))
    nnodex = nx_e + 1
    nnodey = ny_e + 1

    element_node = np.zeros((nx_e * ny_e, 4), dtype=int)
    for elerow in range(ny_e):
        for elecol in range(nx_e):
            eleno = elerow * nx_e + elecol
            n1 = elerow * nnodex + elecol
            n2 = n1 + 1
            n3 = n2 + nnodex
            n4 = n1 + nnodex
            element_node[eleno, :] = (n1, n2, n3, n4)

    x_cum = origin[0] + np.cumsum(np.concatenate(([0.0], dx)))
    y_cum = origin[1] + np.cumsum(np.concatenate(([0.0], dy)))
    xc, yc = np.meshgrid(x_cum, y_cum, indexing="xy")
    nodecoordinate = np.column_stack([xc.ravel(), yc.ravel()])
    return element_node, nodecoordinate


def rectangle(Lx: float, Ly: float, nx: int, ny: int, origin: tuple[float, float] = (0.0, 0.0)) -> Mesh:
    """Uniform rectangle [x0, x0+Lx] x [y0, y0+Ly] with colored boundary ids."""
    element_node, nodecoordinate = a_Q4mesh_Meshing(
        np.full(nx, Lx / nx), np.full(ny, Ly / ny), origin
    )
    facets = find_boundary_facets(element_node)

    x0, y0 = origin
    tol = 1e-10 * max(Lx, Ly)
    for row in facets:
        e, f = row[0], row[1]
        a, b = nodecoordinate[element_node[e, FACE_VERTICES[f]]]
        mid = 0.5 * (a + b)
        if abs(mid[0] - x0) <= tol:
            row[2] = 0
        elif abs(mid[0] - (x0 + Lx)) <= tol:
            row[2] = 1
        elif abs(mid[1] - y0) <= tol:
            row[2] = 2
        else:
            row[2] = 3
    return Mesh(nodecoordinate=nodecoordinate, element_node=element_node, boundary_facets=facets)


def hyper_cube(length: float, n: int) -> Mesh:
    return rectangle(length, length, n, n)


def hyper_shell(center: tuple[float, float], inner_radius: float, outer_radius: float,
                n_circumferential: int = 8, n_radial: int = 1) -> Mesh:
    """Annulus between two radii, meshed with straight-sided quadrilaterals."""
    if n_circumferential < 3:
        raise ValueError("An annulus needs at least three cells around.")
    c = np.asarray(center, dtype=float)
    radii = np.linspace(inner_radius, outer_radius, n_radial + 1)
    theta = 2 * np.pi * np.arange(n_circumferential) / n_circumferential

    # node id = ring * n_circumferential + k
    nodecoordinate = np.array([
        c + r * np.array([np.cos(t), np.sin(t)]) for r in radii for t in theta
    ], dtype=float)

    element_node = np.zeros((n_circumferential * n_radial, 4), dtype=int)
    for j in range(n_radial):
        for k in range(n_circumferential):
            k1 = (k + 1) % n_circumferential
            n1 = j * n_circumferential + k
            n2 = (j + 1) * n_circumferential + k
            n3 = (j + 1) * n_circumferential + k1
            n4 = j * n_circumferential + k1
            element_node[j * n_circumferential + k, :] = (n1, n2, n3, n4)

    facets = find_boundary_facets(element_node)
    return Mesh(nodecoordinate=nodecoordinate, element_node=element_node, boundary_facets=facets)
