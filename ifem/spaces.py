from __future__ import annotations

import logging

import numpy as np
import scipy.sparse as sp

from .elements import (
    LagrangeElement, gauss_quadrature, jacobian, shape_function_q4, is_parallelogram,
    physical_gradients, physical_hessians,
)
from .errors import ConfigurationError
from .meshing import Mesh

logger = logging.getLogger(__name__)

# reference vertices of the Q4 cell, counter-clockwise
REFERENCE_VERTICES = np.array([[-1.0, -1.0], [1.0, -1.0], [1.0, 1.0], [-1.0, 1.0]])


def distribute_lagrange_nodes(mesh: Mesh, element: LagrangeElement) -> tuple[np.ndarray, np.ndarray]:
    """Number the Lagrange nodes of every cell, sharing vertex, edge and interior nodes.

    Returns:
        cell_nodes: (n_elem, nb) global node id of each local node
        node_coords: (n_nodes, 2) support point coordinates
    """
    k = element.degree
    corner = {(0, 0): 0, (k, 0): 1, (k, k): 2, (0, k): 3}
    keys: dict[tuple, int] = {}
    coords: list[np.ndarray] = []
    cell_nodes = np.zeros((mesh.numberelements, element.dofs_per_cell), dtype=int)

    shape, _ = shape_function_q4(element.reference_nodes[:, 0], element.reference_nodes[:, 1])

    for e, vertices in enumerate(mesh.element_node):
        physical = shape @ mesh.nodecoordinate[vertices]
        for i, (a, b) in enumerate(element.node_ij):
            a, b = int(a), int(b)
            if (a, b) in corner:
                key = ("v", int(vertices[corner[(a, b)]]))
            elif b == 0 or b == k or a == 0 or a == k:
                if b == 0:
                    va, vb, s = vertices[0], vertices[1], a
                elif a == k:
                    va, vb, s = vertices[1], vertices[2], b
                elif b == k:
                    va, vb, s = vertices[3], vertices[2], a
                else:
                    va, vb, s = vertices[0], vertices[3], b
                key = ("e", int(va), int(vb), s) if va < vb else ("e", int(vb), int(va), k - s)
            else:
                key = ("c", e, a, b)
            if key not in keys:
                keys[key] = len(coords)
                coords.append(physical[i])
            cell_nodes[e, i] = keys[key]

    return cell_nodes, np.array(coords, dtype=float).reshape(-1, 2)


def face_local_nodes(element: LagrangeElement, face: int) -> np.ndarray:
    """Local node indices lying on a reference face (0: bottom, 1: right, 2: top, 3: left)."""
    a = element.node_ij[:, 0]
    b = element.node_ij[:, 1]
    k = element.degree
    mask = [b == 0, a == k, b == k, a == 0][face]
    return np.nonzero(mask)[0]


class FluidSpace:
    """Velocity-pressure space Q(k)^2 x Q(k-1) on the control volume.

    Global numbering is blocked by component: all x velocities, all y
    velocities, then all pressures. Local dofs of a cell follow the same
    blocking.
    """

    def __init__(self, mesh: Mesh, degree: int, quadrature_order: int):
        if degree <= 1:
            logger.warning("The chosen pair of finite element spaces is not stable; results will be nonsense.")
        self.mesh = mesh
        self.dim = 2
        self.velocity_element = LagrangeElement(degree)
        self.pressure_element = LagrangeElement(max(degree - 1, 1))

        self.cell_vnodes, self.velocity_nodes = distribute_lagrange_nodes(mesh, self.velocity_element)
        self.cell_pnodes, self.pressure_nodes = distribute_lagrange_nodes(mesh, self.pressure_element)

        self.n_vnodes = int(self.velocity_nodes.shape[0])
        self.n_dofs_u = 2 * self.n_vnodes
        self.n_dofs_p = int(self.pressure_nodes.shape[0])
        self.n_dofs = self.n_dofs_u + self.n_dofs_p

        self.nbu = self.velocity_element.dofs_per_cell
        self.nbp = self.pressure_element.dofs_per_cell
        self.cell_dofs = np.hstack([
            self.cell_vnodes,
            self.cell_vnodes + self.n_vnodes,
            self.n_dofs_u + self.cell_pnodes,
        ])
        self.pressure_dofs = np.arange(self.n_dofs_u, self.n_dofs)
        self.first_pressure_dof = int(self.n_dofs_u)

        # affine cell geometry
        n_cells = mesh.numberelements
        self.J = np.zeros((n_cells, 2, 2))
        self.J_inv = np.zeros((n_cells, 2, 2))
        self.center = np.zeros((n_cells, 2))
        center_shape, center_nat = shape_function_q4(0.0, 0.0)
        for e in range(n_cells):
            xy = mesh.cell_vertices(e)
            if not is_parallelogram(xy):
                raise ConfigurationError(f"Fluid cell {e} is not a parallelogram; an affine map is required.")
            J, J_inv = jacobian(xy, center_nat)
            self.J[e] = J[0]
            self.J_inv[e] = J_inv[0]
            self.center[e] = (center_shape @ xy)[0]
        self.det_J = np.linalg.det(self.J)

        # quadrature data
        self.weights, self.locations = gauss_quadrature(quadrature_order)
        self.phi, grads_ref, _ = self.velocity_element.tabulate(self.locations)
        self.psi_p, _, _ = self.pressure_element.tabulate(self.locations)
        self.JxW = self.det_J[:, None] * self.weights[None, :]
        self.grad_phi = np.einsum("qbk,ekj->eqbj", grads_ref, self.J_inv)
        self.qpoints = self.center[:, None, :] + np.einsum("eij,qj->eqi", self.J, self.locations)

        self.area = float(self.JxW.sum())

    @property
    def n_cells(self) -> int:
        return self.mesh.numberelements

    def to_physical(self, e: int, ref_points: np.ndarray) -> np.ndarray:
        return self.center[e] + ref_points @ self.J[e].T

    def cell_values(self, xi_f: np.ndarray, e: int) -> tuple[np.ndarray, np.ndarray]:
        """Velocity coefficients (2, nbu) and pressure coefficients (nbp,) of a cell."""
        local = xi_f[self.cell_dofs[e]]
        return local[:2 * self.nbu].reshape(2, self.nbu), local[2 * self.nbu:]

    def evaluate_basis(self, e: int, ref_points: np.ndarray, hessians: bool = False):
        """Velocity basis values, physical gradients and (optionally) hessians at reference points."""
        values, grads_ref, hess_ref = self.velocity_element.tabulate(ref_points)
        J_inv = np.broadcast_to(self.J_inv[e], (values.shape[0], 2, 2))
        grads = physical_gradients(grads_ref, J_inv)
        hess = physical_hessians(hess_ref, J_inv) if hessians else None
        return values, grads, hess

    def interpolate(self, func) -> np.ndarray:
        """Nodal interpolation of func(points) -> (n, 3) [u_x, u_y, p]."""
        xi = np.zeros(self.n_dofs, dtype=float)
        uv = np.asarray(func(self.velocity_nodes), dtype=float)
        xi[:self.n_vnodes] = uv[:, 0]
        xi[self.n_vnodes:self.n_dofs_u] = uv[:, 1]
        xi[self.n_dofs_u:] = np.asarray(func(self.pressure_nodes), dtype=float)[:, 2]
        return xi

    def boundary_velocity_nodes(self, boundary_ids) -> np.ndarray:
        """Velocity node ids lying on boundary facets with the given ids."""
        ids = set(int(i) for i in boundary_ids)
        nodes: set[int] = set()
        for e, f, bid in self.mesh.boundary_facets:
            if int(bid) in ids:
                local = face_local_nodes(self.velocity_element, int(f))
                nodes.update(int(n) for n in self.cell_vnodes[e, local])
        return np.array(sorted(nodes), dtype=int)


class SolidSpace:
    """Vector Q(k) displacement space on the reference configuration of the body."""

    def __init__(self, mesh: Mesh, degree: int, quadrature_order: int):
        self.mesh = mesh
        self.dim = 2
        self.element = LagrangeElement(degree)
        self.cell_nodes, self.nodes = distribute_lagrange_nodes(mesh, self.element)
        self.n_nodes = int(self.nodes.shape[0])
        self.n_dofs = 2 * self.n_nodes
        self.nbs = self.element.dofs_per_cell
        self.cell_dofs = np.hstack([self.cell_nodes, self.cell_nodes + self.n_nodes])

        self.weights, self.locations = gauss_quadrature(quadrature_order)
        self.psi, grads_ref, _ = self.element.tabulate(self.locations)
        q4_shape, q4_nat = shape_function_q4(self.locations[:, 0], self.locations[:, 1])

        n_cells = mesh.numberelements
        nq = self.weights.size
        self.qpoints = np.zeros((n_cells, nq, 2))
        self.JxW = np.zeros((n_cells, nq))
        self.grad_psi = np.zeros((n_cells, nq, self.nbs, 2))
        for e in range(n_cells):
            xy = mesh.cell_vertices(e)
            J, J_inv = jacobian(xy, q4_nat)
            self.qpoints[e] = q4_shape @ xy
            self.JxW[e] = np.linalg.det(J) * self.weights
            self.grad_psi[e] = physical_gradients(grads_ref, J_inv)

    @property
    def n_cells(self) -> int:
        return self.mesh.numberelements

    def cell_values(self, w: np.ndarray, e: int) -> np.ndarray:
        return w[self.cell_dofs[e]].reshape(2, self.nbs)

    def interpolate(self, func) -> np.ndarray:
        """Nodal interpolation of func(points) -> (n, 2)."""
        values = np.asarray(func(self.nodes), dtype=float)
        return np.concatenate([values[:, 0], values[:, 1]])

    def mass_matrix(self, coefficient: float = 1.0) -> sp.csc_matrix:
        rows, cols, vals = [], [], []
        nbs = self.nbs
        for e in range(self.n_cells):
            Me = coefficient * np.einsum("q,qi,qj->ij", self.JxW[e], self.psi, self.psi)
            for c in range(2):
                dofs = self.cell_dofs[e, c * nbs:(c + 1) * nbs]
                rows.append(np.repeat(dofs, nbs))
                cols.append(np.tile(dofs, nbs))
                vals.append(Me.ravel())
        M = sp.coo_matrix(
            (np.concatenate(vals), (np.concatenate(rows), np.concatenate(cols))),
            shape=(self.n_dofs, self.n_dofs),
        )
        return M.tocsc()
