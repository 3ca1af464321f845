from __future__ import annotations

import numpy as np
from numpy.polynomial import polynomial as P


# ---- quadrature ----
def gauss_quadrature(n: int):
    """Tensor Gauss-Legendre rule with n points per direction on [-1, 1]^2.

    Returns weights (n*n,) and locations (n*n, 2), xi running fastest.
    """
    x, w = np.polynomial.legendre.leggauss(n)
    xi, eta = np.meshgrid(x, x, indexing="xy")
    wx, wy = np.meshgrid(w, w, indexing="xy")
    locations = np.column_stack([xi.ravel(), eta.ravel()])
    weights = (wx * wy).ravel()
    return weights, locations


def gauss_quadrature_1d(n: int):
    x, w = np.polynomial.legendre.leggauss(n)
    return w, x


# ---- Q4 geometry ----
def shape_function_q4(xi: np.ndarray, eta: np.ndarray):
    """Bilinear shape functions and natural derivatives at arrays of points.

    Returns shape (n, 4) and natural (n, 4, 2).
    """
    xi = np.atleast_1d(np.asarray(xi, dtype=float))
    eta = np.atleast_1d(np.asarray(eta, dtype=float))
    shape = 0.25 * np.stack([
        (1 - xi) * (1 - eta),
        (1 + xi) * (1 - eta),
        (1 + xi) * (1 + eta),
        (1 - xi) * (1 + eta),
    ], axis=-1)
    natural = 0.25 * np.stack([
        np.stack([-(1 - eta), -(1 - xi)], axis=-1),
        np.stack([(1 - eta), -(1 + xi)], axis=-1),
        np.stack([(1 + eta), (1 + xi)], axis=-1),
        np.stack([-(1 + eta), (1 - xi)], axis=-1),
    ], axis=1)
    return shape, natural


def jacobian(node_xy: np.ndarray, natural_derivatives: np.ndarray):
    """Jacobian of the Q4 map at every point and its inverse.

    node_xy is (4, 2); natural_derivatives is (n, 4, 2). J[q, i, j] = dx_i/dxi_j.
    """
    J = np.einsum("ai,qaj->qij", node_xy, natural_derivatives)
    return J, np.linalg.inv(J)


def map_to_physical(node_xy: np.ndarray, ref_points: np.ndarray) -> np.ndarray:
    shape, _ = shape_function_q4(ref_points[:, 0], ref_points[:, 1])
    return shape @ node_xy


def is_parallelogram(node_xy: np.ndarray, rtol: float = 1e-10) -> bool:
    """True when the Q4 map of the cell is affine."""
    size = np.ptp(node_xy, axis=0).max()
    return bool(np.allclose(node_xy[0] + node_xy[2], node_xy[1] + node_xy[3], atol=rtol * size))


# ---- Lagrange elements ----
class LagrangeElement:
    """Scalar tensor-product Lagrange element of a given degree on [-1, 1]^2.

    Local node (a, b) has index ``b*(degree+1) + a`` and sits at
    ``(t_a, t_b)`` with equispaced 1D nodes ``t``.
    """

    def __init__(self, degree: int):
        self.degree = int(degree)
        self.nodes_1d = np.linspace(-1.0, 1.0, self.degree + 1)
        self.n_1d = self.degree + 1
        self.dofs_per_cell = self.n_1d ** 2

        self._coeffs = []
        for i, ti in enumerate(self.nodes_1d):
            others = np.delete(self.nodes_1d, i)
            c = P.polyfromroots(others) / np.prod(ti - others)
            self._coeffs.append((c, P.polyder(c, 1), P.polyder(c, 2)))

        a, b = np.meshgrid(np.arange(self.n_1d), np.arange(self.n_1d), indexing="xy")
        self.node_ij = np.column_stack([a.ravel(), b.ravel()])
        self.reference_nodes = self.nodes_1d[self.node_ij]

    def _tabulate_1d(self, x: np.ndarray):
        v = np.stack([P.polyval(x, c[0]) for c in self._coeffs], axis=-1)
        d1 = np.stack([P.polyval(x, c[1]) for c in self._coeffs], axis=-1)
        d2 = np.stack([P.polyval(x, c[2]) for c in self._coeffs], axis=-1)
        return v, d1, d2

    def tabulate(self, ref_points: np.ndarray):
        """Values (n, nb), gradients (n, nb, 2) and hessians (n, nb, 2, 2) in reference coordinates."""
        ref_points = np.atleast_2d(np.asarray(ref_points, dtype=float))
        vx, dx, ddx = self._tabulate_1d(ref_points[:, 0])
        vy, dy, ddy = self._tabulate_1d(ref_points[:, 1])
        ia = self.node_ij[:, 0]
        ib = self.node_ij[:, 1]

        values = vx[:, ia] * vy[:, ib]
        grads = np.stack([dx[:, ia] * vy[:, ib], vx[:, ia] * dy[:, ib]], axis=-1)
        mixed = dx[:, ia] * dy[:, ib]
        hessians = np.stack([
            np.stack([ddx[:, ia] * vy[:, ib], mixed], axis=-1),
            np.stack([mixed, vx[:, ia] * ddy[:, ib]], axis=-1),
        ], axis=-2)
        return values, grads, hessians


def physical_gradients(ref_grads: np.ndarray, J_inv: np.ndarray) -> np.ndarray:
    """dN/dx_j = sum_k dN/dxi_k (J^-1)_kj, pointwise."""
    return np.einsum("qbk,qkj->qbj", ref_grads, J_inv)


def physical_hessians(ref_hessians: np.ndarray, J_inv: np.ndarray) -> np.ndarray:
    """Hessians under an affine map: J^-T H J^-1, pointwise."""
    return np.einsum("qka,qbkl,qlc->qbac", J_inv, ref_hessians, J_inv)
