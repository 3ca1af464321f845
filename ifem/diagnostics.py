from __future__ import annotations

import numpy as np

from .elements import gauss_quadrature_1d
from .spaces import REFERENCE_VERTICES, FluidSpace, SolidSpace
from .meshing import FACE_VERTICES


def boundary_flux(space: FluidSpace, xi_f: np.ndarray, order: int | None = None) -> float:
    """Net outward flux of the velocity through the boundary of the control volume."""
    if order is None:
        order = space.velocity_element.degree + 1
    w, s = gauss_quadrature_1d(order)
    flux = 0.0
    for e, f, _ in space.mesh.boundary_facets:
        a, b = FACE_VERTICES[int(f)]
        ra, rb = REFERENCE_VERTICES[a], REFERENCE_VERTICES[b]
        ref = 0.5 * (1 - s)[:, None] * ra + 0.5 * (1 + s)[:, None] * rb
        # tangent dx/ds; counter-clockwise cells have outward normal (t_y, -t_x)/|t|
        tangent = space.J[e] @ (0.5 * (rb - ra))
        normal_ds = np.array([tangent[1], -tangent[0]])
        values, _, _ = space.velocity_element.tabulate(ref)
        U, _ = space.cell_values(xi_f, int(e))
        u = values @ U.T
        flux += float(w @ (u @ normal_ds))
    return flux


def structure_area_and_centroid(space: SolidSpace, xi_s: np.ndarray) -> tuple[float, np.ndarray]:
    """Deformed area int_B det F dX and centroid of the current placement."""
    area = 0.0
    moment = np.zeros(2)
    for e in range(space.n_cells):
        W = space.cell_values(xi_s, e)
        F = np.eye(2) + np.einsum("qbd,cb->qcd", space.grad_psi[e], W)
        detF = np.linalg.det(F)
        x = space.qpoints[e] + space.psi @ W.T
        dA = space.JxW[e] * detF
        area += float(dA.sum())
        moment += dA @ x
    return area, moment / area


def reference_centroid(space: SolidSpace) -> np.ndarray:
    area = space.JxW.sum()
    return np.einsum("eq,eqc->c", space.JxW, space.qpoints) / area


def output_diagnostics(fluid: FluidSpace, solid: SolidSpace, xi_f: np.ndarray, xi_s: np.ndarray) -> dict:
    area, centroid = structure_area_and_centroid(solid, xi_s)
    return {
        "flux": boundary_flux(fluid, xi_f),
        "area": area,
        "centroid": centroid,
    }
