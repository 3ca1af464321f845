from __future__ import annotations

"""Equilibrium of a ring of circumferential fibers immersed in a still fluid.

The ring occupies R <= r <= R + w about ``center`` inside the square
[0, l]^2. At equilibrium the fluid is at rest and the fiber tension is
balanced by a pressure jump across the ring:

    p = p_in                          r < R
    p = p_in - mu ln(r / R)           R <= r <= R + w
    p = p_in - mu ln((R + w) / R)     r > R + w

with p_in fixed so that the pressure has zero mean over the square.
"""

import numpy as np

from .elements import gauss_quadrature
from .parameters import IFEMParameters
from .spaces import FluidSpace


class RingWithFibers:

    def __init__(self, par: IFEMParameters):
        self.center = np.asarray(par.ring_center, dtype=float)
        self.R = float(par.ring_radius)
        self.w = float(par.ring_width)
        self.l = float(par.domain_length)
        self.mu = float(par.mu)

        outer = self.R + self.w
        jump = np.log(outer / self.R)
        ring_integral = 2.0 * np.pi * (0.5 * outer ** 2 * jump - 0.25 * (outer ** 2 - self.R ** 2))
        self.p_in = self.mu * (ring_integral + jump * (self.l ** 2 - np.pi * outer ** 2)) / self.l ** 2

    def radius(self, points: np.ndarray) -> np.ndarray:
        return np.linalg.norm(np.asarray(points, dtype=float) - self.center, axis=1)

    def pressure(self, points: np.ndarray) -> np.ndarray:
        r = np.clip(self.radius(points), self.R, self.R + self.w)
        return self.p_in - self.mu * np.log(r / self.R)

    def velocity(self, points: np.ndarray) -> np.ndarray:
        return np.zeros((np.asarray(points).shape[0], 2))

    def fluid_initial(self, points: np.ndarray) -> np.ndarray:
        """Exact (u_x, u_y, p) rows, usable as an initial fluid field."""
        points = np.asarray(points, dtype=float)
        return np.column_stack([self.velocity(points), self.pressure(points)])

    def error_norms(self, space: FluidSpace, xi_f: np.ndarray, order: int | None = None) -> dict[str, float]:
        """Velocity L2, velocity H1 seminorm and pressure L2 errors of a fluid state."""
        if order is None:
            order = 2 * space.velocity_element.degree + 2
        weights, locations = gauss_quadrature(order)
        phi, grads_ref, _ = space.velocity_element.tabulate(locations)
        psi, _, _ = space.pressure_element.tabulate(locations)

        v_l2 = v_h1 = p_l2 = 0.0
        for e in range(space.n_cells):
            x = space.to_physical(e, locations)
            JxW = space.det_J[e] * weights
            grads = np.einsum("qbk,kj->qbj", grads_ref, space.J_inv[e])
            U, P = space.cell_values(xi_f, e)
            du = phi @ U.T - self.velocity(x)
            dgu = np.einsum("qbd,cb->qcd", grads, U)
            dp = psi @ P - self.pressure(x)
            v_l2 += float(JxW @ np.sum(du ** 2, axis=1))
            v_h1 += float(JxW @ np.sum(dgu ** 2, axis=(1, 2)))
            p_l2 += float(JxW @ dp ** 2)
        return {
            "velocity_l2": float(np.sqrt(v_l2)),
            "velocity_h1": float(np.sqrt(v_h1)),
            "pressure_l2": float(np.sqrt(p_l2)),
        }
