from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .parameters import IFEMParameters
from .spaces import FluidSpace


@dataclass
class ConstraintMap:
    """Prescribed fluid dofs and their values at one instant."""

    dofs: np.ndarray                 # (n_constrained,)
    values: np.ndarray               # (n_constrained,)
    mask: np.ndarray                 # (n_dofs_f,) bool
    prescribed: np.ndarray           # (n_dofs_f,) value where mask, 0 elsewhere

    @classmethod
    def from_pairs(cls, n_dofs: int, dofs: np.ndarray, values: np.ndarray) -> "ConstraintMap":
        dofs = np.asarray(dofs, dtype=int)
        values = np.asarray(values, dtype=float)
        mask = np.zeros(n_dofs, dtype=bool)
        prescribed = np.zeros(n_dofs, dtype=float)
        mask[dofs] = True
        prescribed[dofs] = values
        return cls(dofs=dofs, values=values, mask=mask, prescribed=prescribed)

    def as_dict(self) -> dict[int, float]:
        return {int(d): float(v) for d, v in zip(self.dofs, self.values)}

    def apply(self, xi_f: np.ndarray) -> None:
        """Overwrite the constrained entries of a fluid state in place."""
        xi_f[self.dofs] = self.values


def compute_constraints(space: FluidSpace, par: IFEMParameters, t: float) -> ConstraintMap:
    """Dirichlet velocity data on the selected boundaries at time t.

    With ``fix_pressure`` the first pressure dof is pinned to zero as well.
    """
    nodes = space.boundary_velocity_nodes(par.dirichlet_ids)
    dofs, values = [], []
    if nodes.size:
        g = np.asarray(par.boundary_velocity(space.velocity_nodes[nodes], t), dtype=float)
        for c in range(2):
            if par.component_mask[c]:
                dofs.append(nodes + c * space.n_vnodes)
                values.append(g[:, c])
    if par.fix_pressure:
        dofs.append(np.array([space.first_pressure_dof]))
        values.append(np.zeros(1))
    if not dofs:
        return ConstraintMap.from_pairs(space.n_dofs, np.zeros(0, dtype=int), np.zeros(0))
    return ConstraintMap.from_pairs(space.n_dofs, np.concatenate(dofs), np.concatenate(values))


class ConstraintEnforcer:
    """Rewrites fluid rows of a local system to carry constraints.

    Local systems list their fluid dofs first, so local row i (i < len(dofs))
    belongs to global fluid dof ``dofs[i]`` and its diagonal sits in column i.
    """

    def __init__(self, constraints: ConstraintMap, scaling: float, gauge_dof: int | None = None):
        self.constraints = constraints
        self.scaling = float(scaling)
        self.gauge_dof = gauge_dof

    def apply(self, local_res: np.ndarray, local_jacobian: np.ndarray | None,
              xi_f: np.ndarray, dofs: np.ndarray) -> None:
        rows = np.nonzero(self.constraints.mask[dofs])[0]
        if rows.size:
            g = dofs[rows]
            local_res[rows] = self.scaling * (xi_f[g] - self.constraints.prescribed[g])
            if local_jacobian is not None:
                local_jacobian[rows, :] = 0.0
                local_jacobian[rows, rows] = self.scaling

        if self.gauge_dof is not None:
            rows = np.nonzero(dofs == self.gauge_dof)[0]
            if rows.size:
                local_res[rows] = 0.0
                if local_jacobian is not None:
                    local_jacobian[rows, :] = 0.0
