from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from .spaces import SolidSpace


@dataclass(frozen=True, eq=False)
class ImmersedMapping:
    """Current placement x = X + w(X) of the body's quadrature points.

    A mapping is an immutable value: the assembler builds a fresh one for
    every call, either from the Newton iterate (implicit) or from the last
    converged displacement (semi-implicit, ``frozen=True``).
    """

    space: SolidSpace
    displacement: np.ndarray
    frozen: bool = False
    positions: np.ndarray = field(init=False, repr=False)

    def __post_init__(self):
        w = np.array(self.displacement, dtype=float, copy=True)
        w.setflags(write=False)
        object.__setattr__(self, "displacement", w)
        W = w[self.space.cell_dofs].reshape(self.space.n_cells, 2, self.space.nbs)
        positions = self.space.qpoints + np.einsum("qb,ecb->eqc", self.space.psi, W)
        positions.setflags(write=False)
        object.__setattr__(self, "positions", positions)

    @classmethod
    def implicit(cls, space: SolidSpace, current: np.ndarray) -> "ImmersedMapping":
        return cls(space, current, frozen=False)

    @classmethod
    def semi_implicit(cls, space: SolidSpace, previous: np.ndarray) -> "ImmersedMapping":
        return cls(space, previous, frozen=True)

    @property
    def fingerprint(self) -> bytes:
        return self.displacement.tobytes()

    def cell_points(self, e: int) -> np.ndarray:
        """Current positions (nq, 2) of the quadrature points of a body cell."""
        return self.positions[e]
