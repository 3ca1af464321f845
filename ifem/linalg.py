from __future__ import annotations

import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as spla

from .errors import SingularSystemError


class DirectSolver:
    """Sparse LU solver: factor on refresh, reuse the factors otherwise."""

    def __init__(self):
        self._lu = None

    def factorize(self, A: sp.spmatrix | np.ndarray) -> None:
        A = sp.csc_matrix(A)
        try:
            self._lu = spla.splu(A)
        except RuntimeError as exc:
            self._lu = None
            raise SingularSystemError(f"Factorization of the Jacobian failed: {exc}") from exc

    def solve(self, b: np.ndarray) -> np.ndarray:
        if self._lu is None:
            raise SingularSystemError("No factored Jacobian is available.")
        x = self._lu.solve(np.asarray(b, dtype=float))
        if not np.all(np.isfinite(x)):
            raise SingularSystemError("Linear solve produced non-finite values.")
        return x


def solve_linear_system(A: sp.spmatrix | np.ndarray, b: np.ndarray) -> np.ndarray:
    """Solve A x = b once."""
    solver = DirectSolver()
    solver.factorize(A)
    return solver.solve(b)
