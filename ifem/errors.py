from __future__ import annotations

import numpy as np


class IFEMError(Exception):
    """Base class of every failure raised by the immersed solver."""


class ConfigurationError(IFEMError, ValueError):
    """Unsupported model, dimension or discretization combination."""


class GeometryError(IFEMError, ValueError):
    """A structural sample point lies outside the fluid mesh."""

    def __init__(self, message: str, points: np.ndarray | None = None):
        super().__init__(message)
        self.points = np.zeros((0, 2)) if points is None else np.asarray(points, dtype=float)


class SingularSystemError(IFEMError, RuntimeError):
    """The linearized system could not be factored or solved."""


class NonconvergenceError(IFEMError, RuntimeError):
    """Newton restarts exhausted without reaching the residual tolerance."""

    def __init__(self, step: int, t: float, residual_norm: float, iterations: int):
        super().__init__(
            f"No convergence in nonlinear solver at step {step} (t={t:g}): "
            f"residual {residual_norm:.3e} after {iterations} iterations"
        )
        self.step = step
        self.t = t
        self.residual_norm = residual_norm
        self.iterations = iterations
