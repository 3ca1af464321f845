from __future__ import annotations

"""Problem parameters.

One dataclass gathers the material constants, the discretization choices,
the time controls, the Newton refresh policy and the data functions. The
solver reads it at setup and at every boundary refresh and never writes it.

Data functions are vectorized: they receive an ``(n, 2)`` array of points
(plus the time where relevant) and return one row per point.
"""

from dataclasses import dataclass, field
from typing import Callable

import numpy as np

from .errors import ConfigurationError

MATERIAL_MODELS = ("neo_hookean", "linear", "circumferential_fibers")


def zero_vector_field(points: np.ndarray, t: float = 0.0) -> np.ndarray:
    return np.zeros((np.asarray(points).shape[0], 2), dtype=float)


def zero_fluid_field(points: np.ndarray) -> np.ndarray:
    return np.zeros((np.asarray(points).shape[0], 3), dtype=float)


def zero_displacement(points: np.ndarray) -> np.ndarray:
    return np.zeros((np.asarray(points).shape[0], 2), dtype=float)


@dataclass
class IFEMParameters:
    # discretization
    dim: int = 2
    degree: int = 2
    fluid_quadrature: int | None = None   # Gauss points per direction, default degree+2
    solid_quadrature: int = 4

    # material constants
    rho: float = 1.0
    eta: float = 1.0
    mu: float = 1.0
    phi_b: float = 1.0                    # spreading coefficient of the kinematic equation
    material_model: str = "neo_hookean"

    # ring benchmark geometry (circumferential fiber model)
    ring_center: tuple[float, float] = (0.5, 0.5)
    ring_radius: float = 0.25
    ring_width: float = 0.0625
    domain_length: float = 1.0

    # time controls
    dt: float = 0.1
    final_time: float = 1.0
    output_interval: int = 1

    # Newton refresh policy
    update_jacobian_continuously: bool = False
    update_jacobian_at_step_beginning: bool = False

    # coupling policy
    semi_implicit: bool = False
    use_spread: bool = False

    # pressure handling
    all_dirichlet: bool = True
    fix_pressure: bool = False

    # Dirichlet data
    dirichlet_ids: tuple[int, ...] = (0, 1, 2, 3)
    component_mask: tuple[bool, bool] = (True, True)

    boundary_velocity: Callable[[np.ndarray, float], np.ndarray] = field(default=zero_vector_field, repr=False)
    body_force: Callable[[np.ndarray, float], np.ndarray] = field(default=zero_vector_field, repr=False)
    initial_fluid: Callable[[np.ndarray], np.ndarray] = field(default=zero_fluid_field, repr=False)
    initial_displacement: Callable[[np.ndarray], np.ndarray] = field(default=zero_displacement, repr=False)

    @property
    def fluid_quadrature_order(self) -> int:
        return self.fluid_quadrature if self.fluid_quadrature is not None else self.degree + 2

    @property
    def gauge_active(self) -> bool:
        """Pressure fixed through the domain-average equation."""
        return self.all_dirichlet and not self.fix_pressure

    @property
    def n_steps(self) -> int:
        # last step k satisfies k*dt <= final_time
        return int(np.floor(self.final_time / self.dt + 1e-12))

    def validate(self) -> "IFEMParameters":
        if self.dim != 2:
            raise ConfigurationError(f"Only two-dimensional problems are supported, got dim={self.dim}.")
        if self.material_model not in MATERIAL_MODELS:
            raise ConfigurationError(
                f"Unknown material model {self.material_model!r}; expected one of {MATERIAL_MODELS}."
            )
        if self.degree < 1 or self.degree > 4:
            raise ConfigurationError(f"Unsupported element degree {self.degree}.")
        if self.fluid_quadrature_order < 1 or self.solid_quadrature < 1:
            raise ConfigurationError("Quadrature orders must be positive.")
        for name in ("rho", "eta", "phi_b", "dt", "final_time"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive, got {getattr(self, name)}.")
        if self.mu < 0:
            raise ConfigurationError(f"mu must be non-negative, got {self.mu}.")
        if self.output_interval < 1:
            raise ConfigurationError("output_interval must be at least 1.")
        if self.material_model == "circumferential_fibers":
            if self.ring_radius <= 0 or self.ring_width <= 0:
                raise ConfigurationError("Ring radius and width must be positive.")
            cx, cy = self.ring_center
            outer = self.ring_radius + self.ring_width
            if min(cx, cy) - outer <= 0 or max(cx, cy) + outer >= self.domain_length:
                raise ConfigurationError("The ring must lie strictly inside the control volume.")
        return self
