from __future__ import annotations

from abc import ABC, abstractmethod

import numpy as np

from .errors import ConfigurationError
from .parameters import IFEMParameters


class ConstitutiveModel(ABC):
    """Elastic response of the immersed body.

    All methods act on stacks of quadrature points: F is (nq, 2, 2), points
    are the reference positions (nq, 2), grads are the reference gradients
    of the scalar displacement basis (nq, nb, 2).
    """

    name = ""

    def __init__(self, mu: float):
        self.mu = float(mu)

    def structural_tensor(self, points: np.ndarray) -> np.ndarray:
        """Tensor E such that Pe F^T = mu F E F^T up to a constant."""
        return np.broadcast_to(np.eye(2), (points.shape[0], 2, 2))

    @abstractmethod
    def stress(self, F: np.ndarray, points: np.ndarray) -> np.ndarray:
        """First Piola-Kirchhoff stress Pe at every point."""

    def stress_ft_derivative(self, F: np.ndarray, points: np.ndarray, grads: np.ndarray) -> np.ndarray:
        """Derivative of Pe F^T with respect to every local displacement dof.

        Returns (nq, 2*nb, 2, 2); local dof c*nb + b moves component c with
        scalar basis function b, so dF = e_c (x) grad(psi_b).
        """
        nb = grads.shape[1]
        E = self.structural_tensor(points)
        v = self.mu * np.einsum("qij,qjk,qbk->qbi", F, E, grads)
        D = np.zeros((F.shape[0], 2 * nb, 2, 2))
        for c in range(2):
            D[:, c * nb:(c + 1) * nb, c, :] += v
            D[:, c * nb:(c + 1) * nb, :, c] += v
        return D


class NeoHookean(ConstitutiveModel):
    """Pe = mu (F - F^-T)."""

    name = "neo_hookean"

    def stress(self, F, points):
        return self.mu * (F - np.transpose(np.linalg.inv(F), (0, 2, 1)))


class LinearInF(ConstitutiveModel):
    """Pe = mu F."""

    name = "linear"

    def stress(self, F, points):
        return self.mu * F


class CircumferentialFibers(ConstitutiveModel):
    """Pe = mu F (e_theta x e_theta), fibers running around a fixed center."""

    name = "circumferential_fibers"

    def __init__(self, mu: float, center):
        super().__init__(mu)
        self.center = np.asarray(center, dtype=float)

    def structural_tensor(self, points):
        p = np.asarray(points, dtype=float) - self.center
        r = np.linalg.norm(p, axis=1)
        etheta = np.column_stack([-p[:, 1], p[:, 0]]) / r[:, None]
        return np.einsum("qi,qj->qij", etheta, etheta)

    def stress(self, F, points):
        return self.mu * F @ self.structural_tensor(points)


def make_constitutive_model(par: IFEMParameters) -> ConstitutiveModel:
    if par.material_model == "neo_hookean":
        return NeoHookean(par.mu)
    if par.material_model == "linear":
        return LinearInF(par.mu)
    if par.material_model == "circumferential_fibers":
        if par.dim != 2:
            raise ConfigurationError("The circumferential fiber model is only available in two dimensions.")
        return CircumferentialFibers(par.mu, par.ring_center)
    raise ConfigurationError(f"Unknown material model {par.material_model!r}.")
