from __future__ import annotations

import logging

import numpy as np

from .assembler import ResidualJacobianAssembler
from .constitutive import make_constitutive_model
from .constraints import compute_constraints
from .locator import build_index
from .meshing import Mesh, hyper_cube, hyper_shell
from .parameters import IFEMParameters
from .spaces import FluidSpace, SolidSpace
from .stepper import NewtonTimeStepper

logger = logging.getLogger(__name__)


class ImmersedProblem:
    """Spaces, collaborators and initial state of one immersed computation.

    Args:
        fluid_mesh: mesh of the control volume (parallelogram cells)
        solid_mesh: mesh of the reference configuration of the body
        par: parameters; validated here
    """

    def __init__(self, fluid_mesh: Mesh, solid_mesh: Mesh, par: IFEMParameters):
        self.par = par.validate()
        self.fluid_mesh = fluid_mesh
        self.solid_mesh = solid_mesh

        self.fluid = FluidSpace(fluid_mesh, par.degree, par.fluid_quadrature_order)
        self.solid = SolidSpace(solid_mesh, par.degree, par.solid_quadrature)
        self.locator_index = build_index(fluid_mesh)
        self.model = make_constitutive_model(par)
        self.assembler = ResidualJacobianAssembler(
            self.fluid, self.solid, par, self.locator_index, self.model,
        )

        logger.info("Number of fluid active cells: %d", fluid_mesh.numberelements)
        logger.info("Number of solid active cells: %d", solid_mesh.numberelements)
        logger.info(
            "Number of degrees of freedom: %d (%d+%d+%d)",
            self.n_dofs, self.fluid.n_dofs_u, self.fluid.n_dofs_p, self.solid.n_dofs,
        )
        if par.gauge_active:
            logger.info("Pressure gauge on dof %d", self.fluid.first_pressure_dof)

    @property
    def n_dofs(self) -> int:
        return self.assembler.n_dofs

    def initial_state(self) -> np.ndarray:
        """Interpolated initial fields with the t = 0 Dirichlet data applied."""
        xi_f = self.fluid.interpolate(self.par.initial_fluid)
        xi_s = self.solid.interpolate(self.par.initial_displacement)
        compute_constraints(self.fluid, self.par, 0.0).apply(xi_f)
        return np.concatenate([xi_f, xi_s])

    def make_stepper(self, solver=None, observer=None) -> NewtonTimeStepper:
        return NewtonTimeStepper(self.assembler, self.par, solver=solver, observer=observer)

    def run(self, solver=None, observer=None) -> NewtonTimeStepper:
        stepper = self.make_stepper(solver=solver, observer=observer)
        stepper.run(self.initial_state())
        return stepper


def ring_benchmark(par: IFEMParameters, n_fluid: int = 8, n_circumferential: int = 16,
                   n_radial: int = 1) -> ImmersedProblem:
    """Square control volume [0, l]^2 with an immersed annulus about ring_center."""
    fluid_mesh = hyper_cube(par.domain_length, n_fluid)
    solid_mesh = hyper_shell(
        par.ring_center, par.ring_radius, par.ring_radius + par.ring_width,
        n_circumferential=n_circumferential, n_radial=n_radial,
    )
    return ImmersedProblem(fluid_mesh, solid_mesh, par)

