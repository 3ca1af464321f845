"""Immersed finite elements for a viscous fluid and an elastic body.

The fluid lives on a fixed quadrilateral mesh of the control volume; the
body on its own mesh of its reference configuration. The two are coupled
through the body's quadrature points, located in the fluid mesh at their
current position at every Newton iteration.

Notes:
- Two dimensions only. Fluid cells must be parallelograms.
- Fluid unknowns are numbered by component: all u_x, all u_y, then p.
"""
from .errors import (
    IFEMError, ConfigurationError, GeometryError, SingularSystemError, NonconvergenceError,
)
from .parameters import IFEMParameters
from .meshing import Mesh, rectangle, hyper_cube, hyper_shell
from .spaces import FluidSpace, SolidSpace
from .constitutive import (
    ConstitutiveModel, NeoHookean, LinearInF, CircumferentialFibers, make_constitutive_model,
)
from .locator import build_index, locate
from .mapping import ImmersedMapping
from .constraints import ConstraintMap, ConstraintEnforcer, compute_constraints
from .assembler import ResidualJacobianAssembler, split_blocks
from .linalg import DirectSolver
from .stepper import NewtonTimeStepper, StepReport, OutputRecord
from .ring import RingWithFibers
from .problem import ImmersedProblem, ring_benchmark
