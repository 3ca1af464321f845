import numpy as np
import pytest

from ifem.meshing import hyper_shell, rectangle
from ifem.parameters import IFEMParameters
from ifem.problem import ImmersedProblem

RING_CENTER = (0.47, 0.52)


def off_center_problem(**overrides) -> ImmersedProblem:
    """3x3 fluid cells on the unit square with a small annulus away from the grid symmetry lines."""
    opts = dict(
        degree=2,
        solid_quadrature=3,
        ring_center=RING_CENTER,
        ring_radius=0.15,
        ring_width=0.06,
        dt=0.1,
    )
    opts.update(overrides)
    par = IFEMParameters(**opts)
    fluid_mesh = rectangle(1.0, 1.0, 3, 3)
    solid_mesh = hyper_shell(RING_CENTER, 0.15, 0.21, n_circumferential=8, n_radial=1)
    return ImmersedProblem(fluid_mesh, solid_mesh, par)


def single_cell_problem(**overrides) -> ImmersedProblem:
    """One fluid cell holding one square body cell."""
    opts = dict(degree=2, solid_quadrature=3, material_model="neo_hookean", dt=0.1, final_time=0.1)
    opts.update(overrides)
    par = IFEMParameters(**opts)
    fluid_mesh = rectangle(1.0, 1.0, 1, 1)
    solid_mesh = rectangle(0.3, 0.3, 1, 1, origin=(0.3, 0.35))
    return ImmersedProblem(fluid_mesh, solid_mesh, par)


def random_state(problem: ImmersedProblem, seed: int = 0, u_scale: float = 0.1, w_scale: float = 0.01):
    rng = np.random.default_rng(seed)
    n_f = problem.assembler.n_f
    xi = np.zeros(problem.n_dofs)
    xi[:n_f] = u_scale * rng.standard_normal(n_f)
    xi[n_f:] = w_scale * rng.standard_normal(problem.n_dofs - n_f)
    return xi


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def make_off_center():
    return off_center_problem


@pytest.fixture
def make_single_cell():
    return single_cell_problem


@pytest.fixture
def make_random_state():
    return random_state
