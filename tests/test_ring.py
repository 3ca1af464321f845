import numpy as np
import pytest

from ifem.elements import gauss_quadrature
from ifem.meshing import hyper_cube
from ifem.parameters import IFEMParameters
from ifem.problem import ring_benchmark
from ifem.ring import RingWithFibers
from ifem.spaces import FluidSpace


def _ring_parameters(**overrides):
    opts = dict(
        material_model="circumferential_fibers",
        degree=2,
        solid_quadrature=3,
        ring_radius=0.25,
        ring_width=0.125,
        mu=1.0,
    )
    opts.update(overrides)
    return IFEMParameters(**opts)


def test_exact_pressure_profile() -> None:
    ring = RingWithFibers(_ring_parameters(mu=2.0))
    pts = np.array([[0.5, 0.5], [0.5 + 0.3, 0.5], [0.95, 0.5]])
    p = ring.pressure(pts)
    assert np.isclose(p[0], ring.p_in)
    assert np.isclose(p[1], ring.p_in - 2.0 * np.log(0.3 / 0.25))
    assert np.isclose(p[2], ring.p_in - 2.0 * np.log(0.375 / 0.25))
    assert np.allclose(ring.fluid_initial(pts)[:, :2], 0.0)


def test_exact_pressure_has_zero_mean() -> None:
    ring = RingWithFibers(_ring_parameters())
    # fine composite Gauss rule over the unit square
    weights, locations = gauss_quadrature(6)
    n = 40
    h = 1.0 / n
    total = 0.0
    for i in range(n):
        for j in range(n):
            x = np.column_stack([(i + 0.5 + 0.5 * locations[:, 0]) * h, (j + 0.5 + 0.5 * locations[:, 1]) * h])
            total += 0.25 * h * h * weights @ ring.pressure(x)
    assert abs(total) < 1e-4


def test_error_norms_of_interpolated_and_zero_states() -> None:
    par = _ring_parameters()
    ring = RingWithFibers(par)
    space = FluidSpace(hyper_cube(1.0, 8), degree=2, quadrature_order=4)

    interpolated = ring.error_norms(space, space.interpolate(ring.fluid_initial))
    assert interpolated["velocity_l2"] == 0.0
    assert interpolated["velocity_h1"] == 0.0

    zero = ring.error_norms(space, np.zeros(space.n_dofs))
    assert interpolated["pressure_l2"] < 0.3 * zero["pressure_l2"]


def _residual_ratio(n_fluid: int, n_circumferential: int) -> float:
    par = _ring_parameters()
    ring = RingWithFibers(par)
    problem = ring_benchmark(par, n_fluid=n_fluid, n_circumferential=n_circumferential, n_radial=2)
    n = problem.n_dofs
    n_f = problem.assembler.n_f

    exact = np.zeros(n)
    exact[:n_f] = problem.fluid.interpolate(ring.fluid_initial)
    r_exact, _ = problem.assembler.assemble(np.zeros(n), exact, 0.0, 0.0)
    r_elastic, _ = problem.assembler.assemble(np.zeros(n), np.zeros(n), 0.0, 0.0)
    return np.linalg.norm(r_exact) / np.linalg.norm(r_elastic)


@pytest.mark.parametrize("coarse, fine", [((8, 32), (16, 64))])
def test_exact_equilibrium_balances_the_fiber_force(coarse, fine) -> None:
    ratio_coarse = _residual_ratio(*coarse)
    ratio_fine = _residual_ratio(*fine)
    assert ratio_fine < 0.6
    # halving h should roughly halve the imbalance
    assert 0.25 < ratio_fine / ratio_coarse < 0.75
