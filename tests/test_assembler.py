import numpy as np
import pytest

import ifem.assembler as assembler_module
from ifem.assembler import split_blocks
from ifem.linalg import solve_linear_system

ALPHA = 10.0
EPS = 1e-6


def _directional_fd(assembler, rate, state, direction, t=0.3, previous=None):
    plus, _ = assembler.assemble(rate + ALPHA * EPS * direction, state + EPS * direction, 0.0, t,
                                 previous=previous)
    minus, _ = assembler.assemble(rate - ALPHA * EPS * direction, state - EPS * direction, 0.0, t,
                                  previous=previous)
    return (plus - minus) / (2 * EPS)


def _check_columns(problem, state, rate, direction, rows=slice(None), previous=None):
    assembler = problem.assembler
    _, J = assembler.assemble(rate, state, ALPHA, 0.3, need_tangent=True, previous=previous)
    exact = J @ direction
    fd = _directional_fd(assembler, rate, state, direction, previous=previous)
    scale = max(np.linalg.norm(exact[rows]), 1.0)
    assert np.linalg.norm(exact[rows] - fd[rows]) <= 1e-5 * scale


@pytest.mark.parametrize("model", ["neo_hookean", "linear", "circumferential_fibers"])
@pytest.mark.parametrize("semi_implicit", [False, True])
def test_tangent_matches_finite_differences(make_off_center, make_random_state, model, semi_implicit) -> None:
    problem = make_off_center(material_model=model, semi_implicit=semi_implicit,
                              body_force=lambda p, t: np.column_stack([np.sin(p[:, 1]) * t, p[:, 0]]))
    n_f = problem.assembler.n_f
    state = make_random_state(problem, seed=1)
    rate = make_random_state(problem, seed=2)
    previous = make_random_state(problem, seed=3) if semi_implicit else None

    rng = np.random.default_rng(4)
    for cols in (slice(0, n_f), slice(n_f, None)):
        direction = np.zeros(problem.n_dofs)
        direction[cols] = rng.standard_normal(direction[cols].size)
        # fluid rows and solid rows separately: one block each
        _check_columns(problem, state, rate, direction, rows=slice(0, n_f), previous=previous)
        _check_columns(problem, state, rate, direction, rows=slice(n_f, None), previous=previous)


def test_spread_tangent_is_exact_outside_the_elastic_block(make_off_center, make_random_state) -> None:
    problem = make_off_center(use_spread=True)
    n_f = problem.assembler.n_f
    state = make_random_state(problem, seed=5)
    rate = make_random_state(problem, seed=6)
    rng = np.random.default_rng(7)

    direction = np.zeros(problem.n_dofs)
    direction[:n_f] = rng.standard_normal(n_f)
    _check_columns(problem, state, rate, direction)

    direction = np.zeros(problem.n_dofs)
    direction[n_f:] = rng.standard_normal(problem.n_dofs - n_f)
    _check_columns(problem, state, rate, direction, rows=slice(n_f, None))


@pytest.mark.parametrize("use_spread", [False, True])
def test_elastic_force_on_fluid_is_self_equilibrated(make_off_center, make_random_state, use_spread) -> None:
    problem = make_off_center(use_spread=use_spread, all_dirichlet=False, dirichlet_ids=())
    assembler = problem.assembler
    state = make_random_state(problem, seed=8)
    state[:assembler.n_f] = 0.0
    residual, _ = assembler.assemble(np.zeros(problem.n_dofs), state, 0.0, 0.0)

    nv = problem.fluid.n_vnodes
    elastic = residual[:2 * nv]
    assert np.linalg.norm(elastic) > 1e-6
    assert abs(elastic[:nv].sum()) < 1e-10 * np.abs(elastic).sum()
    assert abs(elastic[nv:].sum()) < 1e-10 * np.abs(elastic).sum()


def test_repeated_assembly_is_bit_identical(make_off_center, make_random_state) -> None:
    problem = make_off_center(material_model="circumferential_fibers")
    state = make_random_state(problem, seed=9)
    rate = make_random_state(problem, seed=10)
    r1, J1 = problem.assembler.assemble(rate, state, ALPHA, 0.2, need_tangent=True)
    r2, J2 = problem.assembler.assemble(rate, state, ALPHA, 0.2, need_tangent=True)
    assert np.array_equal(r1, r2)
    assert np.array_equal(J1.toarray(), J2.toarray())


def test_gauge_makes_the_system_nonsingular(make_off_center) -> None:
    with_gauge = make_off_center()
    n = with_gauge.n_dofs
    _, J = with_gauge.assembler.assemble(np.zeros(n), with_gauge.initial_state(), ALPHA, 0.0, need_tangent=True)
    assert np.linalg.matrix_rank(J.toarray()) == n
    b = np.ones(n)
    x = solve_linear_system(J, b)
    assert np.allclose(J @ x, b)

    fixed = make_off_center(fix_pressure=True)
    _, J = fixed.assembler.assemble(np.zeros(n), fixed.initial_state(), ALPHA, 0.0, need_tangent=True)
    assert np.linalg.matrix_rank(J.toarray()) == n

    free = make_off_center(all_dirichlet=False)
    _, J = free.assembler.assemble(np.zeros(n), free.initial_state(), ALPHA, 0.0, need_tangent=True)
    assert np.linalg.matrix_rank(J.toarray()) == n - 1


def test_gauge_row_carries_the_mean_pressure(make_off_center) -> None:
    problem = make_off_center()
    assembler = problem.assembler
    fluid = problem.fluid
    state = problem.initial_state()
    state[fluid.pressure_dofs] = 2.0
    residual, J = assembler.assemble(np.zeros(problem.n_dofs), state, ALPHA, 0.0, need_tangent=True)
    g = fluid.first_pressure_dof
    assert np.isclose(residual[g], assembler.scaling * 2.0)
    row = J[g].toarray().ravel()
    assert np.isclose(row[fluid.pressure_dofs].sum(), assembler.scaling)
    assert np.allclose(np.delete(row, fluid.pressure_dofs), 0.0)


def test_blocks_and_coupling_pattern(make_off_center, make_random_state) -> None:
    problem = make_off_center()
    assembler = problem.assembler
    state = make_random_state(problem, seed=11)
    _, J = assembler.assemble(np.zeros(problem.n_dofs), state, ALPHA, 0.0, need_tangent=True)

    blocks = split_blocks(J, assembler.n_f)
    assert blocks["ff"].shape == (assembler.n_f, assembler.n_f)
    assert blocks["fs"].shape == (assembler.n_f, assembler.n_s)
    assert blocks["sf"].shape == (assembler.n_s, assembler.n_f)
    assert blocks["ss"].shape == (assembler.n_s, assembler.n_s)

    mapping = assembler.make_mapping(state[assembler.n_f:])
    rows, cols = assembler.coupling_sparsity(assembler.locate_body(mapping))
    coo = J.tocoo()
    stored = set(zip(coo.row.tolist(), coo.col.tolist()))
    assert set(zip(rows.tolist(), cols.tolist())) <= stored


def test_semi_implicit_reuses_point_locations(make_off_center, make_random_state, monkeypatch) -> None:
    problem = make_off_center(semi_implicit=True)
    assembler = problem.assembler
    calls = []
    original = assembler_module.locate

    def counting_locate(index, points):
        calls.append(1)
        return original(index, points)

    monkeypatch.setattr(assembler_module, "locate", counting_locate)
    previous = make_random_state(problem, seed=12)
    n = problem.n_dofs
    assembler.assemble(np.zeros(n), make_random_state(problem, seed=13), 0.0, 0.0, previous=previous)
    first = len(calls)
    assembler.assemble(np.zeros(n), make_random_state(problem, seed=14), 0.0, 0.0, previous=previous)
    assert first == problem.solid.n_cells
    assert len(calls) == first

    assembler.assemble(np.zeros(n), previous, 0.0, 0.0, previous=make_random_state(problem, seed=15))
    assert len(calls) == 2 * first


def test_single_cell_rest_state_has_zero_residual(make_single_cell) -> None:
    problem = make_single_cell()
    residual, J = problem.assembler.assemble(np.zeros(problem.n_dofs), problem.initial_state(), ALPHA, 0.1,
                                             need_tangent=True)
    assert np.all(residual == 0.0)
    assert J.shape == (problem.n_dofs, problem.n_dofs)
