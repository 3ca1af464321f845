import numpy as np

from ifem.constraints import ConstraintEnforcer, ConstraintMap, compute_constraints
from ifem.meshing import hyper_cube
from ifem.parameters import IFEMParameters
from ifem.spaces import FluidSpace


def _space():
    return FluidSpace(hyper_cube(1.0, 2), degree=2, quadrature_order=4)


def test_all_walls_constrain_both_components() -> None:
    space = _space()
    par = IFEMParameters(boundary_velocity=lambda p, t: np.column_stack([t * p[:, 0], -p[:, 1]]))
    cm = compute_constraints(space, par, 2.0)
    assert cm.dofs.size == 32
    assert cm.mask.sum() == 32

    nodes = space.boundary_velocity_nodes((0, 1, 2, 3))
    x = space.velocity_nodes[nodes]
    assert np.allclose(cm.prescribed[nodes], 2.0 * x[:, 0])
    assert np.allclose(cm.prescribed[nodes + space.n_vnodes], -x[:, 1])


def test_component_mask_and_fixed_pressure() -> None:
    space = _space()
    par = IFEMParameters(dirichlet_ids=(2,), component_mask=(False, True), fix_pressure=True)
    cm = compute_constraints(space, par, 0.0)
    assert cm.dofs.size == 5 + 1
    assert np.all(cm.dofs[:5] >= space.n_vnodes)
    assert cm.as_dict()[space.first_pressure_dof] == 0.0


def test_constraint_map_apply_overwrites_in_place() -> None:
    cm = ConstraintMap.from_pairs(5, np.array([1, 3]), np.array([2.0, -1.0]))
    xi = np.zeros(5)
    cm.apply(xi)
    assert xi.tolist() == [0.0, 2.0, 0.0, -1.0, 0.0]


def test_enforcer_rewrites_constrained_and_gauge_rows() -> None:
    cm = ConstraintMap.from_pairs(10, np.array([2, 7]), np.array([1.0, 0.5]))
    enforcer = ConstraintEnforcer(cm, scaling=0.3, gauge_dof=5)
    xi_f = np.arange(10, dtype=float)
    dofs = np.array([2, 5, 6])

    # two fluid rows plus one extra (solid) row in the local system
    local_res = np.ones(4)
    local_jac = np.full((4, 4), 2.0)
    enforcer.apply(local_res, local_jac, xi_f, dofs)

    assert np.isclose(local_res[0], 0.3 * (2.0 - 1.0))
    assert np.allclose(local_jac[0], [0.3, 0.0, 0.0, 0.0])
    assert local_res[1] == 0.0
    assert np.allclose(local_jac[1], 0.0)
    assert np.allclose(local_res[2:], 1.0)
    assert np.allclose(local_jac[2:], 2.0)


def test_enforcer_without_tangent_only_touches_residual() -> None:
    cm = ConstraintMap.from_pairs(4, np.array([0]), np.array([3.0]))
    local_res = np.ones(2)
    ConstraintEnforcer(cm, scaling=2.0).apply(local_res, None, np.array([1.0, 0.0, 0.0, 0.0]), np.array([0, 1]))
    assert local_res.tolist() == [-4.0, 1.0]
