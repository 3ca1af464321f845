from __future__ import annotations

"""Residual and Jacobian of the coupled fluid / immersed-body system.

The unknowns are xi = (xi_f, xi_s): fluid velocity-pressure coefficients
followed by body displacement coefficients. Given the rate xi', the state
xi and a rate coefficient alpha, the assembler returns

    R(xi', xi, t)                     and, on request,
    J = dR/dxi + alpha dR/dxi'

J is returned as one CSR matrix whose four blocks (fluid-fluid,
fluid-solid, solid-fluid, solid-solid) are split by ``split_blocks``.

Pass 1 integrates the Navier-Stokes terms over the control volume. Pass 2
walks the body: its quadrature points are pushed to the current placement,
located in the fluid mesh, and each (body cell, fluid cell) pair assembles
one square local system holding both the elastic force on the fluid and
the kinematic constraint of the body.
"""

from dataclasses import dataclass
import logging

import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as spla

from .constitutive import ConstitutiveModel
from .constraints import ConstraintEnforcer, ConstraintMap, compute_constraints
from .locator import LocatorIndex, PointGroup, locate
from .mapping import ImmersedMapping
from .parameters import IFEMParameters
from .spaces import FluidSpace, SolidSpace

logger = logging.getLogger(__name__)


@dataclass
class AssemblyContext:
    """Inputs of one assembly call, shared by both passes."""

    t: float
    alpha: float
    need_tangent: bool
    scaling: float
    domain_area: float
    gauge_dof: int | None
    constraints: ConstraintMap
    enforcer: ConstraintEnforcer
    mapping: ImmersedMapping
    xi_f: np.ndarray
    xi_s: np.ndarray
    xit_f: np.ndarray
    xit_s: np.ndarray


class SystemAccumulator:
    """Scatter-add storage for the global residual and tangent triplets."""

    def __init__(self, n_dofs: int):
        self.n_dofs = n_dofs
        self.residual = np.zeros(n_dofs, dtype=float)
        self._rows: list[np.ndarray] = []
        self._cols: list[np.ndarray] = []
        self._vals: list[np.ndarray] = []

    def add_residual(self, dofs: np.ndarray, local_res: np.ndarray) -> None:
        np.add.at(self.residual, dofs, local_res)

    def add_jacobian(self, row_dofs: np.ndarray, col_dofs: np.ndarray, local: np.ndarray) -> None:
        self._rows.append(np.repeat(row_dofs, col_dofs.size))
        self._cols.append(np.tile(col_dofs, row_dofs.size))
        self._vals.append(np.asarray(local, dtype=float).ravel())

    def add_pattern(self, rows: np.ndarray, cols: np.ndarray) -> None:
        self._rows.append(np.asarray(rows, dtype=int))
        self._cols.append(np.asarray(cols, dtype=int))
        self._vals.append(np.zeros(len(rows)))

    def tocsr(self) -> sp.csr_matrix:
        if not self._rows:
            return sp.csr_matrix((self.n_dofs, self.n_dofs))
        J = sp.coo_matrix(
            (np.concatenate(self._vals), (np.concatenate(self._rows), np.concatenate(self._cols))),
            shape=(self.n_dofs, self.n_dofs),
        )
        return J.tocsr()


def split_blocks(J: sp.spmatrix, n_f: int) -> dict[str, sp.csr_matrix]:
    J = sp.csr_matrix(J)
    return {
        "ff": J[:n_f, :n_f],
        "fs": J[:n_f, n_f:],
        "sf": J[n_f:, :n_f],
        "ss": J[n_f:, n_f:],
    }


class ResidualJacobianAssembler:

    def __init__(self, fluid: FluidSpace, solid: SolidSpace, par: IFEMParameters,
                 locator_index: LocatorIndex, model: ConstitutiveModel):
        self.fluid = fluid
        self.solid = solid
        self.par = par
        self.locator_index = locator_index
        self.model = model

        self.n_f = fluid.n_dofs
        self.n_s = solid.n_dofs
        self.n_dofs = self.n_f + self.n_s

        self.scaling = fluid.mesh.minimal_cell_diameter()
        self.domain_area = fluid.area
        self.gauge_dof = fluid.first_pressure_dof if par.gauge_active else None

        self.mass = solid.mass_matrix(par.phi_b)
        self._mass_lu = spla.splu(self.mass)

        self._location_cache: tuple[bytes, list[list[PointGroup]]] | None = None

    # ---- state helpers ----
    def split(self, xi: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        return xi[:self.n_f], xi[self.n_f:]

    def make_mapping(self, xi_s: np.ndarray, previous_s: np.ndarray | None = None) -> ImmersedMapping:
        if self.par.semi_implicit:
            base = xi_s if previous_s is None else previous_s
            return ImmersedMapping.semi_implicit(self.solid, base)
        return ImmersedMapping.implicit(self.solid, xi_s)

    def locate_body(self, mapping: ImmersedMapping) -> list[list[PointGroup]]:
        """Fluid cells owning the placed quadrature points, per body cell."""
        if mapping.frozen and self._location_cache is not None:
            key, groups = self._location_cache
            if key == mapping.fingerprint:
                logger.debug("Reusing point locations of the frozen mapping")
                return groups
        groups = [locate(self.locator_index, mapping.cell_points(s)) for s in range(self.solid.n_cells)]
        if mapping.frozen:
            self._location_cache = (mapping.fingerprint, groups)
        return groups

    def coupling_sparsity(self, locations: list[list[PointGroup]]) -> tuple[np.ndarray, np.ndarray]:
        """(rows, cols) of every fluid-solid and solid-fluid entry for a placement."""
        rows, cols = [], []
        for s, groups in enumerate(locations):
            dofs_s = self.n_f + self.solid.cell_dofs[s]
            for group in groups:
                dofs_f = self.fluid.cell_dofs[group.cell]
                r = np.repeat(dofs_f, dofs_s.size)
                c = np.tile(dofs_s, dofs_f.size)
                rows.extend([r, c])
                cols.extend([c, r])
        if not rows:
            return np.zeros(0, dtype=int), np.zeros(0, dtype=int)
        return np.concatenate(rows), np.concatenate(cols)

    # ---- body operators ----
    def deformation(self, xi_s: np.ndarray, s: int) -> np.ndarray:
        W = self.solid.cell_values(xi_s, s)
        H = np.einsum("qbd,cb->qcd", self.solid.grad_psi[s], W)
        return np.eye(2)[None, :, :] + H

    def elastic_force(self, xi_s: np.ndarray) -> np.ndarray:
        """A_gamma = int_B Pe(F) : grad(y) dX for every body test function."""
        A = np.zeros(self.n_s)
        for s in range(self.solid.n_cells):
            F = self.deformation(xi_s, s)
            Pe = self.model.stress(F, self.solid.qpoints[s])
            local = np.einsum("q,qcd,qbd->cb", self.solid.JxW[s], Pe, self.solid.grad_psi[s])
            np.add.at(A, self.solid.cell_dofs[s], local.ravel())
        return A

    def spread_field(self, A: np.ndarray) -> np.ndarray:
        """M^-1 A_gamma, with M the phi_b-weighted body mass matrix."""
        return self._mass_lu.solve(A)

    # ---- entry point ----
    def assemble(self, xit: np.ndarray, xi: np.ndarray, alpha: float, t: float,
                 need_tangent: bool = False, previous: np.ndarray | None = None):
        """Residual and, if requested, tangent at (xi', xi, t).

        ``previous`` is the last converged state; the semi-implicit scheme
        places the body with its displacement.
        """
        xi_f, xi_s = self.split(xi)
        xit_f, xit_s = self.split(xit)
        previous_s = None if previous is None else self.split(previous)[1]

        constraints = compute_constraints(self.fluid, self.par, t)
        ctx = AssemblyContext(
            t=t,
            alpha=alpha if need_tangent else 0.0,
            need_tangent=need_tangent,
            scaling=self.scaling,
            domain_area=self.domain_area,
            gauge_dof=self.gauge_dof,
            constraints=constraints,
            enforcer=ConstraintEnforcer(constraints, self.scaling, self.gauge_dof),
            mapping=self.make_mapping(xi_s, previous_s),
            xi_f=xi_f, xi_s=xi_s, xit_f=xit_f, xit_s=xit_s,
        )
        acc = SystemAccumulator(self.n_dofs)

        locations = self.locate_body(ctx.mapping)
        if need_tangent:
            acc.add_pattern(*self.coupling_sparsity(locations))

        self._fluid_pass(ctx, acc)
        self._immersed_pass(ctx, acc, locations)

        if need_tangent:
            return acc.residual, acc.tocsr()
        return acc.residual, None

    # ---- pass 1 ----
    def _fluid_pass(self, ctx: AssemblyContext, acc: SystemAccumulator) -> None:
        fl = self.fluid
        par = self.par
        nbu, nbp = fl.nbu, fl.nbp
        n_local = 2 * nbu + nbp
        pres = slice(2 * nbu, n_local)
        phi, psi = fl.phi, fl.psi_p
        gauge_factor = ctx.scaling / ctx.domain_area

        for e in range(fl.n_cells):
            dofs = fl.cell_dofs[e]
            w = fl.JxW[e]
            G = fl.grad_phi[e]
            U, P = fl.cell_values(ctx.xi_f, e)
            Ut, _ = fl.cell_values(ctx.xit_f, e)

            u = phi @ U.T
            ut = phi @ Ut.T
            gu = np.einsum("qbd,cb->qcd", G, U)
            p = psi @ P
            b = np.asarray(par.body_force(fl.qpoints[e], ctx.t), dtype=float)

            # rho (du/dt - b) . v + rho (grad u u) . v
            a = par.rho * (ut - b) + par.rho * np.einsum("qcd,qd->qc", gu, u)
            # eta (grad u + grad u^T) : grad v - p div v
            S = par.eta * (gu + np.transpose(gu, (0, 2, 1))) - p[:, None, None] * np.eye(2)
            r_u = np.einsum("q,qc,qi->ci", w, a, phi) + np.einsum("q,qcd,qid->ci", w, S, G)
            # - q div u
            div = gu[:, 0, 0] + gu[:, 1, 1]
            r_p = -np.einsum("q,q,qi->i", w, div, psi)
            local_res = np.concatenate([r_u.ravel(), r_p])

            local_jac = None
            if ctx.need_tangent:
                local_jac = np.zeros((n_local, n_local))
                mass = np.einsum("q,qi,qj->ij", w, phi, phi)
                lap = np.einsum("q,qid,qjd->ij", w, G, G)
                conv = np.einsum("q,qi,qd,qjd->ij", w, phi, u, G)
                for c in range(2):
                    rc = slice(c * nbu, (c + 1) * nbu)
                    local_jac[rc, rc] += par.rho * ctx.alpha * mass + par.eta * lap + par.rho * conv
                    for c2 in range(2):
                        rc2 = slice(c2 * nbu, (c2 + 1) * nbu)
                        local_jac[rc, rc2] += (
                            par.eta * np.einsum("q,qi,qj->ij", w, G[:, :, c2], G[:, :, c])
                            + par.rho * np.einsum("q,q,qi,qj->ij", w, gu[:, c, c2], phi, phi)
                        )
                    grad_p = -np.einsum("q,qi,qj->ij", w, G[:, :, c], psi)
                    local_jac[rc, pres] += grad_p
                    local_jac[pres, rc] += grad_p.T

            ctx.enforcer.apply(local_res, local_jac, ctx.xi_f, dofs)
            acc.add_residual(dofs, local_res)
            if local_jac is not None:
                acc.add_jacobian(dofs, dofs, local_jac)

            if ctx.gauge_dof is not None:
                # domain-average pressure installed on the gauge row
                acc.residual[ctx.gauge_dof] += gauge_factor * float(w @ p)
                if ctx.need_tangent:
                    coeff = gauge_factor * (w @ psi)
                    acc.add_jacobian(np.array([ctx.gauge_dof]), dofs[pres], coeff[None, :])

    # ---- pass 2 ----
    def _immersed_pass(self, ctx: AssemblyContext, acc: SystemAccumulator,
                       locations: list[list[PointGroup]]) -> None:
        so = self.solid
        par = self.par
        nbs = so.nbs

        spread = None
        if par.use_spread:
            spread = self.spread_field(self.elastic_force(ctx.xi_s))

        for s in range(so.n_cells):
            dofs_s = so.cell_dofs[s]
            X = so.qpoints[s]
            F = self.deformation(ctx.xi_s, s)
            Pe = self.model.stress(F, X)
            PeFT = Pe @ np.transpose(F, (0, 2, 1))
            DPeFT = self.model.stress_ft_derivative(F, X, so.grad_psi[s]) if ctx.need_tangent else None
            g = None
            if spread is not None:
                g = so.psi @ spread[dofs_s].reshape(2, nbs).T

            for group in locations[s]:
                self._couple(ctx, acc, s, group, PeFT, DPeFT, g)

            # phi_b dw/dt . y, independent of the fluid
            w = so.JxW[s]
            Wt = so.cell_values(ctx.xit_s, s)
            wt = so.psi @ Wt.T
            local_res = par.phi_b * np.einsum("q,qc,qi->ci", w, wt, so.psi).ravel()
            acc.add_residual(self.n_f + dofs_s, local_res)
            if ctx.need_tangent:
                mass = par.phi_b * ctx.alpha * np.einsum("q,qi,qj->ij", w, so.psi, so.psi)
                local_jac = np.kron(np.eye(2), mass)
                acc.add_jacobian(self.n_f + dofs_s, self.n_f + dofs_s, local_jac)

    def _couple(self, ctx: AssemblyContext, acc: SystemAccumulator, s: int, group: PointGroup,
                PeFT: np.ndarray, DPeFT: np.ndarray | None, g: np.ndarray | None) -> None:
        """Local system of one body cell against one fluid cell holding some of its points."""
        fl, so, par = self.fluid, self.solid, self.par
        nbu, nbs = fl.nbu, so.nbs
        dofs_f = fl.cell_dofs[group.cell]
        dofs_s = so.cell_dofs[s]
        nf, ns = dofs_f.size, dofs_s.size
        q = group.indices
        moving = ctx.need_tangent and not ctx.mapping.frozen
        use_hessians = moving and g is None

        phi, gphi, hphi = fl.evaluate_basis(group.cell, group.ref_points, hessians=use_hessians)
        U, _ = fl.cell_values(ctx.xi_f, group.cell)
        u = phi @ U.T
        gu = np.einsum("qbd,cb->qcd", gphi, U)
        wq = so.JxW[s][q]
        psq = so.psi[q]

        local_res = np.zeros(nf + ns)
        local_jac = np.zeros((nf + ns, nf + ns)) if ctx.need_tangent else None

        # fluid momentum: Pe F^T : grad v, directly or through the spread field
        if g is None:
            r_u = np.einsum("q,qcd,qid->ci", wq, PeFT[q], gphi)
        else:
            r_u = par.phi_b * np.einsum("q,qc,qi->ci", wq, g[q], phi)
        local_res[:2 * nbu] += r_u.ravel()

        if ctx.need_tangent:
            k_el = np.einsum("q,qkcd,qid->cik", wq, DPeFT[q], gphi)
            if moving:
                # test functions sampled at a moving point
                if g is None:
                    k_mv = np.einsum("q,qb,qcd,qied->cieb", wq, psq, PeFT[q], hphi)
                else:
                    k_mv = par.phi_b * np.einsum("q,qb,qc,qie->cieb", wq, psq, g[q], gphi)
                k_el = k_el + k_mv.reshape(2, nbu, ns)
            local_jac[:2 * nbu, nf:] += k_el.reshape(2 * nbu, ns)

        # body kinematics: - phi_b u(x) . y, x = X + w(X)
        r_s = -par.phi_b * np.einsum("q,qc,qi->ci", wq, u, psq)
        local_res[nf:] += r_s.ravel()

        if ctx.need_tangent:
            coupling = -par.phi_b * np.einsum("q,qi,qj->ij", wq, psq, phi)
            for c in range(2):
                local_jac[nf + c * nbs:nf + (c + 1) * nbs, c * nbu:(c + 1) * nbu] += coupling
            if moving:
                k_ss = -par.phi_b * np.einsum("q,qi,qb,qce->cieb", wq, psq, psq, gu)
                local_jac[nf:, nf:] += k_ss.reshape(ns, ns)

        ctx.enforcer.apply(local_res, local_jac, ctx.xi_f, dofs_f)
        dofs = np.concatenate([dofs_f, self.n_f + dofs_s])
        acc.add_residual(dofs, local_res)
        if local_jac is not None:
            acc.add_jacobian(dofs, dofs, local_jac)
