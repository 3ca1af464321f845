from __future__ import annotations

"""Backward-Euler time loop with a modified Newton method.

Each step starts from the last converged state with the new Dirichlet data
applied. The Jacobian is rebuilt and factored only when the refresh flag is
set; otherwise the last factors are reused. The flag is raised when the
residual is still large (> REFRESH_THRESHOLD), every MAX_INNER_ITERATIONS
unsuccessful iterations (a restart), and at step boundaries or on every
iteration depending on the refresh policy of the parameters.
"""

from dataclasses import dataclass, field
import logging
from typing import Callable

import numpy as np

from .assembler import ResidualJacobianAssembler
from .constraints import compute_constraints
from .diagnostics import output_diagnostics
from .errors import NonconvergenceError
from .linalg import DirectSolver
from .parameters import IFEMParameters

logger = logging.getLogger(__name__)

NEWTON_TOLERANCE = 1e-10
REFRESH_THRESHOLD = 1e-2
MAX_INNER_ITERATIONS = 15
MAX_RESTARTS = 3


@dataclass
class StepReport:
    step: int
    t: float
    iterations: int          # linear solves performed in the step
    restarts: int
    residual_norm: float
    refreshes: int


@dataclass
class OutputRecord:
    step: int
    t: float
    state: np.ndarray = field(repr=False)
    flux: float = 0.0
    area: float = 0.0
    centroid: np.ndarray = field(default_factory=lambda: np.zeros(2))


class NewtonTimeStepper:

    def __init__(self, assembler: ResidualJacobianAssembler, par: IFEMParameters,
                 solver=None, observer: Callable[[OutputRecord], None] | None = None):
        self.assembler = assembler
        self.par = par
        self.solver = solver if solver is not None else DirectSolver()
        self.observer = observer

        self.previous: np.ndarray | None = None
        self.current: np.ndarray | None = None
        self.t = 0.0
        self.refresh = True
        self.reports: list[StepReport] = []

    def initialize(self, state: np.ndarray) -> None:
        self.previous = np.array(state, dtype=float, copy=True)
        self.current = self.previous.copy()
        self.t = 0.0
        self.refresh = True
        self.reports = []

    def should_output(self, step: int) -> bool:
        return step <= 1 or step % self.par.output_interval == 0

    def emit(self, step: int) -> OutputRecord:
        fluid, solid = self.assembler.fluid, self.assembler.solid
        xi_f, xi_s = self.assembler.split(self.previous)
        diag = output_diagnostics(fluid, solid, xi_f, xi_s)
        record = OutputRecord(step=step, t=self.t, state=self.previous.copy(), **diag)
        logger.info(
            "Output %03d, t=%g: flux %.3e, area %.6f, centroid (%.6f, %.6f)",
            step, self.t, record.flux, record.area, record.centroid[0], record.centroid[1],
        )
        if self.observer is not None:
            self.observer(record)
        return record

    def run(self, initial_state: np.ndarray) -> list[StepReport]:
        """March from t = 0 to final_time; returns one report per step."""
        self.initialize(initial_state)
        self.emit(0)
        for k in range(1, self.par.n_steps + 1):
            self.step(k)
            if self.should_output(k):
                self.emit(k)
        return self.reports

    def step(self, k: int) -> StepReport:
        par = self.par
        dt = par.dt
        t = k * dt
        n_f = self.assembler.n_f

        current = self.previous.copy()
        self.current = current
        compute_constraints(self.assembler.fluid, par, t).apply(current[:n_f])

        nonlin_iter = 0
        outer_iter = 0
        solves = 0
        refreshes = 0
        while True:
            rate = (current - self.previous) / dt
            if self.refresh:
                residual, jacobian = self.assembler.assemble(
                    rate, current, 1.0 / dt, t, need_tangent=True, previous=self.previous,
                )
                self.solver.factorize(jacobian)
                refreshes += 1
                self.refresh = par.update_jacobian_continuously
                logger.debug("Jacobian refreshed")
            else:
                residual, _ = self.assembler.assemble(rate, current, 0.0, t, previous=self.previous)

            res_norm = float(np.linalg.norm(residual))
            logger.debug("%d: %e", nonlin_iter, res_norm)
            if res_norm < NEWTON_TOLERANCE:
                break

            current += self.solver.solve(-residual)
            solves += 1
            if res_norm > REFRESH_THRESHOLD:
                self.refresh = True

            nonlin_iter += 1
            if nonlin_iter == MAX_INNER_ITERATIONS:
                self.refresh = True
                nonlin_iter = 0
                outer_iter += 1
                if outer_iter > MAX_RESTARTS:
                    raise NonconvergenceError(k, t, res_norm, solves)
                logger.warning("Restarting nonlinear iterations at step %d (restart %d)", k, outer_iter)

        self.previous = current
        self.current = current
        self.t = t
        self.refresh = par.update_jacobian_continuously or par.update_jacobian_at_step_beginning

        report = StepReport(step=k, t=t, iterations=solves, restarts=outer_iter,
                            residual_norm=res_norm, refreshes=refreshes)
        self.reports.append(report)
        logger.info("Step %03d, Res: %e (converged in %d iterations)", k, res_norm, solves)
        return report
