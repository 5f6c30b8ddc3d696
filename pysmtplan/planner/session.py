import logging
import time

from enum import Enum

import z3

from pysmtplan.config import PlannerConfig
from pysmtplan.exceptions import SessionError

logger = logging.getLogger(__name__)


class SolveResult(Enum):
    SAT = "sat"
    UNSAT = "unsat"
    UNKNOWN = "unknown"


def _to_result(r):
    if r == z3.sat:
        return SolveResult.SAT
    if r == z3.unsat:
        return SolveResult.UNSAT
    return SolveResult.UNKNOWN


class SolverSession:
    """!
    Owns the z3 context and solver for the lifetime of an encoder, so that
    solver setup is paid once across horizon attempts.

    A check can block for as long as z3 searches; the only bound is the
    configured timeout, after which the result is UNKNOWN, never UNSAT.
    """

    def __init__(self, config=None):
        self.config = config or PlannerConfig()
        self.ctx = z3.Context()
        self.solver = self._make_solver()
        self.last_result = None
        self.reason_unknown = None
        self.last_check_time = None
        self._model = None

    def _make_solver(self):
        if self.config.tactic:
            solver = z3.Tactic(self.config.tactic, ctx=self.ctx).solver()
        else:
            solver = z3.Solver(ctx=self.ctx)
        self._apply_params(solver)
        return solver

    def _apply_params(self, solver):
        """Applied when the solver is built and after every reset."""
        if self.config.random_seed is not None:
            solver.set("random_seed", self.config.random_seed)
        if self.config.timeout_ms is not None:
            solver.set("timeout", self.config.timeout_ms)

    def __len__(self):
        return len(self.solver.assertions())

    @property
    def num_scopes(self):
        return self.solver.num_scopes()

    def add(self, constraints):
        self._model = None
        if isinstance(constraints, (list, tuple)):
            for c in constraints:
                self.solver.add(c)
        else:
            self.solver.add(constraints)

    def push(self):
        self._model = None
        self.solver.push()

    def pop(self):
        if self.solver.num_scopes() == 0:
            raise SessionError("pop() without a matching push()")
        self._model = None
        self.solver.pop()

    def reset(self):
        """Discards every assertion and scope. Variables stay valid."""
        self._model = None
        self.last_result = None
        self.reason_unknown = None
        self.solver.reset()
        self._apply_params(self.solver)

    def solve(self):
        """!
        Checks the asserted formula.

        @returns: SolveResult.SAT, UNSAT or UNKNOWN
        """
        start = time.time()
        result = _to_result(self.solver.check())
        self.last_check_time = time.time() - start
        self.last_result = result

        if result is SolveResult.SAT:
            self._model = self.solver.model()
            self.reason_unknown = None
        else:
            self._model = None
            self.reason_unknown = self.solver.reason_unknown() if result is SolveResult.UNKNOWN else None

        if result is SolveResult.UNKNOWN:
            logger.warning("Solver returned unknown after %.3fs: %s", self.last_check_time, self.reason_unknown)
        else:
            logger.info("Solver returned %s after %.3fs", result.value, self.last_check_time)
        return result

    def model(self):
        """The model of the last SAT check. Raises SessionError otherwise."""
        if self._model is None:
            raise SessionError("No model available: the last check was not SAT or the formula changed since")
        return self._model
