"""
Shared test configuration and fixtures.

The task fixtures are the small domains the encoder is specified against:
an instantaneous action reaching a goal, a bounded durative action, and a
fuel counter that needs two applications of the same action.
"""

import pytest
import z3

from pysmtplan.config import PlannerConfig
from pysmtplan.encoders.temporal import EncoderTemporal
from pysmtplan.task import ast
from pysmtplan.task.task import GroundAction, GroundTask


@pytest.fixture
def equivalent():
    """Checks that two boolean z3 expressions agree in every assignment."""
    def _equivalent(a, b):
        solver = z3.Solver(ctx=a.ctx)
        solver.add(z3.Not(a == b))
        return solver.check() == z3.unsat
    return _equivalent


@pytest.fixture
def reach_task():
    """One instantaneous action adds at-goal; at-goal starts false."""
    reach = GroundAction("reach", effect=ast.Effects(ast.SimpleEffect(0)))
    return GroundTask(literals=["at-goal", "idle"],
                      fluents=[],
                      actions=[reach],
                      goal=ast.LiteralGoal(0),
                      initial_literals={1})


@pytest.fixture
def work_task():
    """A durative action lasting between 5 and 10 whose end adds done."""
    work = GroundAction.durative_action(
        "work", 5, 10,
        effect=ast.TimedEffect(ast.TimeSpec.AT_END, ast.SimpleEffect(0)))
    return GroundTask(literals=["done"], fluents=[], actions=[work], goal=ast.LiteralGoal(0))


@pytest.fixture
def fuel_task():
    """fuel starts at 10, burn decreases it by 3, the goal is fuel <= 5."""
    burn = GroundAction("burn", effect=ast.Assignment(ast.AssignOp.DECREASE, 0, ast.Constant(3)))
    goal = ast.Comparison(ast.Comparator.LE, ast.FluentTerm(0), ast.Constant(5))
    return GroundTask(literals=[], fluents=["fuel"], actions=[burn], goal=goal, initial_fluents={0: 10})


@pytest.fixture
def make_encoder():
    def _make(task, **config):
        return EncoderTemporal(task, PlannerConfig(**config))
    return _make
