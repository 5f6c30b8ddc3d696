from fractions import Fraction

import pytest
import z3

from pysmtplan.encoders.temporal import EncoderTemporal
from pysmtplan.exceptions import DurationBoundsError, SessionError, UnsupportedConstructError
from pysmtplan.planner.session import SolveResult
from pysmtplan.task import ast
from pysmtplan.task.task import GroundAction, GroundTask, TimedInitialLiteral


def _value(encoder, expr):
    return encoder.model().eval(expr, model_completion=True)


def _number(encoder, expr):
    return _value(encoder, expr).as_fraction()


def _holds(encoder, constraint):
    """Solves with an extra constraint in a temporary scope."""
    encoder.session.push()
    encoder.session.add(constraint)
    result = encoder.solve()
    encoder.session.pop()
    return result


# ---------------------------------------------------------------------------
# instantaneous actions
# ---------------------------------------------------------------------------

def test_single_action_reaches_the_goal(reach_task, make_encoder):
    encoder = make_encoder(reach_task)
    assert encoder.encode(1)
    assert encoder.solve() is SolveResult.SAT

    assert z3.is_true(_value(encoder, encoder.vars.start(0, 0)))
    assert z3.is_true(_value(encoder, encoder.vars.end(0, 0)))
    assert z3.is_false(_value(encoder, encoder.vars.running(0, 0)))
    assert z3.is_true(_value(encoder, encoder.vars.literal(0, 1, post=True)))


def test_empty_plan_cannot_reach_the_goal(reach_task, make_encoder):
    encoder = make_encoder(reach_task)
    assert encoder.encode(0)
    assert encoder.solve() is SolveResult.UNSAT


def test_goal_already_true_needs_no_action(reach_task, make_encoder):
    reach_task.initial_literals = frozenset({0, 1})
    encoder = make_encoder(reach_task)
    encoder.encode(0)
    assert encoder.solve() is SolveResult.SAT


def test_untouched_literals_keep_their_value(reach_task, make_encoder):
    encoder = make_encoder(reach_task)
    encoder.encode(2)
    idle = [encoder.vars.literal(1, h, post=post) for h in range(3) for post in (False, True)]
    assert _holds(encoder, z3.Not(z3.And(idle))) is SolveResult.UNSAT


def test_literal_changes_need_an_action(reach_task, make_encoder):
    encoder = make_encoder(reach_task)
    encoder.encode(2)
    no_reach = z3.Not(z3.Or([encoder.vars.start(0, h) for h in range(3)]))
    assert _holds(encoder, no_reach) is SolveResult.UNSAT


def test_time_never_decreases(reach_task, make_encoder):
    encoder = make_encoder(reach_task)
    encoder.encode(2)
    assert _holds(encoder, encoder.vars.time(2) < encoder.vars.time(1)) is SolveResult.UNSAT
    assert _holds(encoder, encoder.vars.time(0) != 0) is SolveResult.UNSAT


def test_precondition_is_read_before_the_happening(make_encoder):
    first = GroundAction("first", effect=ast.SimpleEffect(0))
    second = GroundAction("second", condition=ast.LiteralGoal(0), effect=ast.SimpleEffect(1))
    task = GroundTask(literals=["a", "b"], fluents=[], actions=[first, second], goal=ast.LiteralGoal(1))
    encoder = make_encoder(task)

    encoder.encode(1)
    assert encoder.solve() is SolveResult.UNSAT
    encoder.encode(2)
    assert encoder.solve() is SolveResult.SAT


def test_sequential_mode_allows_one_start_per_layer(make_encoder):
    actions = [GroundAction("set-a", effect=ast.SimpleEffect(0)),
               GroundAction("set-b", effect=ast.SimpleEffect(1))]
    goal = ast.And(ast.LiteralGoal(0), ast.LiteralGoal(1))

    parallel = make_encoder(GroundTask(["a", "b"], [], actions, goal))
    parallel.encode(1)
    assert parallel.solve() is SolveResult.SAT

    sequential = make_encoder(GroundTask(["a", "b"], [], actions, goal), sequential=True)
    sequential.encode(1)
    assert sequential.solve() is SolveResult.UNSAT
    sequential.encode(2)
    assert sequential.solve() is SolveResult.SAT
    assert 'sequential' in sequential.formula[0]


def test_concurrent_add_wins_over_delete(make_encoder):
    actions = [GroundAction("on", effect=ast.SimpleEffect(0)),
               GroundAction("off", effect=ast.Effects(ast.SimpleEffect(0, add=False), ast.SimpleEffect(1)))]
    task = GroundTask(["light", "flipped"], [], actions, ast.And(ast.LiteralGoal(0), ast.LiteralGoal(1)))
    encoder = make_encoder(task)

    encoder.encode(1)
    assert encoder.solve() is SolveResult.SAT
    assert z3.is_true(_value(encoder, encoder.vars.start(0, 0)))
    assert z3.is_true(_value(encoder, encoder.vars.start(1, 0)))


def _toggle_task(goal, initial_literals):
    """p is deleted unless q holds, in which case it is added back."""
    toggle = GroundAction("toggle", effect=ast.Effects(
        ast.SimpleEffect(0, add=False),
        ast.CondEffect(ast.LiteralGoal(1), ast.SimpleEffect(0)),
        ast.SimpleEffect(2)))
    return GroundTask(["p", "q", "done"], [], [toggle], goal, initial_literals=initial_literals)


def test_conditional_add_beats_delete_of_the_same_action(make_encoder):
    encoder = make_encoder(_toggle_task(ast.And(ast.LiteralGoal(0), ast.LiteralGoal(2)), {0, 1}))
    encoder.encode(1)
    assert encoder.solve() is SolveResult.SAT
    assert z3.is_true(_value(encoder, encoder.vars.start(0, 0)))
    assert z3.is_true(_value(encoder, encoder.vars.literal(0, 0, post=True)))


def test_delete_applies_when_the_conditional_add_does_not(make_encoder):
    goal = ast.And(ast.Not(ast.LiteralGoal(0)), ast.LiteralGoal(2))
    encoder = make_encoder(_toggle_task(goal, {0}))
    encoder.encode(1)
    assert encoder.solve() is SolveResult.SAT

    encoder = make_encoder(_toggle_task(goal, {0, 1}))
    encoder.encode(1)
    assert encoder.solve() is SolveResult.UNSAT


# ---------------------------------------------------------------------------
# numeric fluents
# ---------------------------------------------------------------------------

def test_fuel_needs_two_burns(fuel_task, make_encoder):
    encoder = make_encoder(fuel_task)
    encoder.encode(1)
    assert encoder.solve() is SolveResult.UNSAT

    encoder.encode(2)
    assert encoder.solve() is SolveResult.SAT
    burns = [h for h in range(2) if z3.is_true(_value(encoder, encoder.vars.start(0, h)))]
    assert burns == [0, 1]
    assert _number(encoder, encoder.vars.fluent(0, 2, post=True)) == 4


def test_concurrent_assignments_to_a_fluent_are_exclusive(make_encoder):
    actions = [GroundAction("inc-a", effect=ast.Assignment(ast.AssignOp.INCREASE, 0, ast.Constant(1))),
               GroundAction("inc-b", effect=ast.Assignment(ast.AssignOp.INCREASE, 0, ast.Constant(1)))]
    goal = ast.Comparison(ast.Comparator.GE, ast.FluentTerm(0), ast.Constant(2))
    task = GroundTask([], ["count"], actions, goal, initial_fluents={0: 0})
    encoder = make_encoder(task)

    encoder.encode(1)
    assert encoder.solve() is SolveResult.UNSAT
    encoder.encode(2)
    assert encoder.solve() is SolveResult.SAT


def test_increases_of_one_action_are_summed(make_encoder):
    inc = GroundAction("inc", effect=ast.ForallEffect((
        ast.Assignment(ast.AssignOp.INCREASE, 0, ast.Constant(1)),
        ast.Assignment(ast.AssignOp.INCREASE, 0, ast.Constant(2)),
        ast.CondEffect(ast.LiteralGoal(0), ast.Assignment(ast.AssignOp.DECREASE, 0, ast.Constant(10))))))
    goal = ast.Comparison(ast.Comparator.GE, ast.FluentTerm(0), ast.Constant(1))
    encoder = make_encoder(GroundTask(["penalty"], ["x"], [inc], goal, initial_fluents={0: 0}))

    encoder.encode(1)
    assert encoder.solve() is SolveResult.SAT
    assert _number(encoder, encoder.vars.fluent(0, 0, post=True)) == 3


def test_summed_increases_include_active_conditional_effects(make_encoder):
    inc = GroundAction("inc", effect=ast.Effects(
        ast.Assignment(ast.AssignOp.INCREASE, 0, ast.Constant(1)),
        ast.CondEffect(ast.LiteralGoal(0), ast.Assignment(ast.AssignOp.DECREASE, 0, ast.Constant(10)))))
    goal = ast.Comparison(ast.Comparator.LE, ast.FluentTerm(0), ast.Constant(-9))
    encoder = make_encoder(GroundTask(["penalty"], ["x"], [inc], goal,
                                      initial_literals={0}, initial_fluents={0: 0}))

    encoder.encode(1)
    assert encoder.solve() is SolveResult.SAT
    assert _number(encoder, encoder.vars.fluent(0, 1)) == -9


def test_fluents_without_initial_value_are_free(make_encoder):
    task = GroundTask([], ["x"], [], ast.Comparison(ast.Comparator.EQ, ast.FluentTerm(0), ast.Constant(0.5)))
    encoder = make_encoder(task)
    encoder.encode(0)
    assert encoder.solve() is SolveResult.SAT
    assert _number(encoder, encoder.vars.fluent(0, 0)) == Fraction(1, 2)


# ---------------------------------------------------------------------------
# durative actions
# ---------------------------------------------------------------------------

def test_durative_action_needs_two_happenings(work_task, make_encoder):
    encoder = make_encoder(work_task)
    encoder.encode(1)
    assert encoder.solve() is SolveResult.UNSAT

    encoder.encode(2)
    assert encoder.solve() is SolveResult.SAT
    elapsed = _number(encoder, encoder.vars.time(1)) - _number(encoder, encoder.vars.time(0))
    assert 5 <= elapsed <= 10
    assert elapsed == _number(encoder, encoder.vars.duration(0, 0))


def test_durative_action_respects_its_maximum(work_task, make_encoder):
    encoder = make_encoder(work_task)
    encoder.encode(2)
    assert _holds(encoder, encoder.vars.time(1) - encoder.vars.time(0) > 10) is SolveResult.UNSAT
    assert _holds(encoder, encoder.vars.time(1) - encoder.vars.time(0) < 5) is SolveResult.UNSAT
    assert _holds(encoder, encoder.vars.time(1) - encoder.vars.time(0) == 7) is SolveResult.SAT


def test_inconsistent_duration_bounds():
    bad = GroundAction.durative_action("bad", 10, 5)
    task = GroundTask([], [], [bad], ast.Truth(True))
    with pytest.raises(DurationBoundsError):
        EncoderTemporal(task)


@pytest.mark.parametrize("lower_op, upper_op", [
    (ast.Comparator.GT, ast.Comparator.LT),
    (ast.Comparator.GE, ast.Comparator.LT),
    (ast.Comparator.GT, ast.Comparator.LE),
])
def test_strict_duration_bounds_with_no_admissible_value(lower_op, upper_op):
    bad = GroundAction("bad", durative=True, duration=(
        ast.Comparison(lower_op, ast.DURATION, ast.Constant(5)),
        ast.Comparison(upper_op, ast.DURATION, ast.Constant(5))))
    with pytest.raises(DurationBoundsError):
        EncoderTemporal(GroundTask([], [], [bad], ast.Truth(True)))


def test_strict_bounds_on_either_side_of_the_constant():
    mirrored = GroundAction("mirrored", durative=True, duration=(
        ast.Comparison(ast.Comparator.LT, ast.Constant(5), ast.DURATION),
        ast.Comparison(ast.Comparator.LE, ast.DURATION, ast.Constant(5))))
    with pytest.raises(DurationBoundsError):
        EncoderTemporal(GroundTask([], [], [mirrored], ast.Truth(True)))

    exact = GroundAction("exact", durative=True, duration=(
        ast.Comparison(ast.Comparator.GE, ast.DURATION, ast.Constant(5)),
        ast.Comparison(ast.Comparator.LE, ast.DURATION, ast.Constant(5))))
    EncoderTemporal(GroundTask([], [], [exact], ast.Truth(True)))


def test_instantaneous_action_with_duration_constraints():
    bad = GroundAction("bad", duration=(ast.Comparison(ast.Comparator.EQ, ast.DURATION, ast.Constant(1)),))
    with pytest.raises(DurationBoundsError):
        EncoderTemporal(GroundTask([], [], [bad], ast.Truth(True)))


def test_timing_constraints_do_not_grow_with_the_layer(work_task, make_encoder):
    encoder = make_encoder(work_task)
    encoder.encode(6)
    sizes = [len(encoder.formula[h]['timings']) for h in range(1, 7)]
    assert len(set(sizes)) == 1
    assert encoder.solve() is SolveResult.SAT


def test_durative_action_cannot_overlap_itself(make_encoder):
    work = GroundAction.durative_action(
        "work", 5,
        effect=ast.TimedEffect(ast.TimeSpec.AT_END, ast.Assignment(ast.AssignOp.INCREASE, 0, ast.Constant(1))))
    goal = ast.Comparison(ast.Comparator.GE, ast.FluentTerm(0), ast.Constant(2))
    task = GroundTask([], ["jobs"], [work], goal, initial_fluents={0: 0})
    encoder = make_encoder(task)

    encoder.encode(3)
    assert encoder.solve() is SolveResult.UNSAT
    encoder.encode(4)
    assert encoder.solve() is SolveResult.SAT
    assert _number(encoder, encoder.vars.time(4)) >= 10


def test_over_all_condition_blocks_a_conflicting_til(make_encoder):
    drive = GroundAction.durative_action(
        "drive", 5,
        condition=ast.TimedGoal(ast.TimeSpec.OVER_ALL, ast.LiteralGoal(0)),
        effect=ast.TimedEffect(ast.TimeSpec.AT_END, ast.SimpleEffect(1)))

    def encoder_with_til(at_time):
        til = TimedInitialLiteral(at_time, ast.SimpleEffect(0, add=False))
        task = GroundTask(["road-open", "arrived"], [], [drive], ast.LiteralGoal(1),
                          initial_literals={0}, timed_initial_literals=[til])
        return make_encoder(task)

    blocked = encoder_with_til(3)
    for horizon in (2, 3):
        blocked.encode(horizon)
        assert blocked.solve() is SolveResult.UNSAT

    late = encoder_with_til(20)
    late.encode(2)
    assert late.solve() is SolveResult.SAT


def test_continuous_effect_accumulates_over_the_action(make_encoder):
    def encoder_for(target):
        fill = GroundAction.durative_action("fill", 2, effect=ast.TimedEffect(
            ast.TimeSpec.CONTINUOUS, ast.Assignment(ast.AssignOp.INCREASE, 0, ast.Mul(ast.Constant(3), ast.TIME))))
        goal = ast.Comparison(ast.Comparator.GE, ast.FluentTerm(0), ast.Constant(target))
        return make_encoder(GroundTask([], ["level"], [fill], goal, initial_fluents={0: 0}))

    enough = encoder_for(6)
    enough.encode(2)
    assert enough.solve() is SolveResult.SAT
    assert _number(enough, enough.vars.fluent(0, 1)) == 6
    assert 'flows' in enough.formula[1]
    # flows act between happenings, never at one
    steady = [enough.vars.fluent(0, h, post=True) == enough.vars.fluent(0, h) for h in range(3)]
    assert _holds(enough, z3.Not(z3.And(steady))) is SolveResult.UNSAT

    too_much = encoder_for(7)
    too_much.encode(2)
    assert too_much.solve() is SolveResult.UNSAT


def test_timed_goal_under_disjunction_aborts_encoding(make_encoder):
    odd = GroundAction.durative_action(
        "odd", 1, condition=ast.Or(ast.TimedGoal(ast.TimeSpec.AT_START, ast.LiteralGoal(0)), ast.LiteralGoal(0)))
    encoder = make_encoder(GroundTask(["p"], [], [odd], ast.LiteralGoal(0)))
    with pytest.raises(UnsupportedConstructError):
        encoder.encode(1)
    with pytest.raises(SessionError):
        encoder.solve()
    assert len(encoder.session) == 0


# ---------------------------------------------------------------------------
# timed initial literals
# ---------------------------------------------------------------------------

def test_til_happens_at_its_time(make_encoder):
    til = TimedInitialLiteral(4, ast.SimpleEffect(0))
    task = GroundTask(["open"], [], [], ast.LiteralGoal(0), timed_initial_literals=[til])
    encoder = make_encoder(task)

    encoder.encode(1)
    assert encoder.solve() is SolveResult.UNSAT
    encoder.encode(2)
    assert encoder.solve() is SolveResult.SAT
    assert _number(encoder, encoder.vars.time(1)) == 4
    assert encoder.is_til(0)


def test_action_waits_for_a_til(make_encoder):
    enter = GroundAction("enter", condition=ast.LiteralGoal(0), effect=ast.SimpleEffect(1))
    til = TimedInitialLiteral(Fraction(3, 2), ast.SimpleEffect(0), name="opening")
    task = GroundTask(["open", "inside"], [], [enter], ast.LiteralGoal(1), timed_initial_literals=[til])
    encoder = make_encoder(task)

    encoder.encode(2)
    assert encoder.solve() is SolveResult.UNSAT
    encoder.encode(3)
    assert encoder.solve() is SolveResult.SAT
    assert _number(encoder, encoder.vars.time(2)) >= Fraction(3, 2)
    assert encoder.actors[1].name == "opening"


# ---------------------------------------------------------------------------
# incremental use
# ---------------------------------------------------------------------------

def test_horizon_ceiling_is_not_an_error(reach_task, make_encoder):
    encoder = make_encoder(reach_task, max_horizon=1)
    assert encoder.encode(1)
    assert not encoder.encode(2)
    assert encoder.horizon == 1
    assert encoder.solve() is SolveResult.SAT


def test_solve_before_encode(reach_task, make_encoder):
    with pytest.raises(SessionError):
        make_encoder(reach_task).solve()


def test_growing_and_shrinking_the_horizon(reach_task, make_encoder):
    encoder = make_encoder(reach_task)
    for horizon, expected in [(0, SolveResult.UNSAT), (1, SolveResult.SAT), (3, SolveResult.SAT),
                              (0, SolveResult.UNSAT), (2, SolveResult.SAT)]:
        assert encoder.encode(horizon)
        assert encoder.session.num_scopes == 1
        assert encoder.solve() is expected
    assert encoder.horizon == 2
    assert len(encoder) == 4


def test_layer_parts(reach_task, make_encoder):
    encoder = make_encoder(reach_task)
    encoder.encode(1)
    assert set(encoder.formula[0]) == {'header', 'initial', 'timings', 'conditions', 'effects',
                                       'literal_support', 'function_support'}
    assert 'flows' in encoder.formula[1] and 'initial' not in encoder.formula[1]
    assert [a.name for a in encoder] == ["reach"]
