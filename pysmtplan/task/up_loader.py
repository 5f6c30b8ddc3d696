"""
Builds a GroundTask from a unified_planning problem.

Quantified conditions and effects are expanded first with the
unified_planning QuantifiersRemover, and problems with parameterised actions
are then grounded with the unified_planning Grounder. Fluents are split by
type into the literal index space (boolean fluents) and the numeric fluent
index space (int and real fluents); every ground fluent expression gets one
index.
"""

import logging

from unified_planning.engines import CompilationKind
from unified_planning.engines.compilers import Grounder, QuantifiersRemover
from unified_planning.model import DurativeAction, EffectKind, InstantaneousAction
from unified_planning.model.fluent import get_all_fluent_exp

from pysmtplan.encoders.utilities import flatten_list
from pysmtplan.exceptions import UnsupportedConstructError
from pysmtplan.task import ast
from pysmtplan.task.task import GroundAction, GroundTask, TimedInitialLiteral

logger = logging.getLogger(__name__)


class UPTaskBuilder:
    def __init__(self, problem):
        kind = problem.kind
        if (kind.has_existential_conditions() or kind.has_universal_conditions()
                or kind.has_forall_effects()):
            logger.info("Expanding the quantifiers of %s", problem.name)
            problem = QuantifiersRemover().compile(problem, CompilationKind.QUANTIFIERS_REMOVING).problem
        if any(len(a.parameters) > 0 for a in problem.actions):
            logger.info("Grounding %s with the unified_planning grounder", problem.name)
            problem = Grounder().compile(problem, CompilationKind.GROUNDING).problem
        self.problem = problem

        all_fluents = flatten_list([list(get_all_fluent_exp(problem, f)) for f in problem.fluents])
        self.literal_ids = {}
        self.fluent_ids = {}
        for fe in all_fluents:
            if fe.type.is_bool_type():
                self.literal_ids[fe] = len(self.literal_ids)
            elif fe.type.is_real_type() or fe.type.is_int_type():
                self.fluent_ids[fe] = len(self.fluent_ids)
            else:
                raise UnsupportedConstructError(f"Fluent {fe} has unsupported type {fe.type}")

    def build(self):
        problem = self.problem
        if len(problem.timed_goals) > 0:
            raise UnsupportedConstructError("Timed goals are not supported")

        actions = []
        for action in problem.actions:
            if isinstance(action, InstantaneousAction):
                actions.append(self._instantaneous(action))
            elif isinstance(action, DurativeAction):
                actions.append(self._durative(action))
            else:
                raise UnsupportedConstructError(f"Action {action.name} of kind {type(action).__name__}")

        tils = []
        for timing, effects in problem.timed_effects.items():
            if not timing.is_from_start():
                raise UnsupportedConstructError(f"Timed effect at {timing} is not relative to the plan start")
            effect = ast.EffectList(tuple(self._effect(e) for e in effects))
            tils.append(TimedInitialLiteral(timing.delay, effect, name=f"til@{timing.delay}"))

        initial_literals, initial_fluents = self._initial_state()
        goal = ast.ConjGoal(tuple(self._goal(g) for g in problem.goals))

        return GroundTask(literals=[str(fe) for fe in self.literal_ids],
                          fluents=[str(fe) for fe in self.fluent_ids],
                          actions=actions,
                          goal=goal,
                          initial_literals=frozenset(initial_literals),
                          initial_fluents=initial_fluents,
                          timed_initial_literals=tils,
                          name=problem.name)

    def _initial_state(self):
        explicit = self.problem.explicit_initial_values
        defaults = self.problem.fluents_defaults

        def initial_value(fe):
            if fe in explicit:
                return explicit[fe]
            return defaults.get(fe.fluent())

        initial_literals = set()
        for fe, lit in self.literal_ids.items():
            value = initial_value(fe)
            if value is not None and value.is_true():
                initial_literals.add(lit)

        initial_fluents = {}
        for fe, f in self.fluent_ids.items():
            value = initial_value(fe)
            if value is None:
                logger.debug("Fluent %s has no initial value", fe)
                continue
            initial_fluents[f] = self._number(value)
        return initial_literals, initial_fluents

    # ------------------------------------------------------------------
    # actions
    # ------------------------------------------------------------------

    def _instantaneous(self, action):
        condition = ast.ConjGoal(tuple(self._goal(p) for p in action.preconditions))
        effect = ast.EffectList(tuple(self._effect(e) for e in action.effects))
        return GroundAction(action.name, condition, effect)

    def _durative(self, action):
        interval = action.duration
        lower_op = ast.Comparator.GT if interval.is_left_open() else ast.Comparator.GE
        upper_op = ast.Comparator.LT if interval.is_right_open() else ast.Comparator.LE
        duration = (ast.Comparison(lower_op, ast.DURATION, self._numeric(interval.lower)),
                    ast.Comparison(upper_op, ast.DURATION, self._numeric(interval.upper)))

        conditions = []
        for time_interval, goals in action.conditions.items():
            when = self._interval_spec(action, time_interval)
            for g in goals:
                conditions.append(ast.TimedGoal(when, self._goal(g)))

        effects = []
        for timing, effs in action.effects.items():
            when = self._timing_spec(action, timing)
            for e in effs:
                effects.append(ast.TimedEffect(when, self._effect(e)))

        return GroundAction(action.name, ast.ConjGoal(tuple(conditions)), ast.EffectList(tuple(effects)),
                            durative=True, duration=duration)

    def _timing_spec(self, action, timing):
        if timing.delay != 0:
            raise UnsupportedConstructError(f"Action {action.name} uses the delayed timing {timing}")
        if timing.is_from_start():
            return ast.TimeSpec.AT_START
        return ast.TimeSpec.AT_END

    def _interval_spec(self, action, interval):
        lower = self._timing_spec(action, interval.lower)
        upper = self._timing_spec(action, interval.upper)
        if lower is upper:
            return lower
        if lower is ast.TimeSpec.AT_START and upper is ast.TimeSpec.AT_END:
            return ast.TimeSpec.OVER_ALL
        raise UnsupportedConstructError(f"Action {action.name} has the condition interval {interval}")

    def _effect(self, effect):
        if effect.is_forall():
            raise UnsupportedConstructError(f"Quantified effect {effect} survived grounding")
        fe = effect.fluent
        if fe.type.is_bool_type():
            if effect.kind != EffectKind.ASSIGN or not effect.value.is_bool_constant():
                raise UnsupportedConstructError(f"Boolean effect {effect} must assign a constant")
            result = ast.SimpleEffect(self.literal_ids[fe], effect.value.bool_constant_value())
        else:
            ops = {EffectKind.ASSIGN: ast.AssignOp.ASSIGN,
                   EffectKind.INCREASE: ast.AssignOp.INCREASE,
                   EffectKind.DECREASE: ast.AssignOp.DECREASE}
            if effect.kind not in ops:
                raise UnsupportedConstructError(f"Effect kind {effect.kind} of {effect}")
            result = ast.Assignment(ops[effect.kind], self.fluent_ids[fe], self._numeric(effect.value))
        if effect.is_conditional():
            result = ast.CondEffect(self._goal(effect.condition), result)
        return result

    # ------------------------------------------------------------------
    # expressions
    # ------------------------------------------------------------------

    def _goal(self, node):
        if node.is_fluent_exp():
            return ast.LiteralGoal(self.literal_ids[node])
        elif node.is_bool_constant():
            return ast.Truth(node.bool_constant_value())
        elif node.is_not():
            return ast.NegGoal(self._goal(node.args[0]))
        elif node.is_and():
            return ast.ConjGoal(tuple(self._goal(x) for x in node.args))
        elif node.is_or():
            return ast.DisjGoal(tuple(self._goal(x) for x in node.args))
        elif node.is_implies():
            return ast.ImplyGoal(self._goal(node.args[0]), self._goal(node.args[1]))
        elif node.is_iff():
            lhs, rhs = self._goal(node.args[0]), self._goal(node.args[1])
            return ast.And(ast.ImplyGoal(lhs, rhs), ast.ImplyGoal(rhs, lhs))
        elif node.is_lt():
            return ast.Comparison(ast.Comparator.LT, self._numeric(node.args[0]), self._numeric(node.args[1]))
        elif node.is_le():
            return ast.Comparison(ast.Comparator.LE, self._numeric(node.args[0]), self._numeric(node.args[1]))
        elif node.is_equals():
            return ast.Comparison(ast.Comparator.EQ, self._numeric(node.args[0]), self._numeric(node.args[1]))
        raise UnsupportedConstructError(f"Unsupported condition: {node}")

    def _numeric(self, node):
        if node.is_fluent_exp():
            return ast.FluentTerm(self.fluent_ids[node])
        elif node.is_int_constant():
            return ast.Constant(node.int_constant_value())
        elif node.is_real_constant():
            return ast.Constant(node.real_constant_value())
        elif node.is_plus() or node.is_times():
            op = "+" if node.is_plus() else "*"
            args = [self._numeric(x) for x in node.args]
            result = args[0]
            for arg in args[1:]:
                result = ast.BinaryOp(op, result, arg)
            return result
        elif node.is_minus():
            return ast.BinaryOp("-", self._numeric(node.args[0]), self._numeric(node.args[1]))
        elif node.is_div():
            return ast.BinaryOp("/", self._numeric(node.args[0]), self._numeric(node.args[1]))
        raise UnsupportedConstructError(f"Unsupported numeric expression: {node}")

    def _number(self, node):
        if node.is_int_constant():
            return node.int_constant_value()
        if node.is_real_constant():
            return node.real_constant_value()
        raise UnsupportedConstructError(f"Initial value {node} is not a number")


def load_up_problem(problem):
    """!
    Converts a unified_planning problem into a GroundTask.

    @param problem: a unified_planning Problem, grounded or not
    @returns: the GroundTask the encoder consumes
    """
    return UPTaskBuilder(problem).build()
