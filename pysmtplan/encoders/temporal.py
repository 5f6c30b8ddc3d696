import logging

from collections import defaultdict

import z3

from pysmtplan.config import PlannerConfig
from pysmtplan.encoders.base import Encoder
from pysmtplan.encoders.effects import EffectIndex, Instant
from pysmtplan.encoders.translator import ExpressionTranslator, mk_and, mk_or, mk_sum
from pysmtplan.encoders.variables import VariableAllocator
from pysmtplan.exceptions import DurationBoundsError, HorizonLimitError, SessionError
from pysmtplan.planner.plan.smt_temporal_plan import SMTTemporalPlan
from pysmtplan.planner.session import SolverSession
from pysmtplan.task.ast import AssignOp, Comparator, Comparison, Constant, SpecialSymbol, SpecialValue, TimeSpec
from pysmtplan.task.task import GroundAction

logger = logging.getLogger(__name__)


def _static_duration_bounds(action):
    """!
    Bounds of ``?duration`` stated against constants, e.g. (>= ?duration 5).

    @returns: (lower, lower_strict, upper, upper_strict); missing bounds are None
    """
    lower, upper = None, None
    lower_strict, upper_strict = False, False
    for constraint in action.duration:
        if not isinstance(constraint, Comparison):
            continue
        lhs, rhs, op = constraint.lhs, constraint.rhs, constraint.op
        if isinstance(rhs, SpecialValue) and isinstance(lhs, Constant):
            # mirror (op c ?duration) into (op' ?duration c)
            lhs, rhs = rhs, lhs
            op = {Comparator.LT: Comparator.GT, Comparator.LE: Comparator.GE,
                  Comparator.GT: Comparator.LT, Comparator.GE: Comparator.LE}.get(op, op)
        if not (isinstance(lhs, SpecialValue) and lhs.symbol is SpecialSymbol.DURATION
                and isinstance(rhs, Constant)):
            continue
        value, strict = rhs.value, op in (Comparator.GT, Comparator.LT)
        if op in (Comparator.GE, Comparator.GT, Comparator.EQ):
            if lower is None or value > lower:
                lower, lower_strict = value, strict
            elif value == lower:
                lower_strict = lower_strict or strict
        if op in (Comparator.LE, Comparator.LT, Comparator.EQ):
            if upper is None or value < upper:
                upper, upper_strict = value, strict
            elif value == upper:
                upper_strict = upper_strict or strict
    return lower, lower_strict, upper, upper_strict


class EncoderTemporal(Encoder):
    """!
    Layered SMT encoding of a grounded temporal and numeric task.

    Every layer h is a happening at time t_h. Literals and fluents have a pre
    value (before the happening) and a post value (after it). Actions start
    and end at happenings; durative actions run over the intervals between
    them, where their continuous effects change fluents. Happenings occur at
    layers 0..H-1, layer H is quiescent and carries the goal.

    The encoding is incremental. The constraints of each layer only mention
    that layer and earlier ones, and are asserted once. The goal and the
    constraints that close the plan at layer H sit in a solver scope that is
    replaced whenever the bound changes.
    """

    def __init__(self, task, config=None, session=None, effect_index=None):
        self.task = task
        self.config = config or PlannerConfig()
        self.session = session or SolverSession(self.config)
        self.ctx = self.session.ctx

        # timed initial literals become instantaneous pseudo actions after
        # the ground actions
        self.actors = list(task.actions)
        self.til_times = {}
        for i, til in enumerate(task.timed_initial_literals):
            self.til_times[len(self.actors)] = til.time
            self.actors.append(GroundAction(til.name or f"til-{i}@{til.time}", effect=til.effect))

        for action in task.actions:
            self._check_duration_bounds(action)

        self.effects = effect_index or EffectIndex(self.actors, task.num_literals, task.num_fluents)
        self.vars = VariableAllocator(self.ctx, task.literals, task.fluents,
                                      [a.name for a in self.actors], self.config.max_horizon, self.effects)
        self.translator = ExpressionTranslator(self.vars, self.ctx)

        # formula[h] = {part: [constraints]}, permanent constraints of layer h
        self.formula = defaultdict(dict)
        self.asserted_layers = 0
        self.horizon = None

    def __iter__(self):
        return iter(self.task.actions)

    def __len__(self):
        return len(self.formula)

    def _check_duration_bounds(self, action):
        if not action.durative:
            if action.duration:
                raise DurationBoundsError(f"Instantaneous action {action.name} has duration constraints")
            return
        lower, lower_strict, upper, upper_strict = _static_duration_bounds(action)
        if lower is not None and upper is not None:
            if lower > upper or (lower == upper and (lower_strict or upper_strict)):
                raise DurationBoundsError(
                    f"Action {action.name}: duration bounds {lower} and {upper} leave no admissible value")
        if upper is not None and (upper < 0 or (upper == 0 and upper_strict)):
            raise DurationBoundsError(
                f"Action {action.name}: maximum duration {upper} admits no non-negative value")

    def is_til(self, a):
        return a in self.til_times

    # ------------------------------------------------------------------
    # encode / solve
    # ------------------------------------------------------------------

    def encode(self, horizon):
        """!
        Builds the formula for the given bound and asserts it in the session.

        @param horizon: index of the final layer
        @returns: True when the formula is asserted, False when the bound
                  exceeds the configured ceiling
        """
        try:
            self.vars.allocate(horizon)
        except HorizonLimitError as e:
            logger.warning("Not encoding: %s", e)
            return False

        # build everything first so a structural error leaves the session untouched
        new_layers = {}
        for h in range(len(self.formula), horizon + 1):
            new_layers[h] = self.encode_layer(h)
        final = self.encode_final_layer(horizon)
        self.formula.update(new_layers)

        if horizon + 1 < self.asserted_layers:
            logger.debug("Bound shrank from %d to %d, resetting the session", self.horizon, horizon)
            self.session.reset()
            self.asserted_layers = 0
        elif self.horizon is not None:
            self.session.pop()

        for h in range(self.asserted_layers, horizon + 1):
            for part, constraints in self.formula[h].items():
                self.session.add(constraints)
        self.asserted_layers = horizon + 1

        self.session.push()
        self.session.add(final)
        self.horizon = horizon

        logger.info("Encoded horizon %d: %d assertions", horizon, len(self.session))
        return True

    def solve(self):
        if self.horizon is None:
            raise SessionError("solve() called before encode()")
        return self.session.solve()

    def model(self):
        return self.session.model()

    def extract_plan(self, model=None, horizon=None):
        """!
        Reads the plan of a model of this encoding.

        @returns: an instance of SMTTemporalPlan
        """
        if model is None:
            model = self.model()
        if horizon is None:
            horizon = self.horizon
        return SMTTemporalPlan.from_model(self, model, horizon)

    # ------------------------------------------------------------------
    # one layer
    # ------------------------------------------------------------------

    def encode_layer(self, h):
        """!
        Builds the permanent constraints of layer h, including the
        transition from layer h-1.

        @returns: dict part -> list of constraints
        """
        formula = dict()
        formula['header'] = self.encode_header(h)
        if h == 0:
            formula['initial'] = self.encode_initial_state()
        formula['timings'] = self.encode_timings(h)
        formula['conditions'] = self.encode_conditions(h)
        formula['effects'] = self.encode_effects(h)
        formula['literal_support'] = self.encode_literal_support(h)
        formula['function_support'] = self.encode_function_support(h)
        if h > 0:
            formula['flows'] = self.encode_function_flows(h)
        if self.til_times:
            formula['tils'] = self.encode_tils(h)
        if self.config.sequential:
            formula['sequential'] = self.encode_sequential(h)

        logger.debug("Layer %d: %s", h, ", ".join(f"{k}={len(v)}" for k, v in formula.items()))
        return formula

    def encode_header(self, h):
        """Times start at zero and never decrease."""
        if h == 0:
            return [self.vars.time(0) == 0]
        d = self.vars.layer_duration(h - 1)
        return [d == self.vars.time(h) - self.vars.time(h - 1), d >= 0]

    def encode_initial_state(self):
        """!
        Fixes the pre values of layer 0. Literals not listed as initially
        true are false. Fluents without an initial value are left free.
        """
        initial = []
        for lit in range(self.task.num_literals):
            var = self.vars.literal(lit, 0)
            initial.append(var if lit in self.task.initial_literals else z3.Not(var, ctx=self.ctx))
        for f, value in self.task.initial_fluents.items():
            initial.append(self.vars.fluent(f, 0) == self.translator.constant(value))
        return initial

    def encode_timings(self, h):
        timings = []
        for a, action in enumerate(self.actors):
            sta = self.vars.start(a, h)
            end = self.vars.end(a, h)
            run = self.vars.running(a, h)
            dur = self.vars.duration(a, h)

            if not action.durative:
                timings.append(sta == end)
                timings.append(z3.Not(run, ctx=self.ctx))
                timings.append(dur == 0)
                continue

            prev_run = self.vars.running(a, h - 1) if h > 0 else z3.BoolVal(False, ctx=self.ctx)
            timings.append(run == z3.Or(sta, z3.And(prev_run, z3.Not(end))))
            timings.append(z3.Implies(end, prev_run, ctx=self.ctx))
            timings.append(z3.Implies(sta, z3.Not(prev_run), ctx=self.ctx))
            timings.append(z3.Implies(sta, z3.Not(end), ctx=self.ctx))
            timings.append(dur >= 0)

            bounds = mk_and([self.translator.translate_duration(c, a, h) for c in action.duration], self.ctx)
            timings.append(z3.Implies(sta, bounds, ctx=self.ctx))

            stt = self.vars.start_time(a, h)
            timings.append(z3.Implies(sta, stt == self.vars.time(h), ctx=self.ctx))
            if h > 0:
                # duration and start time of a running occurrence are carried to its end
                carried = z3.And(prev_run, z3.Not(sta))
                timings.append(z3.Implies(carried, dur == self.vars.duration(a, h - 1), ctx=self.ctx))
                timings.append(z3.Implies(carried, stt == self.vars.start_time(a, h - 1), ctx=self.ctx))

                elapsed = self.vars.time(h) - self.vars.start_time(a, h - 1)
                timings.append(z3.Implies(end, elapsed == self.vars.duration(a, h - 1), ctx=self.ctx))
        return timings

    def encode_conditions(self, h):
        conditions = []

        def _add(trigger, condition):
            if not z3.is_true(condition):
                conditions.append(z3.Implies(trigger, condition, ctx=self.ctx))

        for a, action in enumerate(self.actors):
            if self.is_til(a):
                continue
            sta = self.vars.start(a, h)
            if not action.durative:
                _add(sta, self.translator.translate_condition(action.condition, a, h))
                continue

            _add(sta, self.translator.translate_condition(action.condition, a, h, TimeSpec.AT_START))
            _add(self.vars.end(a, h),
                 self.translator.translate_condition(action.condition, a, h, TimeSpec.AT_END))
            # invariants hold at both ends of every interval the action runs over
            _add(self.vars.running(a, h),
                 self.translator.translate_condition(action.condition, a, h, TimeSpec.OVER_ALL, post=True))
            if h > 0:
                _add(self.vars.running(a, h - 1),
                     self.translator.translate_condition(action.condition, a, h, TimeSpec.OVER_ALL))
        return conditions

    def _trigger(self, record, h):
        return self.vars.start(record.actor, h) if record.instant is Instant.START else self.vars.end(record.actor, h)

    def _active(self, record, h):
        """The record's actor happens at h and the effect's conditions hold."""
        parts = [self._trigger(record, h)]
        parts.extend(self.translator.translate_effect(c, record.actor, h) for c in record.conditions)
        return mk_and(parts, self.ctx)

    def encode_effects(self, h):
        """!
        Actions imply their numeric effects: targets at post(h), reads at
        pre(h). Literal effects are settled by the literal support axioms.

        Increases and decreases of one fluent by the same happening are
        summed into a single update.
        """
        effects = []
        zero = z3.RealVal(0, ctx=self.ctx)
        for a in range(len(self.actors)):
            for instant in Instant:
                for f, records in self.effects.assignments_of(a, instant).items():
                    if len(records) == 1:
                        record = records[0]
                        effect = self.translator.translate_effect(record.node, a, h)
                        effects.append(z3.Implies(self._active(record, h), effect, ctx=self.ctx))
                        continue
                    terms = []
                    for record in records:
                        amount = self.translator.translate_effect(record.node.expr, a, h)
                        if record.node.op is AssignOp.DECREASE:
                            amount = -amount
                        holds = mk_and([self.translator.translate_effect(c, a, h) for c in record.conditions],
                                       self.ctx)
                        terms.append(z3.If(holds, amount, zero, ctx=self.ctx))
                    total = self.vars.fluent(f, h) + mk_sum(terms, self.ctx)
                    effects.append(z3.Implies(self._trigger(records[0], h),
                                              self.vars.fluent(f, h, post=True) == total, ctx=self.ctx))
        return effects

    def encode_literal_support(self, h):
        """!
        Frame axioms for literals:
            post(h) = adds(h) or (pre(h) and not dels(h))
            pre(h) = post(h-1)
        where adds and dels only range over the effect index entries of the
        literal.
        """
        support = []
        for lit in range(self.task.num_literals):
            pre = self.vars.literal(lit, h)
            post = self.vars.literal(lit, h, post=True)

            if not self.effects.touches_literal(lit):
                support.append(post == pre)
            else:
                adds = [self._active(r, h) for i in Instant for r in self.effects.adders(lit, i)]
                dels = [self._active(r, h) for i in Instant for r in self.effects.deleters(lit, i)]
                kept = z3.And(pre, z3.Not(mk_or(dels, self.ctx)))
                support.append(post == z3.Or(mk_or(adds, self.ctx), kept))

            if h > 0:
                support.append(pre == self.vars.literal(lit, h - 1, post=True))
        return support

    def encode_function_support(self, h):
        """!
        Frame axioms for fluents at a happening: a fluent keeps its value
        unless an assignment to it is active, and at most one actor assigns a
        given fluent at a time.
        """
        support = []
        for f in range(self.task.num_fluents):
            pre = self.vars.fluent(f, h)
            post = self.vars.fluent(f, h, post=True)

            if not self.effects.touches_fluent(f):
                support.append(post == pre)
                continue

            records = [r for i in Instant for r in self.effects.assigners(f, i)]
            active = [self._active(r, h) for r in records]
            support.append(z3.Implies(z3.Not(mk_or(active, self.ctx)), post == pre, ctx=self.ctx))
            for i in range(len(records)):
                for j in range(i + 1, len(records)):
                    if records[i].actor != records[j].actor:
                        support.append(z3.Not(z3.And(active[i], active[j])))
        return support

    def encode_function_flows(self, h):
        """!
        Continuous change over the interval between layer h-1 and h:
            pre(h) = post(h-1) + sum of rate_a * d_{h-1} over running a
        """
        flows = []
        zero = z3.RealVal(0, ctx=self.ctx)
        for f in range(self.task.num_fluents):
            contributions = []
            for record in self.effects.flows(f):
                running = [self.vars.running(record.actor, h - 1)]
                running.extend(self.translator.translate_flow_condition(c, h - 1) for c in record.conditions)
                amount = self.translator.translate_flow(record.expr, h - 1, record.sign)
                contributions.append(z3.If(mk_and(running, self.ctx), amount, zero, ctx=self.ctx))
            flows.append(self.vars.fluent(f, h) == self.vars.fluent(f, h - 1, post=True)
                         + mk_sum(contributions, self.ctx))
        return flows

    def encode_tils(self, h):
        """Timed initial literals happen at their time, at most once."""
        tils = []
        for a, at_time in self.til_times.items():
            sta = self.vars.start(a, h)
            tils.append(z3.Implies(sta, self.vars.time(h) == self.translator.constant(at_time), ctx=self.ctx))
            earlier = [self.vars.start(a, k) for k in range(h)]
            if earlier:
                tils.append(z3.Implies(sta, z3.Not(mk_or(earlier, self.ctx)), ctx=self.ctx))
        return tils

    def encode_sequential(self, h):
        """At most one action starts per layer."""
        starts = [self.vars.start(a, h) for a in range(len(self.actors)) if not self.is_til(a)]
        if len(starts) < 2:
            return []
        return [z3.AtMost(*starts, 1)]

    # ------------------------------------------------------------------
    # final layer
    # ------------------------------------------------------------------

    def encode_goal_state(self, horizon):
        return [self.translator.translate_goal(self.task.goal, horizon)]

    def encode_final_layer(self, horizon):
        """!
        Constraints that only hold while ``horizon`` is the final layer: the
        goal, no happening at the final layer (so every started action has
        ended), and every timed initial literal either happened or is due
        after the plan.
        """
        final = self.encode_goal_state(horizon)
        for a in range(len(self.actors)):
            final.append(z3.Not(self.vars.start(a, horizon), ctx=self.ctx))
            final.append(z3.Not(self.vars.end(a, horizon), ctx=self.ctx))
            final.append(z3.Not(self.vars.running(a, horizon), ctx=self.ctx))
        for a, at_time in self.til_times.items():
            happened = mk_or([self.vars.start(a, k) for k in range(horizon)], self.ctx)
            pending = self.vars.time(horizon) < self.translator.constant(at_time)
            final.append(z3.Or(happened, pending))
        return final
