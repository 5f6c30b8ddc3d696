from dataclasses import dataclass, replace
from enum import Enum
from fractions import Fraction
from typing import Optional

import z3

from pysmtplan.task.ast import (Assignment, AssignOp, BinaryOp, Comparator, Comparison, CondEffect, ConjGoal,
                                Constant, DisjGoal, EFFECT_NODES, EffectList, ForallEffect, FluentTerm, GOAL_NODES,
                                ImplyGoal, LiteralGoal, NegGoal, NUMERIC_NODES, Quantifier, QuantifiedGoal, SimpleEffect,
                                SpecialSymbol, SpecialValue, TimedEffect, TimedGoal, TimeSpec, Truth, UMinus)
from pysmtplan.exceptions import ModeError, TranslationError, UnknownReferenceError, UnsupportedConstructError


class EncState(Enum):
    GOAL = "goal"
    LITERAL = "literal"
    ACTION_CONDITION = "action-condition"
    ACTION_DURATION = "action-duration"
    ACTION_EFFECT = "action-effect"
    FLOW = "flow"


@dataclass(frozen=True)
class EncodingContext:
    """!
    What the expression being built is for.

    @param state: the mode
    @param layer: the layer fluents and literals are read from
    @param post: read post values instead of pre values
    @param action: the action occurrence, for ?duration
    @param when: the temporal qualifier to keep; None keeps everything
    """
    state: EncState
    layer: int
    post: bool = False
    action: Optional[int] = None
    when: Optional[TimeSpec] = None


def mk_and(args, ctx):
    args = list(args)
    if len(args) == 0:
        return z3.BoolVal(True, ctx=ctx)
    if len(args) == 1:
        return args[0]
    return z3.And(args)


def mk_or(args, ctx):
    args = list(args)
    if len(args) == 0:
        return z3.BoolVal(False, ctx=ctx)
    if len(args) == 1:
        return args[0]
    return z3.Or(args)


def mk_sum(args, ctx):
    args = list(args)
    if len(args) == 0:
        return z3.RealVal(0, ctx=ctx)
    if len(args) == 1:
        return args[0]
    return z3.Sum(args)


def _contains_timed(node):
    if isinstance(node, TimedGoal):
        return True
    if isinstance(node, (ConjGoal, DisjGoal)):
        return any(_contains_timed(x) for x in node.args)
    if isinstance(node, QuantifiedGoal):
        return any(_contains_timed(x) for x in node.instances)
    if isinstance(node, NegGoal):
        return _contains_timed(node.arg)
    if isinstance(node, ImplyGoal):
        return _contains_timed(node.lhs) or _contains_timed(node.rhs)
    return False


class ExpressionTranslator:
    """!
    Translates syntax trees into z3 expressions.

    Each handler obtains the translations of its children as return values
    and combines them. What a literal or fluent reference means depends on the
    EncodingContext passed down: which layer, pre or post value, and which
    action occurrence ?duration refers to. There is one entry point per mode.
    """

    def __init__(self, variables, ctx):
        self.vars = variables
        self.ctx = ctx

    # ------------------------------------------------------------------
    # entry points
    # ------------------------------------------------------------------

    def translate_goal(self, node, horizon):
        return self.translate(node, EncodingContext(EncState.GOAL, horizon, post=True))

    def translate_literal(self, lit, h, post=False):
        return self.translate(LiteralGoal(lit), EncodingContext(EncState.LITERAL, h, post=post))

    def translate_condition(self, node, action, h, when=None, post=False):
        """!
        Translates the part of an action condition qualified by ``when``.

        Untimed conditions are start conditions. With ``when=None`` (the
        instantaneous case) the whole condition is kept and timed goals are
        rejected.
        """
        c = EncodingContext(EncState.ACTION_CONDITION, h, post=post, action=action, when=when)
        if when is None:
            return self.translate(node, c)
        return self._filter_timed(node, c)

    def translate_duration(self, node, action, h):
        return self.translate(node, EncodingContext(EncState.ACTION_DURATION, h, action=action))

    def translate_effect(self, node, action, h, when=None):
        return self.translate(node, EncodingContext(EncState.ACTION_EFFECT, h, action=action, when=when))

    def translate_flow(self, expr, h, sign=1):
        """Contribution of a rate * #t flow over the interval after layer h."""
        value = self.translate(expr, EncodingContext(EncState.FLOW, h, post=True))
        return value if sign > 0 else -value

    def translate_flow_condition(self, node, h):
        return self.translate(node, EncodingContext(EncState.FLOW, h, post=True))

    def _literal(self, lit, h, post=False):
        if not 0 <= lit < len(self.vars.literal_names):
            raise UnknownReferenceError(f"Literal {lit} outside [0, {len(self.vars.literal_names)})")
        return self.vars.literal(lit, h, post=post)

    def _fluent(self, f, h, post=False):
        if not 0 <= f < len(self.vars.fluent_names):
            raise UnknownReferenceError(f"Fluent {f} outside [0, {len(self.vars.fluent_names)})")
        return self.vars.fluent(f, h, post=post)

    # ------------------------------------------------------------------
    # dispatch
    # ------------------------------------------------------------------

    def translate(self, node, c):
        if isinstance(node, GOAL_NODES):
            return self._goal(node, c)
        if isinstance(node, NUMERIC_NODES):
            return self._numeric(node, c)
        if isinstance(node, EFFECT_NODES):
            if c.state is not EncState.ACTION_EFFECT:
                raise ModeError(f"Effect node {type(node).__name__} visited in {c.state.value} mode")
            return self._effect(node, c)
        raise TranslationError(f"Unsupported node: {node!r} of type {type(node).__name__}")

    def _filter_timed(self, node, c):
        """Keeps only the timed goals matching ``c.when``; untimed parts belong to the start."""
        if not _contains_timed(node):
            if c.when is TimeSpec.AT_START:
                return self.translate(node, replace(c, when=None))
            return z3.BoolVal(True, ctx=self.ctx)
        if isinstance(node, TimedGoal):
            if node.when is c.when:
                return self.translate(node.arg, replace(c, when=None))
            return z3.BoolVal(True, ctx=self.ctx)
        if isinstance(node, ConjGoal):
            return mk_and([self._filter_timed(x, c) for x in node.args], self.ctx)
        if isinstance(node, QuantifiedGoal) and node.quantifier is Quantifier.FORALL:
            return mk_and([self._filter_timed(x, c) for x in node.instances], self.ctx)
        raise UnsupportedConstructError(
            f"Timed goals may only appear in conjunctions, found one under {type(node).__name__}")

    # ------------------------------------------------------------------
    # goals
    # ------------------------------------------------------------------

    def _goal(self, node, c):
        if isinstance(node, LiteralGoal):
            return self._literal(node.literal, c.layer, post=c.post)
        elif isinstance(node, Truth):
            return z3.BoolVal(node.value, ctx=self.ctx)
        elif isinstance(node, NegGoal):
            return z3.Not(self.translate(node.arg, c), ctx=self.ctx)
        elif isinstance(node, ConjGoal):
            return mk_and([self.translate(x, c) for x in node.args], self.ctx)
        elif isinstance(node, DisjGoal):
            return mk_or([self.translate(x, c) for x in node.args], self.ctx)
        elif isinstance(node, ImplyGoal):
            return z3.Implies(self.translate(node.lhs, c), self.translate(node.rhs, c), ctx=self.ctx)
        elif isinstance(node, QuantifiedGoal):
            parts = [self.translate(x, c) for x in node.instances]
            if node.quantifier is Quantifier.FORALL:
                return mk_and(parts, self.ctx)
            return mk_or(parts, self.ctx)
        elif isinstance(node, TimedGoal):
            if c.state is EncState.ACTION_EFFECT:
                # conditions of conditional effects are read at the effect's instant
                return self.translate(node.arg, c)
            raise ModeError(f"Timed goal '{node.when.value}' visited in {c.state.value} mode")
        elif isinstance(node, Comparison):
            lhs = self.translate(node.lhs, c)
            rhs = self.translate(node.rhs, c)
            if node.op is Comparator.LT:
                return lhs < rhs
            elif node.op is Comparator.LE:
                return lhs <= rhs
            elif node.op is Comparator.EQ:
                return lhs == rhs
            elif node.op is Comparator.GE:
                return lhs >= rhs
            elif node.op is Comparator.GT:
                return lhs > rhs
        raise TranslationError(f"Unsupported goal: {node!r}")

    # ------------------------------------------------------------------
    # arithmetic
    # ------------------------------------------------------------------

    def _numeric(self, node, c):
        if isinstance(node, Constant):
            return self.constant(node.value)
        elif isinstance(node, FluentTerm):
            return self._fluent(node.fluent, c.layer, post=c.post)
        elif isinstance(node, SpecialValue):
            if node.symbol is SpecialSymbol.DURATION:
                if c.action is None or c.state not in (EncState.ACTION_DURATION, EncState.ACTION_EFFECT,
                                                       EncState.ACTION_CONDITION):
                    raise ModeError(f"?duration visited in {c.state.value} mode")
                return self.vars.duration(c.action, c.layer)
            if c.state is not EncState.FLOW:
                raise ModeError(f"#t visited in {c.state.value} mode")
            return self.vars.layer_duration(c.layer)
        elif isinstance(node, UMinus):
            return -self.translate(node.arg, c)
        elif isinstance(node, BinaryOp):
            lhs = self.translate(node.lhs, c)
            rhs = self.translate(node.rhs, c)
            if node.op == "+":
                return lhs + rhs
            elif node.op == "-":
                return lhs - rhs
            elif node.op == "*":
                return lhs * rhs
            elif node.op == "/":
                return lhs / rhs
        raise TranslationError(f"Unsupported expression: {node!r}")

    def constant(self, value):
        if isinstance(value, bool):
            raise TranslationError(f"Boolean constant {value} in a numeric expression")
        if isinstance(value, int):
            return z3.RealVal(value, ctx=self.ctx)
        if isinstance(value, float):
            value = Fraction(repr(value))
        if isinstance(value, Fraction):
            return z3.RealVal(f"{value.numerator}/{value.denominator}", ctx=self.ctx)
        raise TranslationError(f"Unsupported constant {value!r} of type {type(value).__name__}")

    # ------------------------------------------------------------------
    # effects
    # ------------------------------------------------------------------

    def _effect(self, node, c):
        if isinstance(node, SimpleEffect):
            var = self._literal(node.literal, c.layer, post=True)
            return var if node.add else z3.Not(var, ctx=self.ctx)
        elif isinstance(node, Assignment):
            target = self._fluent(node.fluent, c.layer, post=True)
            current = self._fluent(node.fluent, c.layer)
            value = self.translate(node.expr, c)
            if node.op is AssignOp.ASSIGN:
                return target == value
            elif node.op is AssignOp.INCREASE:
                return target == current + value
            elif node.op is AssignOp.DECREASE:
                return target == current - value
            elif node.op is AssignOp.SCALE_UP:
                return target == current * value
            elif node.op is AssignOp.SCALE_DOWN:
                return target == current / value
        elif isinstance(node, CondEffect):
            return z3.Implies(self.translate(node.condition, c), self.translate(node.effect, c), ctx=self.ctx)
        elif isinstance(node, (EffectList, ForallEffect)):
            parts = node.effects if isinstance(node, EffectList) else node.instances
            return mk_and([self.translate(x, c) for x in parts], self.ctx)
        elif isinstance(node, TimedEffect):
            if node.when is TimeSpec.CONTINUOUS or (c.when is not None and node.when is not c.when):
                return z3.BoolVal(True, ctx=self.ctx)
            return self.translate(node.effect, replace(c, when=None))
        raise TranslationError(f"Unsupported effect: {node!r}")
