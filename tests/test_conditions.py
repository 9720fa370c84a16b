"""Tests for the safe condition evaluator."""

import pytest

from stepwise.executor.conditions import ConditionError, SafeConditionEvaluator
from stepwise.executor.context import ExecutionContext


@pytest.fixture
def evaluator():
    return SafeConditionEvaluator()


@pytest.fixture
def ctx():
    c = ExecutionContext()
    c.commit(1, 15)
    c.commit(2, {"status": "ok", "items": [1, 2, 3], "flag": False})
    c.set_variable("threshold", 10)
    return c


class TestEvaluate:
    @pytest.mark.parametrize("expr, expected", [
        ("step.1.result > 10", True),
        ("step.1.result <= 10", False),
        ("step.1.result === 15", True),
        ("step.1.result !== 15", False),
        ('step.2.status == "ok"', True),
        ('step.2.status === "ok" && step.1.result > 20', False),
        ('step.2.status === "bad" || step.1.result > 10', True),
        ("!step.2.flag", True),
        ("step.2.flag == false", True),
        ("step.2.items.length == 3", True),
        ("step.2.items[0] + step.2.items[2] == 4", True),
        ("step.1.result > threshold", True),
        ("3 in step.2.items", True),
    ])
    def test_expressions(self, evaluator, ctx, expr, expected):
        assert evaluator.evaluate(expr, ctx) is expected

    def test_string_literal_is_not_rewritten(self, evaluator, ctx):
        ctx2 = ExecutionContext()
        ctx2.commit(1, "a && b")
        assert evaluator.evaluate('step.1.result == "a && b"', ctx2) is True

    def test_missing_reference_is_false(self, evaluator, ctx):
        assert evaluator.evaluate("step.2.missing > 1", ctx) is False

    def test_type_error_is_false(self, evaluator, ctx):
        assert evaluator.evaluate('step.2.status > 3', ctx) is False

    def test_unknown_name_is_false(self, evaluator, ctx):
        assert evaluator.evaluate("nobody > 1", ctx) is False


class TestRejectedSyntax:
    @pytest.mark.parametrize("expr", [
        "__import__('os').system('echo hi')",
        "step.1.result if true else 0",
        "[x for x in step.2.items]",
        "lambda: 1",
        "step.1.result >",
    ])
    def test_raises(self, evaluator, ctx, expr):
        with pytest.raises(ConditionError):
            evaluator.evaluate(expr, ctx)
