"""Condition evaluation for conditional steps.

Expressions are written the way a planning model tends to write them,
``step.2.count > 10 && step.1.status === "ok"``, and evaluated by walking
a Python AST over a small whitelist of node types. Nothing is ever passed
to ``eval``.
"""

from __future__ import annotations

import ast
import operator
import re
from abc import ABC, abstractmethod
from typing import Any

from stepwise.executor.context import UNRESOLVED, ExecutionContext
from stepwise.utils.logging import get_logger

log = get_logger(__name__)

_STRING_RE = re.compile(r"""("(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')""")
_STEP_REF_RE = re.compile(r"\bstep\.(\d+)((?:\.[A-Za-z_]\w*|\.\d+|\[\d+\])*)")
_TOKEN_MAP = [
    (re.compile(r"==="), "=="),
    (re.compile(r"!=="), "!="),
    (re.compile(r"&&"), " and "),
    (re.compile(r"\|\|"), " or "),
    (re.compile(r"!(?!=)"), " not "),
    (re.compile(r"\btrue\b"), "True"),
    (re.compile(r"\bfalse\b"), "False"),
    (re.compile(r"\b(?:null|undefined)\b"), "None"),
]

_BIN_OPS: dict[type, Any] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Mod: operator.mod,
}
_CMP_OPS: dict[type, Any] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
}


class ConditionError(ValueError):
    """The expression uses syntax outside the supported subset."""


class ConditionEvaluator(ABC):
    @abstractmethod
    def evaluate(self, condition: str, context: ExecutionContext) -> bool: ...


class SafeConditionEvaluator(ConditionEvaluator):
    """Evaluates comparisons and boolean logic over committed step outputs.

    Supported: literals, ``step.N[.path]`` references, condition output
    variables, arithmetic, comparisons, ``in``, boolean operators, list
    indexing and ``.length``. Runtime type errors (comparing a string to a
    number, a missing reference) evaluate to ``False``; unsupported syntax
    raises :class:`ConditionError`.
    """

    def evaluate(self, condition: str, context: ExecutionContext) -> bool:
        names: dict[str, Any] = dict(context.variables)
        tree = self._compile(condition, names, context)
        try:
            value = self._eval(tree.body, names)
        except (TypeError, ZeroDivisionError, KeyError, IndexError) as e:
            log.warning("condition_evaluation_failed", condition=condition, error=str(e))
            return False
        return bool(value) if value is not UNRESOLVED else False

    def _compile(
        self,
        condition: str,
        names: dict[str, Any],
        context: ExecutionContext | None = None,
    ) -> ast.Expression:
        parts = _STRING_RE.split(condition)
        counter = 0

        def substitute(m: re.Match[str]) -> str:
            nonlocal counter
            path = m.group(2).replace("[", ".").replace("]", "")
            suffix = ""
            if path.endswith(".length"):
                path, suffix = path[: -len(".length")], ".length"
            placeholder = f"__ref{counter}"
            counter += 1
            if context is not None:
                names[placeholder] = context.resolve_reference(f"step.{m.group(1)}{path or '.result'}")
            else:
                names[placeholder] = None
            return placeholder + suffix

        rewritten: list[str] = []
        for i, part in enumerate(parts):
            # Odd indexes are the quoted string literals captured by the split
            if i % 2:
                rewritten.append(part)
                continue
            part = _STEP_REF_RE.sub(substitute, part)
            for pattern, replacement in _TOKEN_MAP:
                part = pattern.sub(replacement, part)
            rewritten.append(part)

        source = "".join(rewritten).strip()
        try:
            tree = ast.parse(source, mode="eval")
        except SyntaxError as e:
            raise ConditionError(f"Invalid condition expression: {condition!r} ({e.msg})") from None
        for node in ast.walk(tree):
            if not isinstance(node, _ALLOWED_NODES):
                raise ConditionError(
                    f"Unsupported construct {type(node).__name__} in condition: {condition!r}"
                )
        return tree

    def _eval(self, node: ast.AST, names: dict[str, Any]) -> Any:
        if isinstance(node, ast.Constant):
            return node.value
        if isinstance(node, ast.Name):
            if node.id not in names:
                raise KeyError(node.id)
            return names[node.id]
        if isinstance(node, (ast.List, ast.Tuple)):
            return [self._eval(e, names) for e in node.elts]
        if isinstance(node, ast.BoolOp):
            if isinstance(node.op, ast.And):
                result: Any = True
                for value in node.values:
                    result = self._eval(value, names)
                    if not result:
                        return result
                return result
            result = False
            for value in node.values:
                result = self._eval(value, names)
                if result:
                    return result
            return result
        if isinstance(node, ast.UnaryOp):
            operand = self._eval(node.operand, names)
            if isinstance(node.op, ast.Not):
                return not operand
            if isinstance(node.op, ast.USub):
                return -operand
            return +operand
        if isinstance(node, ast.BinOp):
            return _BIN_OPS[type(node.op)](self._eval(node.left, names), self._eval(node.right, names))
        if isinstance(node, ast.Compare):
            left = self._eval(node.left, names)
            for op, comparator in zip(node.ops, node.comparators):
                right = self._eval(comparator, names)
                if left is UNRESOLVED or right is UNRESOLVED:
                    return False
                if not _CMP_OPS[type(op)](left, right):
                    return False
                left = right
            return True
        if isinstance(node, ast.Subscript):
            container = self._eval(node.value, names)
            return container[self._eval(node.slice, names)]
        if isinstance(node, ast.Attribute):
            target = self._eval(node.value, names)
            if node.attr == "length" and isinstance(target, (str, list, dict)):
                return len(target)
            if isinstance(target, dict):
                return target[node.attr]
            raise TypeError(f"cannot read '{node.attr}' of {type(target).__name__}")
        raise ConditionError(f"Unsupported construct {type(node).__name__}")


_ALLOWED_NODES = (
    ast.Expression,
    ast.Constant,
    ast.Name,
    ast.Load,
    ast.List,
    ast.Tuple,
    ast.BoolOp,
    ast.And,
    ast.Or,
    ast.UnaryOp,
    ast.Not,
    ast.USub,
    ast.UAdd,
    ast.BinOp,
    *_BIN_OPS,
    ast.Compare,
    *_CMP_OPS,
    ast.Subscript,
    ast.Attribute,
)
