"""Compile and evaluate device selector expressions.

Selectors are written in a subset of CEL::

    device.driverName == "gpu.example.com" &&
    device.intAttributes["memory.gpu.example.com"] >= 16 &&
    device.versionAttributes["driver.gpu.example.com"].isGreaterThan(semver("1.2.0"))

The text is parsed with a :mod:`lark` LALR grammar and the tree is checked
against a closed set of identifiers, functions, methods and macros
(``has``, ``all``, ``exists``, ``exists_one``, ``map`` and ``filter``).
The result is a tree of closures that is immutable and safe to share between
threads. Compilation is cached by expression text.

Regular expressions follow RE2 syntax and run in linear time.

Evaluation never raises: type mismatches and other runtime errors make the
predicate false for that device.
"""

from __future__ import annotations

import functools
import logging
import operator
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable

import re2
from lark import Lark, Tree
from lark.exceptions import UnexpectedCharacters, UnexpectedEOF, UnexpectedInput, UnexpectedToken

from device_alloc.core.attributes import Quantity, Version
from device_alloc.core.errors import SelectorCompileError

from .bindings import DEVICE_MEMBERS, DeviceBindings

logger = logging.getLogger(__name__)

_GRAMMAR = r"""
?start: expr

?expr: or_expr
     | or_expr "?" or_expr ":" expr         -> ternary

?or_expr: and_expr
        | or_expr "||" and_expr             -> or_

?and_expr: relation
         | and_expr "&&" relation           -> and_

?relation: addition
         | relation "<" addition            -> lt
         | relation "<=" addition           -> le
         | relation ">" addition            -> gt
         | relation ">=" addition           -> ge
         | relation "==" addition           -> eq
         | relation "!=" addition           -> ne
         | relation "in" addition           -> in_

?addition: multiplication
         | addition "+" multiplication      -> add
         | addition "-" multiplication      -> sub

?multiplication: unary
               | multiplication "*" unary   -> mul
               | multiplication "/" unary   -> div
               | multiplication "%" unary   -> mod

?unary: member
      | "!" unary                           -> not_
      | "-" unary                           -> neg

?member: primary
       | member "." IDENT                   -> select
       | member "." IDENT "(" [args] ")"    -> method
       | member "[" expr "]"                -> index

?primary: IDENT                             -> ident
        | IDENT "(" [args] ")"              -> call
        | "(" expr ")"
        | "[" [args] "]"                    -> list_
        | "{" [entries] "}"                 -> map_
        | literal

args: expr ("," expr)*
entries: entry ("," entry)*
entry: expr ":" expr

?literal: "true"                            -> true_
        | "false"                           -> false_
        | "null"                            -> null_
        | INT                               -> int_
        | UINT                              -> uint_
        | FLOAT                             -> float_
        | STRING                            -> string_

IDENT: /[_a-zA-Z][_a-zA-Z0-9]*/
INT: /0[xX][0-9a-fA-F]+|[0-9]+/
UINT.2: /(0[xX][0-9a-fA-F]+|[0-9]+)[uU]/
FLOAT.2: /[0-9]*\.[0-9]+([eE][+-]?[0-9]+)?|[0-9]+[eE][+-]?[0-9]+/
STRING.2: /[rR]?("{3}(.|\n)*?"{3}|'{3}(.|\n)*?'{3}|"([^"\\\n]|\\.)*"|'([^'\\\n]|\\.)*')/
COMMENT: /\/\/[^\n]*/
WS: /[ \t\f\r\n]+/

%ignore WS
%ignore COMMENT
"""

_PARSER = Lark(_GRAMMAR, start="start", parser="lalr")


class SelectorRuntimeError(Exception):
    """Raised inside evaluation when an operation has no matching overload."""


_RUNTIME_ERRORS = (
    SelectorRuntimeError,
    TypeError,
    ValueError,
    ArithmeticError,
    IndexError,
    KeyError,
    re2.error,
    RecursionError,
)

_RE2_OPTIONS = re2.Options()
_RE2_OPTIONS.log_errors = False


@dataclass(frozen=True, slots=True)
class _Activation:
    """Device bindings plus the iteration variables bound by macros."""

    bindings: DeviceBindings
    variables: Mapping[str, Any] = field(default_factory=dict)

    def bind(self, name: str, value: Any) -> _Activation:
        return _Activation(self.bindings, {**self.variables, name: value})


Evaluator = Callable[[_Activation], Any]


def _kind(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, (int, float, Decimal)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "list"
    if isinstance(value, Mapping):
        return "map"
    if isinstance(value, Version):
        return "version"
    if isinstance(value, Quantity):
        return "quantity"
    return type(value).__name__


def _require_bool(value: Any) -> bool:
    if not isinstance(value, bool):
        raise SelectorRuntimeError(f"expected bool, got {_kind(value)}")
    return value


def _equals(left: Any, right: Any) -> bool:
    left_kind, right_kind = _kind(left), _kind(right)
    if "null" in {left_kind, right_kind}:
        return left is right
    if left_kind != right_kind:
        raise SelectorRuntimeError(f"no matching overload for {left_kind} == {right_kind}")
    if left_kind == "list":
        return len(left) == len(right) and all(_equals(a, b) for a, b in zip(left, right))
    return left == right


_ORDERED_KINDS = {"number", "string", "version", "quantity", "bool"}


def _ordered(left: Any, right: Any) -> None:
    left_kind, right_kind = _kind(left), _kind(right)
    if left_kind != right_kind or left_kind not in _ORDERED_KINDS:
        raise SelectorRuntimeError(f"no ordering between {left_kind} and {right_kind}")


def _ordering(compare: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def apply(left: Any, right: Any) -> bool:
        _ordered(left, right)
        return compare(left, right)

    return apply


def _contains(container: Any, item: Any) -> bool:
    kind = _kind(container)
    if kind == "list":
        return any(_kind(member) == _kind(item) and _equals(member, item) for member in container)
    if kind == "map":
        return item in container
    raise SelectorRuntimeError(f"'in' is not supported on {kind}")


def _arithmetic(op: str, left: Any, right: Any) -> Any:
    left_kind, right_kind = _kind(left), _kind(right)
    if op == "add" and left_kind == right_kind and left_kind in {"string", "list"}:
        return tuple(left) + tuple(right) if left_kind == "list" else left + right
    if left_kind != "number" or right_kind != "number":
        raise SelectorRuntimeError(f"no arithmetic between {left_kind} and {right_kind}")
    if op == "add":
        return left + right
    if op == "sub":
        return left - right
    if op == "mul":
        return left * right
    if op == "div":
        if isinstance(left, int) and isinstance(right, int):
            if right == 0:
                raise ZeroDivisionError("integer division by zero")
            quotient = abs(left) // abs(right)
            return quotient if (left >= 0) == (right >= 0) else -quotient
        return left / right
    if right == 0:
        raise ZeroDivisionError("modulo by zero")
    return left - right * int(left / right)


_BINARY: dict[str, Callable[[Any, Any], Any]] = {
    "eq": _equals,
    "ne": lambda left, right: not _equals(left, right),
    "lt": _ordering(operator.lt),
    "le": _ordering(operator.le),
    "gt": _ordering(operator.gt),
    "ge": _ordering(operator.ge),
    "in_": lambda left, right: _contains(right, left),
    "add": functools.partial(_arithmetic, "add"),
    "sub": functools.partial(_arithmetic, "sub"),
    "mul": functools.partial(_arithmetic, "mul"),
    "div": functools.partial(_arithmetic, "div"),
    "mod": functools.partial(_arithmetic, "mod"),
}


def _index(container: Any, key: Any) -> Any:
    kind = _kind(container)
    if kind == "map":
        if not isinstance(key, str):
            raise SelectorRuntimeError(f"map keys must be strings, got {_kind(key)}")
        return container[key]
    if kind == "list":
        if isinstance(key, bool) or not isinstance(key, int):
            raise SelectorRuntimeError(f"list index must be int, got {_kind(key)}")
        if key < 0:
            raise IndexError(key)
        return container[key]
    raise SelectorRuntimeError(f"cannot index {kind}")


def _select(value: Any, name: str) -> Any:
    if _kind(value) != "map":
        raise SelectorRuntimeError(f"cannot select field {name!r} on {_kind(value)}")
    return _index(value, name)


def _has_field(value: Any, name: str) -> bool:
    if _kind(value) != "map":
        raise SelectorRuntimeError(f"has() cannot test field {name!r} on {_kind(value)}")
    return name in value


def _is_set(value: Any) -> bool:
    return value is not None and value != ""


def _iterate(value: Any) -> tuple[Any, ...]:
    kind = _kind(value)
    if kind not in {"list", "map"}:
        raise SelectorRuntimeError(f"cannot iterate over {kind}")
    return tuple(value)


def _short_circuit(operands: Iterable[Callable[[], Any]], decisive: bool) -> bool:
    # Errors are absorbed when another operand decides the result.
    error: Exception | None = None
    for operand in operands:
        try:
            value = _require_bool(operand())
        except _RUNTIME_ERRORS as exc:
            error = error or exc
            continue
        if value is decisive:
            return decisive
    if error is not None:
        raise error
    return not decisive


def _expect(value: Any, kind: str, label: str) -> Any:
    if _kind(value) != kind:
        raise SelectorRuntimeError(f"{label} expects {kind}, got {_kind(value)}")
    return value


def _matches(text: Any, pattern: Any) -> bool:
    regexp = re2.compile(_expect(pattern, "string", "matches"), _RE2_OPTIONS)
    return regexp.search(_expect(text, "string", "matches")) is not None


def _is_sorted(values: Any) -> bool:
    items = list(values)
    for left, right in zip(items, items[1:]):
        _ordered(left, right)
        if right < left:
            return False
    return True


def _to_int(value: Any) -> int:
    if isinstance(value, Quantity):
        return int(value.value)
    if isinstance(value, bool):
        raise SelectorRuntimeError("cannot convert bool to int")
    return int(value)


def _to_string(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _quantity_as_integer(value: Quantity) -> int:
    if value.value != value.value.to_integral_value():
        raise SelectorRuntimeError(f"quantity {value} is not an integer")
    return int(value.value)


_METHODS: dict[str, dict[str, tuple[int, Callable[..., Any]]]] = {
    "string": {
        "startsWith": (1, lambda s, p: s.startswith(_expect(p, "string", "startsWith"))),
        "endsWith": (1, lambda s, p: s.endswith(_expect(p, "string", "endsWith"))),
        "contains": (1, lambda s, p: _expect(p, "string", "contains") in s),
        "matches": (1, _matches),
        "lowerAscii": (0, lambda s: s.lower()),
        "upperAscii": (0, lambda s: s.upper()),
        "size": (0, len),
    },
    "list": {
        "size": (0, len),
        "isSorted": (0, _is_sorted),
        "contains": (1, _contains),
    },
    "map": {
        "size": (0, len),
    },
    "version": {
        "isGreaterThan": (1, lambda v, o: v > _expect(o, "version", "isGreaterThan")),
        "isLessThan": (1, lambda v, o: v < _expect(o, "version", "isLessThan")),
        "compareTo": (1, lambda v, o: v.compare_to(_expect(o, "version", "compareTo"))),
        "major": (0, lambda v: v.major),
        "minor": (0, lambda v: v.minor),
        "patch": (0, lambda v: v.patch),
    },
    "quantity": {
        "isGreaterThan": (1, lambda q, o: q > _expect(o, "quantity", "isGreaterThan")),
        "isLessThan": (1, lambda q, o: q < _expect(o, "quantity", "isLessThan")),
        "compareTo": (1, lambda q, o: q.compare_to(_expect(o, "quantity", "compareTo"))),
        "isInteger": (0, lambda q: q.value == q.value.to_integral_value()),
        "asInteger": (0, _quantity_as_integer),
        "asApproximateFloat": (0, lambda q: float(q.value)),
    },
}

_METHOD_ARITY: dict[str, int] = {}
for _table in _METHODS.values():
    for _name, (_arity, _) in _table.items():
        _METHOD_ARITY[_name] = _arity
del _table, _name, _arity


def _checked_parse(parser: Callable[[str], Any], label: str) -> Callable[[Any], Any]:
    def parse(value: Any) -> Any:
        return parser(_expect(value, "string", label))

    return parse


def _is_valid(parser: Callable[[str], Any]) -> Callable[[Any], bool]:
    def check(value: Any) -> bool:
        try:
            parser(_expect(value, "string", "validation"))
        except ValueError:
            return False
        return True

    return check


def _size(value: Any) -> int:
    if _kind(value) not in {"string", "list", "map"}:
        raise SelectorRuntimeError(f"size() is not supported on {_kind(value)}")
    return len(value)


_FUNCTIONS: dict[str, tuple[int, Callable[..., Any]]] = {
    "quantity": (1, _checked_parse(Quantity.parse, "quantity")),
    "semver": (1, _checked_parse(Version.parse, "semver")),
    "isQuantity": (1, _is_valid(Quantity.parse)),
    "isSemver": (1, _is_valid(Version.parse)),
    "size": (1, _size),
    "int": (1, _to_int),
    "double": (1, float),
    "string": (1, _to_string),
    "dyn": (1, lambda value: value),
    "matches": (2, _matches),
}

# Accepted argument counts, iteration variable included.
_MACROS: dict[str, tuple[int, ...]] = {
    "all": (2,),
    "exists": (2,),
    "exists_one": (2,),
    "filter": (2,),
    "map": (2, 3),
}

_ESCAPE = re.compile(r"\\(x[0-9a-fA-F]{2}|u[0-9a-fA-F]{4}|U[0-9a-fA-F]{8}|[0-3][0-7]{2}|.)", re.DOTALL)
_SIMPLE_ESCAPES = {
    "a": "\a",
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "v": "\v",
    "\\": "\\",
    "'": "'",
    '"': '"',
    "`": "`",
    "?": "?",
}


def _unescape(match: re.Match[str]) -> str:
    escape = match.group(1)
    if len(escape) > 1:
        return chr(int(escape, 8) if escape[0].isdigit() else int(escape[1:], 16))
    if escape not in _SIMPLE_ESCAPES:
        raise ValueError(f"invalid escape sequence \\{escape}")
    return _SIMPLE_ESCAPES[escape]


def _string_literal(text: str) -> str:
    raw = text[0] in "rR"
    if raw:
        text = text[1:]
    quote = 3 if text[:3] in {'"""', "'''"} else 1
    body = text[quote:-quote]
    return body if raw else _ESCAPE.sub(_unescape, body)


def _int_literal(text: str) -> int:
    return int(text, 16) if text[:2] in {"0x", "0X"} else int(text)


def _arguments(node: Tree | None) -> list[Tree]:
    return [] if node is None else list(node.children)


def _constant(value: Any) -> Evaluator:
    return lambda activation: value


class _Compiler:
    """Translate a parse tree into closures.

    ``scope`` holds the iteration variables visible at each node.
    """

    def __init__(self, expression: str) -> None:
        self.expression = expression

    def fail(self, message: str) -> SelectorCompileError:
        return SelectorCompileError("", message, expression=self.expression)

    def compile(self, node: Tree, scope: frozenset[str] = frozenset()) -> Evaluator:
        if node.data in _BINARY:
            return self._binary(_BINARY[node.data], node, scope)
        handler = getattr(self, f"_compile_{node.data}", None)
        if handler is None:
            raise self.fail(f"unsupported syntax: {node.data}")
        return handler(node, scope)

    def _binary(self, function: Callable[[Any, Any], Any], node: Tree, scope: frozenset[str]) -> Evaluator:
        left, right = (self.compile(child, scope) for child in node.children)
        return lambda activation: function(left(activation), right(activation))

    def _compile_true_(self, node: Tree, scope: frozenset[str]) -> Evaluator:
        return _constant(True)

    def _compile_false_(self, node: Tree, scope: frozenset[str]) -> Evaluator:
        return _constant(False)

    def _compile_null_(self, node: Tree, scope: frozenset[str]) -> Evaluator:
        return _constant(None)

    def _compile_int_(self, node: Tree, scope: frozenset[str]) -> Evaluator:
        return _constant(_int_literal(node.children[0]))

    def _compile_uint_(self, node: Tree, scope: frozenset[str]) -> Evaluator:
        return _constant(_int_literal(node.children[0][:-1]))

    def _compile_float_(self, node: Tree, scope: frozenset[str]) -> Evaluator:
        return _constant(float(node.children[0]))

    def _compile_string_(self, node: Tree, scope: frozenset[str]) -> Evaluator:
        return _constant(self._string(node))

    def _string(self, node: Tree) -> str:
        try:
            return _string_literal(str(node.children[0]))
        except ValueError as exc:
            raise self.fail(f"invalid string literal: {exc}") from exc

    def _compile_ident(self, node: Tree, scope: frozenset[str]) -> Evaluator:
        name = str(node.children[0])
        if name in scope:
            return lambda activation: activation.variables[name]
        if name == "device":
            raise self.fail("'device' must be followed by a member such as device.attributes")
        raise self.fail(f"undeclared reference to {name!r}")

    def _device_member(self, target: Tree, name: str, scope: frozenset[str]) -> str | None:
        """Return ``name`` when ``target`` is the ``device`` variable itself."""

        if target.data != "ident" or target.children[0] != "device" or "device" in scope:
            return None
        if name not in DEVICE_MEMBERS:
            raise self.fail(f"device has no member {name!r}; expected one of {sorted(DEVICE_MEMBERS)}")
        return name

    def _compile_select(self, node: Tree, scope: frozenset[str]) -> Evaluator:
        target, name = node.children[0], str(node.children[1])
        member = self._device_member(target, name, scope)
        if member is not None:
            return lambda activation: activation.bindings.member(member)
        receiver = self.compile(target, scope)
        return lambda activation: _select(receiver(activation), name)

    def _compile_index(self, node: Tree, scope: frozenset[str]) -> Evaluator:
        container, key = (self.compile(child, scope) for child in node.children)
        return lambda activation: _index(container(activation), key(activation))

    def _compile_list_(self, node: Tree, scope: frozenset[str]) -> Evaluator:
        items = tuple(self.compile(child, scope) for child in _arguments(node.children[0]))
        return lambda activation: tuple(item(activation) for item in items)

    def _compile_map_(self, node: Tree, scope: frozenset[str]) -> Evaluator:
        entries = tuple(
            (self.compile(entry.children[0], scope), self.compile(entry.children[1], scope))
            for entry in _arguments(node.children[0])
        )

        def build(activation: _Activation) -> dict[str, Any]:
            result: dict[str, Any] = {}
            for key, value in entries:
                name = _expect(key(activation), "string", "map key")
                if name in result:
                    raise SelectorRuntimeError(f"duplicate map key {name!r}")
                result[name] = value(activation)
            return result

        return build

    def _compile_or_(self, node: Tree, scope: frozenset[str]) -> Evaluator:
        return self._logical(node, scope, decisive=True)

    def _compile_and_(self, node: Tree, scope: frozenset[str]) -> Evaluator:
        return self._logical(node, scope, decisive=False)

    def _logical(self, node: Tree, scope: frozenset[str], *, decisive: bool) -> Evaluator:
        operands = tuple(self.compile(child, scope) for child in node.children)
        return lambda activation: _short_circuit(
            (functools.partial(operand, activation) for operand in operands), decisive
        )

    def _compile_not_(self, node: Tree, scope: frozenset[str]) -> Evaluator:
        operand = self.compile(node.children[0], scope)
        return lambda activation: not _require_bool(operand(activation))

    def _compile_neg(self, node: Tree, scope: frozenset[str]) -> Evaluator:
        operand = self.compile(node.children[0], scope)
        return lambda activation: -_expect(operand(activation), "number", "negation")

    def _compile_ternary(self, node: Tree, scope: frozenset[str]) -> Evaluator:
        condition, when_true, when_false = (self.compile(child, scope) for child in node.children)

        def choose(activation: _Activation) -> Any:
            if _require_bool(condition(activation)):
                return when_true(activation)
            return when_false(activation)

        return choose

    def _check_pattern(self, node: Tree) -> None:
        if node.data != "string_":
            return
        pattern = self._string(node)
        try:
            re2.compile(pattern, _RE2_OPTIONS)
        except re2.error as exc:
            raise self.fail(f"invalid regular expression {pattern!r}: {exc}") from exc

    def _compile_call(self, node: Tree, scope: frozenset[str]) -> Evaluator:
        name = str(node.children[0])
        arguments = _arguments(node.children[1])
        if name == "has":
            return self._compile_has(arguments, scope)
        if name not in _FUNCTIONS:
            raise self.fail(f"undeclared function {name!r}")
        arity, function = _FUNCTIONS[name]
        if len(arguments) != arity:
            raise self.fail(f"{name}() takes {arity} argument(s), got {len(arguments)}")
        if name == "matches":
            self._check_pattern(arguments[1])
        args = tuple(self.compile(argument, scope) for argument in arguments)
        return lambda activation: function(*(arg(activation) for arg in args))

    def _compile_has(self, arguments: list[Tree], scope: frozenset[str]) -> Evaluator:
        if len(arguments) != 1 or arguments[0].data != "select":
            raise self.fail(
                "invalid argument to has() macro: expected a field selection such as device.attributes.name"
            )
        target, name = arguments[0].children[0], str(arguments[0].children[1])
        member = self._device_member(target, name, scope)
        if member is not None:
            return lambda activation: _is_set(activation.bindings.member(member))
        receiver = self.compile(target, scope)
        return lambda activation: _has_field(receiver(activation), name)

    def _compile_method(self, node: Tree, scope: frozenset[str]) -> Evaluator:
        target, method = node.children[0], str(node.children[1])
        arguments = _arguments(node.children[2])
        if method in _MACROS:
            return self._compile_macro(method, target, arguments, scope)
        if method not in _METHOD_ARITY:
            raise self.fail(f"undeclared method {method!r}")
        if len(arguments) != _METHOD_ARITY[method]:
            raise self.fail(f"{method}() takes {_METHOD_ARITY[method]} argument(s), got {len(arguments)}")
        if method == "matches":
            self._check_pattern(arguments[0])
        receiver = self.compile(target, scope)
        args = tuple(self.compile(argument, scope) for argument in arguments)

        def call(activation: _Activation) -> Any:
            value = receiver(activation)
            table = _METHODS.get(_kind(value), {})
            if method not in table:
                raise SelectorRuntimeError(f"{_kind(value)} has no method {method!r}")
            return table[method][1](value, *(arg(activation) for arg in args))

        return call

    def _compile_macro(
        self, macro: str, target: Tree, arguments: list[Tree], scope: frozenset[str]
    ) -> Evaluator:
        if len(arguments) not in _MACROS[macro]:
            expected = " or ".join(str(count) for count in _MACROS[macro])
            raise self.fail(f"{macro}() macro takes {expected} arguments, got {len(arguments)}")
        if arguments[0].data != "ident":
            raise self.fail(f"{macro}() macro expects an identifier as its first argument")
        variable = str(arguments[0].children[0])
        receiver = self.compile(target, scope)
        body = tuple(self.compile(argument, scope | {variable}) for argument in arguments[1:])

        def items(activation: _Activation) -> list[_Activation]:
            return [activation.bind(variable, item) for item in _iterate(receiver(activation))]

        if macro in {"all", "exists"}:
            predicate = body[0]
            decisive = macro == "exists"
            return lambda activation: _short_circuit(
                (functools.partial(predicate, bound) for bound in items(activation)), decisive
            )
        if macro == "exists_one":
            predicate = body[0]
            return lambda activation: sum(_require_bool(predicate(bound)) for bound in items(activation)) == 1
        if macro == "filter":
            predicate = body[0]
            return lambda activation: tuple(
                bound.variables[variable] for bound in items(activation) if _require_bool(predicate(bound))
            )
        keep, transform = body if len(body) == 2 else (None, body[0])
        return lambda activation: tuple(
            transform(bound) for bound in items(activation) if keep is None or _require_bool(keep(bound))
        )


def _syntax_error(exc: UnexpectedInput) -> str:
    if isinstance(exc, UnexpectedEOF) or (isinstance(exc, UnexpectedToken) and exc.token.type == "$END"):
        return "syntax error: unexpected end of expression"
    if isinstance(exc, UnexpectedCharacters):
        return f"syntax error: unexpected character {exc.char!r} at line {exc.line}, column {exc.column}"
    if isinstance(exc, UnexpectedToken):
        return f"syntax error: unexpected {str(exc.token)!r} at line {exc.line}, column {exc.column}"
    return f"syntax error: {exc}"


@dataclass(frozen=True, slots=True)
class EvaluationResult:
    """Outcome of evaluating one selector against one device."""

    matched: bool
    error: str | None = None


@dataclass(frozen=True, slots=True)
class SelectorProgram:
    """Compiled, immutable selector.

    Parameters
    ----------
    expression : str
        Original selector text.
    evaluator : Callable | None
        Compiled closure tree. ``None`` for the empty selector.
    """

    expression: str
    evaluator: Evaluator | None = None

    def evaluate(self, bindings: DeviceBindings) -> EvaluationResult:
        """Evaluate against one device. Never raises."""

        if self.evaluator is None:
            return EvaluationResult(matched=True)
        try:
            value = self.evaluator(_Activation(bindings))
        except _RUNTIME_ERRORS as exc:
            return EvaluationResult(matched=False, error=str(exc) or type(exc).__name__)
        if not isinstance(value, bool):
            return EvaluationResult(
                matched=False,
                error=f"selector must evaluate to bool, got {_kind(value)}",
            )
        return EvaluationResult(matched=value)

    def matches(self, bindings: DeviceBindings) -> bool:
        """Return whether the device satisfies the selector."""

        result = self.evaluate(bindings)
        if result.error is not None:
            logger.debug(
                "selector %r excluded device %s: %s",
                self.expression,
                bindings.device.name,
                result.error,
            )
        return result.matched


MATCH_ALL = SelectorProgram(expression="")


@functools.lru_cache(maxsize=1024)
def _compile_cached(expression: str) -> SelectorProgram:
    if not expression.strip():
        return MATCH_ALL
    try:
        tree = _PARSER.parse(expression)
    except UnexpectedInput as exc:
        raise SelectorCompileError("", _syntax_error(exc), expression=expression) from exc
    try:
        evaluator = _Compiler(expression).compile(tree)
    except RecursionError as exc:
        raise SelectorCompileError("", "selector is nested too deeply", expression=expression) from exc
    return SelectorProgram(expression=expression, evaluator=evaluator)


def compile_selector(expression: str, *, path: str = "selector") -> SelectorProgram:
    """Compile one selector expression.

    Parameters
    ----------
    expression : str
        Selector text. Empty text matches every device.
    path : str, optional
        Field path reported in compile errors.

    Returns
    -------
    SelectorProgram
        Reusable compiled program. Identical texts share one program.

    Raises
    ------
    SelectorCompileError
        If the expression is malformed or references unknown identifiers,
        functions, methods or device members.
    """

    if not isinstance(expression, str):
        raise SelectorCompileError(path, "selector must be a string", expression=repr(expression))
    try:
        return _compile_cached(expression)
    except SelectorCompileError as exc:
        raise SelectorCompileError(path, exc.message, expression=expression) from None


__all__ = [
    "EvaluationResult",
    "MATCH_ALL",
    "SelectorProgram",
    "SelectorRuntimeError",
    "compile_selector",
]
