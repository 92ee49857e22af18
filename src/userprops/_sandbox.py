"""Compilation and guarded execution of user snippets.

Snippets (expressions, watcher scripts, custom validators) are a restricted
subset of Python. A snippet is checked for constructs that could reach the
host (imports, dunder access, introspection builtins), instrumented so that
every loop iteration passes through a :class:`ResourceGuard`, and compiled
into a function whose parameters are the snippet bindings.

Iteration done inside builtins is metered as well: ``range`` yields through
the guard, the builtins consuming an iterable meter their input, and
sequence repetition and integer powers are charged by the size of their
result before it is computed.

This bounds runaway loops. It is not a security boundary: work done by
other native calls (``math.factorial``, ``str.ljust`` and the like) is not
metered.
"""

from __future__ import annotations

import ast
import builtins
import logging
import math
import textwrap
import time
from dataclasses import dataclass, field
from functools import lru_cache
from typing import TYPE_CHECKING, Any, TypeAlias

from ._config import EngineConfig, get_engine_config
from ._errors import ExpressionError, ForbiddenTokenError, SnippetTimeoutError, StepLimitExceededError
from ._node import parse_number, to_text

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator, Mapping
    from types import CodeType

logger = logging.getLogger(__name__)
snippet_logger = logging.getLogger("userprops.snippets")

FORBIDDEN_NAMES = frozenset(
    {
        "eval",
        "exec",
        "compile",
        "open",
        "getattr",
        "setattr",
        "delattr",
        "globals",
        "locals",
        "vars",
        "input",
        "breakpoint",
        "help",
        "type",
        "object",
        "super",
        "memoryview",
    },
)
FORBIDDEN_ATTRIBUTES = frozenset({"format", "format_map", "mro"})

_FUNCTION_NAME = "__snippet__"
_STEP = "__step__"
_GUARD_ITER = "__guard_iter__"
_TICK = "__tick__"
_REPEAT = "__repeat__"
_POWER = "__power__"

# Bits produced per step when charging integer powers.
_POWER_BITS_PER_STEP = 64
_REPEATABLE = (str, bytes, list, tuple)

_SAFE_BUILTIN_NAMES = (
    "abs",
    "all",
    "any",
    "bin",
    "bool",
    "chr",
    "dict",
    "divmod",
    "enumerate",
    "filter",
    "float",
    "frozenset",
    "hex",
    "int",
    "isinstance",
    "len",
    "list",
    "map",
    "max",
    "min",
    "oct",
    "ord",
    "pow",
    "range",
    "repr",
    "reversed",
    "round",
    "set",
    "slice",
    "sorted",
    "str",
    "sum",
    "tuple",
    "zip",
    "ArithmeticError",
    "Exception",
    "IndexError",
    "KeyError",
    "LookupError",
    "RuntimeError",
    "TypeError",
    "ValueError",
    "ZeroDivisionError",
)
SAFE_BUILTINS: dict[str, Any] = {name: getattr(builtins, name) for name in _SAFE_BUILTIN_NAMES}


def _number(value: Any, default: Any = 0) -> Any:
    number = parse_number(value)
    return default if number is None else number


def _log(*args: Any) -> None:
    snippet_logger.info(" ".join(to_text(arg) for arg in args))


HELPERS: dict[str, Any] = {
    "number": _number,
    "text": to_text,
    "log": _log,
    "math": math,
}


@dataclass(slots=True)
class ResourceGuard:
    """Step and wall-clock budget for one snippet execution.

    Once the budget is exceeded, every later step raises again, so the error
    survives a ``try`` block in the snippet; :meth:`check` re-raises it after
    the snippet returns.
    """

    max_steps: int
    limit_ms: int
    label: str = "snippet"
    deadline: float = field(init=False)
    steps: int = field(default=0, init=False)
    error: ExpressionError | None = field(default=None, init=False)

    def __post_init__(self) -> None:
        self.deadline = time.perf_counter() + self.limit_ms / 1000

    @classmethod
    def from_config(cls, config: EngineConfig, label: str = "snippet") -> ResourceGuard:
        return cls(max_steps=config.max_steps, limit_ms=config.execution_limit_ms, label=label)

    def charge(self, count: int) -> None:
        """Spend ``count`` steps at once."""
        if self.error is not None:
            raise self.error
        self.steps += count
        if self.steps > self.max_steps:
            self.error = StepLimitExceededError(f"Step limit exceeded ({self.label})")
            raise self.error
        if time.perf_counter() > self.deadline:
            self.error = SnippetTimeoutError(f"{self.label} timeout > {self.limit_ms}ms")
            raise self.error

    def step(self) -> None:
        self.charge(1)

    def tick(self, value: Any) -> Any:
        self.step()
        return value

    def guard_iter(self, iterable: Iterable[Any]) -> Iterator[Any]:
        """Iterate ``iterable`` one step per item; metered input is not charged twice."""
        if isinstance(iterable, _GuardedRange):
            return iter(iterable)
        if isinstance(iterable, _Metered):
            return iterable
        return _Metered(self, iterable)

    def repeat(self, left: Any, right: Any) -> Any:
        """``left * right``, charging one step per item of a repeated sequence."""
        if isinstance(left, _REPEATABLE) and isinstance(right, int):
            self.charge(len(left) * max(right, 0))
        elif isinstance(right, _REPEATABLE) and isinstance(left, int):
            self.charge(len(right) * max(left, 0))
        return left * right

    def power(self, base: Any, exponent: Any) -> Any:
        """``base ** exponent``, charging large integer results by their size."""
        if isinstance(base, int) and isinstance(exponent, int) and exponent > 0:
            self.charge(exponent * abs(base).bit_length() // _POWER_BITS_PER_STEP)
        return base**exponent

    def check(self) -> None:
        if self.error is not None:
            raise self.error


class _Metered:
    """Iterator spending one guard step per item."""

    __slots__ = ("_guard", "_iterator")

    def __init__(self, guard: ResourceGuard, iterable: Iterable[Any]) -> None:
        self._guard = guard
        self._iterator = iter(iterable)

    def __iter__(self) -> _Metered:
        return self

    def __next__(self) -> Any:
        item = next(self._iterator)
        self._guard.step()
        return item


class _GuardedRange:
    """``range`` replacement whose iteration is metered.

    Length, indexing and integer membership stay constant time.
    """

    __slots__ = ("_guard", "_range")

    def __init__(self, guard: ResourceGuard, values: range) -> None:
        self._guard = guard
        self._range = values

    @property
    def start(self) -> int:
        return self._range.start

    @property
    def stop(self) -> int:
        return self._range.stop

    @property
    def step(self) -> int:
        return self._range.step

    def __iter__(self) -> _Metered:
        return _Metered(self._guard, self._range)

    def __reversed__(self) -> _Metered:
        return _Metered(self._guard, reversed(self._range))

    def __len__(self) -> int:
        return len(self._range)

    def __contains__(self, item: object) -> bool:
        if isinstance(item, int):
            return item in self._range
        return any(candidate == item for candidate in self)

    def __getitem__(self, index: int | slice) -> Any:
        value = self._range[index]
        if isinstance(value, range):
            return _GuardedRange(self._guard, value)
        return value

    def __eq__(self, other: object) -> bool:
        if isinstance(other, _GuardedRange):
            other = other._range
        return self._range == other

    def __hash__(self) -> int:
        return hash(self._range)

    def __repr__(self) -> str:
        return repr(self._range)


def _meter_first(guard: ResourceGuard, args: tuple[Any, ...]) -> tuple[Any, ...]:
    if not args:
        return args
    return (guard.guard_iter(args[0]), *args[1:])


def _meter_single(guard: ResourceGuard, args: tuple[Any, ...]) -> tuple[Any, ...]:
    # min(a, b) compares its arguments; only min(iterable) iterates.
    if len(args) == 1:
        return (guard.guard_iter(args[0]),)
    return args


def _meter_all(guard: ResourceGuard, args: tuple[Any, ...]) -> tuple[Any, ...]:
    return tuple(guard.guard_iter(arg) for arg in args)


def _meter_after_first(guard: ResourceGuard, args: tuple[Any, ...]) -> tuple[Any, ...]:
    return (*args[:1], *_meter_all(guard, args[1:]))


def _meter_non_mapping(guard: ResourceGuard, args: tuple[Any, ...]) -> tuple[Any, ...]:
    if args and hasattr(args[0], "keys"):
        return args
    return _meter_first(guard, args)


def _pass_through(guard: ResourceGuard, args: tuple[Any, ...]) -> tuple[Any, ...]:  # noqa: ARG001
    return args


_Meter: TypeAlias = "Callable[[ResourceGuard, tuple[Any, ...]], tuple[Any, ...]]"


class _MeteredBuiltin:
    """Builtin whose iterable arguments are metered.

    Stands in for a builtin type in ``isinstance`` checks, so snippets can
    still write ``isinstance(v, list)``.
    """

    __slots__ = ("_guard", "_instance_types", "_meter", "_result", "_target")

    def __init__(
        self,
        guard: ResourceGuard,
        target: Callable[..., Any],
        meter: _Meter,
        *,
        result: Callable[[Any], Any] | None = None,
        instance_types: tuple[type, ...] | None = None,
    ) -> None:
        self._guard = guard
        self._target = target
        self._meter = meter
        self._result = result
        self._instance_types = instance_types

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        value = self._target(*self._meter(self._guard, args), **kwargs)
        return value if self._result is None else self._result(value)

    def __instancecheck__(self, instance: object) -> bool:
        return isinstance(instance, self._instance_types or self._target)  # type: ignore[arg-type]

    def __subclasscheck__(self, subclass: type) -> bool:
        return issubclass(subclass, self._instance_types or self._target)  # type: ignore[arg-type]

    def __getattr__(self, name: str) -> Any:
        return getattr(self._target, name)

    def __repr__(self) -> str:
        return repr(self._target)


_METERS: dict[str, _Meter] = {
    "all": _meter_first,
    "any": _meter_first,
    "dict": _meter_non_mapping,
    "enumerate": _meter_first,
    "filter": _meter_after_first,
    "frozenset": _meter_first,
    "list": _meter_first,
    "map": _meter_after_first,
    "max": _meter_single,
    "min": _meter_single,
    "set": _meter_first,
    "sorted": _meter_first,
    "sum": _meter_first,
    "tuple": _meter_first,
    "zip": _meter_all,
}


def guarded_builtins(guard: ResourceGuard) -> dict[str, Any]:
    """Snippet builtins whose iteration, repetition and powers are charged to ``guard``."""

    def guarded_pow(base: Any, exponent: Any, mod: Any = None) -> Any:
        if mod is None:
            return guard.power(base, exponent)
        return pow(base, exponent, mod)

    table = dict(SAFE_BUILTINS)
    for name, meter in _METERS.items():
        table[name] = _MeteredBuiltin(guard, SAFE_BUILTINS[name], meter)
    table["range"] = _MeteredBuiltin(
        guard,
        range,
        _pass_through,
        result=lambda values: _GuardedRange(guard, values),
        instance_types=(range, _GuardedRange),
    )
    table["pow"] = guarded_pow
    return table


class _SnippetChecker(ast.NodeVisitor):
    """Reject constructs that reach outside the snippet."""

    def __init__(self, kind: str) -> None:
        self.kind = kind

    def _forbid(self, token: str) -> None:
        msg = f"Forbidden token in {self.kind}: {token}"
        raise ForbiddenTokenError(msg)

    def visit_Import(self, node: ast.Import) -> None:  # noqa: ARG002
        self._forbid("import")

    def visit_ImportFrom(self, node: ast.ImportFrom) -> None:  # noqa: ARG002
        self._forbid("import")

    def visit_Global(self, node: ast.Global) -> None:  # noqa: ARG002
        self._forbid("global")

    def visit_Nonlocal(self, node: ast.Nonlocal) -> None:  # noqa: ARG002
        self._forbid("nonlocal")

    def visit_ClassDef(self, node: ast.ClassDef) -> None:  # noqa: ARG002
        self._forbid("class")

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> None:  # noqa: ARG002
        self._forbid("async")

    def visit_AsyncFor(self, node: ast.AsyncFor) -> None:  # noqa: ARG002
        self._forbid("async")

    def visit_AsyncWith(self, node: ast.AsyncWith) -> None:  # noqa: ARG002
        self._forbid("async")

    def visit_Await(self, node: ast.Await) -> None:  # noqa: ARG002
        self._forbid("await")

    def visit_Yield(self, node: ast.Yield) -> None:  # noqa: ARG002
        self._forbid("yield")

    def visit_YieldFrom(self, node: ast.YieldFrom) -> None:  # noqa: ARG002
        self._forbid("yield")

    def visit_Name(self, node: ast.Name) -> None:
        if node.id.startswith("__") or node.id in FORBIDDEN_NAMES:
            self._forbid(node.id)

    def visit_arg(self, node: ast.arg) -> None:
        if node.arg.startswith("__"):
            self._forbid(node.arg)
        self.generic_visit(node)

    def visit_FunctionDef(self, node: ast.FunctionDef) -> None:
        if node.name.startswith("__") or node.name in FORBIDDEN_NAMES:
            self._forbid(node.name)
        self.generic_visit(node)

    def visit_Attribute(self, node: ast.Attribute) -> None:
        if node.attr.startswith("_") or node.attr in FORBIDDEN_ATTRIBUTES:
            self._forbid(f".{node.attr}")
        self.generic_visit(node)

    def visit_MatchClass(self, node: ast.MatchClass) -> None:
        for attr in node.kwd_attrs:
            if attr.startswith("_"):
                self._forbid(f".{attr}")
        self.generic_visit(node)


def _call(name: str, *args: ast.expr) -> ast.Call:
    return ast.Call(func=ast.Name(id=name, ctx=ast.Load()), args=list(args), keywords=[])


_ARITHMETIC_HOOKS: dict[type[ast.operator], str] = {ast.Mult: _REPEAT, ast.Pow: _POWER}


class _LoopInstrumenter(ast.NodeTransformer):
    """Route loop iterations, function calls, repetitions and powers through the resource guard."""

    def visit_While(self, node: ast.While) -> ast.While:
        self.generic_visit(node)
        node.body.insert(0, ast.Expr(value=_call(_STEP)))
        return node

    def visit_For(self, node: ast.For) -> ast.For:
        self.generic_visit(node)
        node.iter = _call(_GUARD_ITER, node.iter)
        return node

    def visit_comprehension(self, node: ast.comprehension) -> ast.comprehension:
        self.generic_visit(node)
        node.iter = _call(_GUARD_ITER, node.iter)
        return node

    def visit_FunctionDef(self, node: ast.FunctionDef) -> ast.FunctionDef:
        self.generic_visit(node)
        node.body.insert(0, ast.Expr(value=_call(_STEP)))
        return node

    def visit_Lambda(self, node: ast.Lambda) -> ast.Lambda:
        self.generic_visit(node)
        node.body = _call(_TICK, node.body)
        return node

    def visit_BinOp(self, node: ast.BinOp) -> ast.expr:
        self.generic_visit(node)
        hook = _ARITHMETIC_HOOKS.get(type(node.op))
        if hook is None:
            return node
        return ast.copy_location(_call(hook, node.left, node.right), node)

    def visit_AugAssign(self, node: ast.AugAssign) -> ast.stmt:
        self.generic_visit(node)
        hook = _ARITHMETIC_HOOKS.get(type(node.op))
        # Subscript and attribute targets would be evaluated twice if rewritten.
        if hook is None or not isinstance(node.target, ast.Name):
            return node
        current = ast.Name(id=node.target.id, ctx=ast.Load())
        return ast.copy_location(ast.Assign(targets=[node.target], value=_call(hook, current, node.value)), node)


def _has_return(statements: list[ast.stmt]) -> bool:
    """Whether a return statement belongs to this body (nested functions excluded)."""
    pending: list[ast.AST] = list(statements)
    while pending:
        current = pending.pop()
        if isinstance(current, ast.Return):
            return True
        if isinstance(current, ast.FunctionDef | ast.Lambda):
            continue
        pending.extend(ast.iter_child_nodes(current))
    return False


def _parse_body(source: str) -> list[ast.stmt]:
    """Parse a snippet, turning a lone expression into a return statement."""
    try:
        expression = ast.parse(source.strip(), mode="eval")
    except SyntaxError:
        return ast.parse(textwrap.dedent(source), mode="exec").body
    return [ast.Return(value=expression.body)]


@lru_cache(maxsize=1024)
def compile_snippet(
    source: str,
    arg_names: tuple[str, ...],
    *,
    require_return: bool = False,
    kind: str = "snippet",
) -> CodeType:
    """Compile a snippet into a module defining ``__snippet__(*arg_names)``.

    Args:
        source: The snippet source.
        arg_names: Names of the bindings, in call order.
        require_return: Reject statement bodies without a ``return``.
        kind: Snippet kind used in error messages.

    Returns:
        A code object that defines the snippet function when executed.

    Raises:
        SyntaxError: If the source does not parse.
        ForbiddenTokenError: If the source uses a disallowed construct.
        ExpressionError: If a required return is missing.

    """
    body = _parse_body(source)
    checker = _SnippetChecker(kind)
    for statement in body:
        checker.visit(statement)
    if not body:
        body = [ast.Pass()]
    if require_return and not _has_return(body):
        msg = f"{kind} must return a value"
        raise ExpressionError(msg)

    module = ast.parse(f"def {_FUNCTION_NAME}({', '.join(arg_names)}):\n    pass\n", mode="exec")
    function = module.body[0]
    assert isinstance(function, ast.FunctionDef)
    instrumenter = _LoopInstrumenter()
    function.body = [instrumenter.visit(statement) for statement in body]
    ast.fix_missing_locations(module)
    return compile(module, filename=f"<{kind}>", mode="exec")


def run_snippet(
    source: str,
    bindings: Mapping[str, Any],
    *,
    kind: str = "snippet",
    path: str | None = None,
    require_return: bool = False,
    config: EngineConfig | None = None,
) -> Any:
    """Compile and run a snippet under a fresh resource guard.

    Args:
        source: The snippet source.
        bindings: Values passed to the snippet, by name.
        kind: Snippet kind used in error messages.
        path: Path of the node the snippet belongs to, used in error messages.
        require_return: Reject statement bodies without a ``return``.
        config: Limits to apply; defaults to the active engine config.

    Returns:
        The value returned by the snippet.

    Raises:
        Exception: Whatever the snippet raises, including the ExpressionError
            family for forbidden tokens and exhausted budgets.

    """
    config = config or get_engine_config()
    arg_names = tuple(bindings)
    code = compile_snippet(source, arg_names, require_return=require_return, kind=kind)

    guard = ResourceGuard.from_config(config, label=f"{kind} {path}" if path else kind)
    namespace: dict[str, Any] = {
        "__builtins__": guarded_builtins(guard),
        **HELPERS,
        _STEP: guard.step,
        _GUARD_ITER: guard.guard_iter,
        _TICK: guard.tick,
        _REPEAT: guard.repeat,
        _POWER: guard.power,
    }
    exec(code, namespace)  # noqa: S102
    result = namespace[_FUNCTION_NAME](*bindings.values())
    guard.check()
    return result
