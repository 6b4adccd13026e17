"""
Scripted provider sandbox for Mosaic.

Scripted providers are Python source evaluated in an isolated namespace.
The source is checked statically before it runs, then executed off the
event loop with a bounded timeout against a whitelisted set of builtins.

Security Measures:
    - No import statements
    - No escape-prone dunder attributes, statically or via ``getattr``
    - No bare ``except:`` clauses
    - Builtins whitelist (no ``__import__``, ``open``, ``eval``, ``exec``)
    - Optional policy-controlled ``fetch`` for network access
    - Execution deadline enforced inside the worker thread

This is isolation for well-behaved third-party code, not a hardened jail.

Example:
    from mosaic.plugins.sandbox import ScriptPolicy, ScriptSandbox

    sandbox = ScriptSandbox(ScriptPolicy(allow_network=False))
    violations = sandbox.validate_source(source)
    if not violations:
        module = await sandbox.evaluate(source, "ExampleProvider")
        provider = resolve_export(module, "ExampleProvider")
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any, Callable
import ast
import asyncio
import builtins
import inspect
import logging
import sys
import threading
import time

import httpx

from mosaic.errors import ExecutionError, PluginValidationError

logger = logging.getLogger(__name__)


_SAFE_EXCEPTIONS = [
    "Exception", "ValueError", "TypeError", "KeyError", "IndexError",
    "AttributeError", "RuntimeError", "LookupError", "StopIteration",
    "StopAsyncIteration", "NotImplementedError", "ZeroDivisionError",
]


class _Interrupt(BaseException):
    # Outside the Exception hierarchy so `except Exception` in a script
    # cannot swallow it.
    pass


class ScriptInterrupted(ExecutionError):
    """Plugin code was stopped by its deadline or by cancellation."""


def run_interruptible(
    fn: Callable[..., Any],
    *args: Any,
    cancel: threading.Event | None = None,
    timeout: float | None = None,
) -> Any:
    """Call *fn* in the current thread, stopping it at the next traced line.

    Meant to run inside a worker thread. A trace hook raises into the
    running Python code once *timeout* elapses or *cancel* is set, so the
    thread exits instead of outliving its caller. Code blocked inside a
    single C call is only stopped when that call returns.

    Raises:
        ScriptInterrupted: The deadline passed or *cancel* was set.
    """
    deadline = time.monotonic() + timeout if timeout is not None else None

    def tracer(frame, event, arg):
        if (cancel is not None and cancel.is_set()) or (
            deadline is not None and time.monotonic() >= deadline
        ):
            raise _Interrupt()
        return tracer

    previous = sys.gettrace()
    sys.settrace(tracer)
    try:
        return fn(*args)
    except _Interrupt:
        reason = "cancelled" if cancel is not None and cancel.is_set() else f"timed out after {timeout}s"
        raise ScriptInterrupted(f"Plugin code {reason}") from None
    finally:
        sys.settrace(previous)


def _guarded_getattr(blocked: frozenset[str]) -> Callable[..., Any]:
    def getattr_(obj: Any, name: str, *default: Any) -> Any:
        if not isinstance(name, str) or name.startswith("_") or name in blocked:
            raise AttributeError(f"access to '{name}' is not allowed")
        return getattr(obj, name, *default)

    return getattr_


def _guarded_hasattr(blocked: frozenset[str]) -> Callable[[Any, str], bool]:
    def hasattr_(obj: Any, name: str) -> bool:
        if not isinstance(name, str) or name.startswith("_") or name in blocked:
            return False
        return hasattr(obj, name)

    return hasattr_


@dataclass
class ScriptPolicy:
    """Policy applied to scripted provider evaluation.

    Attributes:
        allow_network: Whether to inject the async ``fetch`` helper.
        max_execution_time: Wall-clock bound on top-level evaluation.
        fetch_timeout: Per-request timeout for ``fetch``.
        allowed_builtins: Whitelist of builtin names exposed to the script.
        blocked_attributes: Dunder names the script may not touch.
    """

    allow_network: bool = True
    max_execution_time: float = 5.0
    fetch_timeout: float = 15.0
    allowed_builtins: list[str] = field(default_factory=lambda: [
        "abs", "all", "any", "bool", "callable", "dict", "enumerate",
        "filter", "float", "format", "frozenset", "getattr",
        "hasattr", "hash", "int", "isinstance", "issubclass",
        "iter", "len", "list", "map", "max", "min", "next",
        "print", "range", "repr", "reversed", "round", "set",
        "slice", "sorted", "str", "sum", "tuple", "type", "zip",
        "object", "super", "staticmethod", "classmethod", "property",
        "__build_class__", *_SAFE_EXCEPTIONS,
    ])
    blocked_attributes: frozenset[str] = frozenset({
        "__import__", "__builtins__", "__globals__", "__subclasses__",
        "__code__", "__closure__", "__bases__", "__base__", "__mro__",
        "__class__", "__dict__", "__getattribute__", "__loader__",
        "__spec__", "__reduce__", "__reduce_ex__", "__self__", "__func__",
        "__traceback__", "gi_frame", "gi_code", "f_globals", "f_locals",
        "f_builtins", "f_back", "tb_frame", "cr_frame", "ag_frame",
    })

    def build_builtins(self) -> dict[str, Any]:
        namespace = {
            name: getattr(builtins, name)
            for name in self.allowed_builtins
            if hasattr(builtins, name)
        }
        # Computed names bypass the static check, so these enforce it at runtime.
        if "getattr" in namespace:
            namespace["getattr"] = _guarded_getattr(self.blocked_attributes)
        if "hasattr" in namespace:
            namespace["hasattr"] = _guarded_hasattr(self.blocked_attributes)
        return namespace


@dataclass
class SandboxViolation:
    """A static-check violation found in provider source.

    Attributes:
        violation_type: ``syntax``, ``import`` or ``blocked_attribute``.
        message: Description of the violation.
        location: ``line:col`` of the offending node.
    """

    violation_type: str
    message: str
    location: str | None = None
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "violation_type": self.violation_type,
            "message": self.message,
            "location": self.location,
        }


class _SourceChecker(ast.NodeVisitor):
    def __init__(self, blocked: frozenset[str]):
        self._blocked = blocked
        self.violations: list[SandboxViolation] = []

    def _add(self, node: ast.AST, violation_type: str, message: str) -> None:
        self.violations.append(SandboxViolation(
            violation_type=violation_type,
            message=message,
            location=f"{getattr(node, 'lineno', '?')}:{getattr(node, 'col_offset', '?')}",
        ))

    def visit_Import(self, node: ast.Import) -> None:
        names = ", ".join(alias.name for alias in node.names)
        self._add(node, "import", f"import of '{names}' is not allowed")

    def visit_ImportFrom(self, node: ast.ImportFrom) -> None:
        self._add(node, "import", f"import from '{node.module or '.'}' is not allowed")

    def visit_Attribute(self, node: ast.Attribute) -> None:
        if node.attr in self._blocked:
            self._add(node, "blocked_attribute", f"access to '{node.attr}' is not allowed")
        self.generic_visit(node)

    def visit_Name(self, node: ast.Name) -> None:
        if node.id in self._blocked:
            self._add(node, "blocked_attribute", f"use of '{node.id}' is not allowed")

    def visit_ExceptHandler(self, node: ast.ExceptHandler) -> None:
        if node.type is None:
            self._add(node, "bare_except", "bare 'except:' is not allowed")
        self.generic_visit(node)

    def visit_Constant(self, node: ast.Constant) -> None:
        # Catches getattr(obj, "__globals__") style lookups.
        if isinstance(node.value, str) and node.value in self._blocked:
            self._add(node, "blocked_attribute", f"reference to '{node.value}' is not allowed")


def _require(name: str) -> Any:
    raise ExecutionError("require() is not supported in plugins", {"module": name})


class ScriptSandbox:
    """Evaluates scripted provider source in an isolated namespace.

    Example:
        sandbox = ScriptSandbox()
        module = await sandbox.evaluate(source, "ExampleProvider")
    """

    def __init__(self, policy: ScriptPolicy | None = None):
        self._policy = policy or ScriptPolicy()
        self._evaluations = 0
        self._rejections = 0

    @property
    def policy(self) -> ScriptPolicy:
        return self._policy

    def validate_source(self, source: str, filename: str = "<plugin>") -> list[SandboxViolation]:
        """Statically check *source* against the policy.

        Returns:
            Violations found; an empty list means the source may run.
        """
        try:
            tree = ast.parse(source, filename=filename)
        except SyntaxError as e:
            return [SandboxViolation(
                violation_type="syntax",
                message=f"{e.msg}",
                location=f"{e.lineno}:{e.offset}",
            )]
        checker = _SourceChecker(self._policy.blocked_attributes)
        checker.visit(tree)
        return checker.violations

    def build_namespace(self, plugin_name: str) -> dict[str, Any]:
        """Fresh globals for one evaluation."""
        exports: dict[str, Any] = {}
        namespace: dict[str, Any] = {
            "__builtins__": self._policy.build_builtins(),
            "__name__": f"mosaic_plugin_{plugin_name}",
            "module": SimpleNamespace(exports=exports),
            "exports": exports,
            "require": _require,
            "logger": logging.getLogger(f"mosaic.plugin.{plugin_name}"),
        }
        if self._policy.allow_network:
            namespace["fetch"] = self._make_fetch()
        return namespace

    def _make_fetch(self):
        timeout = self._policy.fetch_timeout

        async def fetch(url: str, method: str = "GET", **kwargs: Any) -> httpx.Response:
            async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
                return await client.request(method, url, **kwargs)

        return fetch

    async def evaluate(self, source: str, plugin_name: str) -> SimpleNamespace:
        """Run provider *source* and return its ``module`` object.

        Raises:
            ExecutionError: Static violations, a syntax error, an exception
                during evaluation, or a timeout.
        """
        self._evaluations += 1
        filename = f"<plugin:{plugin_name}>"

        violations = self.validate_source(source, filename)
        if violations:
            self._rejections += 1
            first = violations[0]
            raise ExecutionError(
                f"Plugin source rejected: {first.message} at {first.location}",
                {"violations": [v.to_dict() for v in violations]},
            )

        code = compile(source, filename, "exec")
        namespace = self.build_namespace(plugin_name)
        limit = self._policy.max_execution_time
        cancel = threading.Event()

        try:
            await asyncio.wait_for(
                asyncio.to_thread(
                    run_interruptible, exec, code, namespace, cancel=cancel, timeout=limit
                ),
                timeout=limit,
            )
        except (asyncio.TimeoutError, ScriptInterrupted) as e:
            cancel.set()
            raise ExecutionError(f"Plugin evaluation timed out after {limit}s") from e
        except asyncio.CancelledError:
            cancel.set()
            raise
        except ExecutionError:
            raise
        except Exception as e:
            raise ExecutionError(
                f"Plugin evaluation failed: {type(e).__name__}: {e}"
            ) from e

        return namespace["module"]

    def get_stats(self) -> dict[str, Any]:
        return {"evaluations": self._evaluations, "rejections": self._rejections}

    def __repr__(self) -> str:
        return f"<ScriptSandbox evaluations={self._evaluations} rejections={self._rejections}>"


def resolve_export(module: SimpleNamespace, plugin_name: str) -> Any:
    """Pick the provider object a script exported.

    ``exports["default"]`` wins over the exports container itself. A dict
    of callables is wrapped in a namespace and a class is instantiated.

    Raises:
        PluginValidationError: Nothing usable was exported.
        ExecutionError: Instantiating an exported class failed.
    """
    exported = getattr(module, "exports", None)
    candidate = exported
    if isinstance(exported, dict) and exported.get("default") is not None:
        candidate = exported["default"]

    if inspect.isclass(candidate):
        try:
            candidate = candidate()
        except Exception as e:
            raise ExecutionError(
                f"Failed to instantiate {plugin_name} provider: {e}"
            ) from e
    elif isinstance(candidate, dict):
        candidate = SimpleNamespace(**candidate)

    missing = [
        attr for attr in ("search", "load")
        if not callable(getattr(candidate, attr, None))
    ]
    if candidate is None or missing:
        raise PluginValidationError(
            f"Plugin {plugin_name} must export an object with search and load",
            {"missing": missing or ["search", "load"]},
        )
    return candidate
