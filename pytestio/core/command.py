"""Step logging wrappers for remote driver and element handles."""

from __future__ import annotations

import functools
import inspect
import json
import logging
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from pytestio.core.hooks import Hooks

logger = logging.getLogger("pytestio.command")

# Lookup methods whose results are wrapped, with the label used in step titles
ELEMENT_METHODS = {
    "find_element": "element",
    "find_elements": "elements",
}


def format_argument(arg: Any) -> str:
    """Format one call argument for a step title.

    JSON when possible, a function descriptor for callables, else ``str()``.
    """
    if inspect.isroutine(arg) or (callable(arg) and not inspect.isclass(arg) and not hasattr(arg, "__dict__")):
        name = getattr(arg, "__name__", "")
        if not name or name == "<lambda>":
            return "function (anonymous)"
        return f"function ({name})"

    try:
        return json.dumps(arg)
    except (TypeError, ValueError):
        return str(arg)


def serialize_arguments(args: tuple[Any, ...], kwargs: dict[str, Any] | None = None) -> str:
    """Join formatted positional and keyword arguments."""
    parts = [format_argument(arg) for arg in args]
    parts.extend(f"{key}={format_argument(value)}" for key, value in (kwargs or {}).items())
    return ", ".join(parts)


def step_title(owner: str, method: str, args: tuple[Any, ...], kwargs: dict[str, Any] | None = None) -> str:
    """Build a step title like ``driver.find_element("id", "login")``."""
    return f"{owner}.{method}({serialize_arguments(args, kwargs)})"


def wrap_element(result: Any, label: str, on_step: Callable[[str], None]) -> Any:
    """Wrap an element lookup result (single element or list of elements)."""
    if result is None:
        return result
    if isinstance(result, list):
        return [InstrumentedElement(item, label, on_step) for item in result]
    return InstrumentedElement(result, label, on_step)


def unwrap(value: Any) -> Any:
    """Replace instrumented elements with the elements they wrap.

    Walks lists, tuples and dicts so that handles nested in script arguments
    or gesture payloads reach the client as real elements.
    """
    if isinstance(value, InstrumentedElement):
        return value.wrapped
    if isinstance(value, list):
        return [unwrap(item) for item in value]
    if isinstance(value, tuple):
        return tuple(unwrap(item) for item in value)
    if isinstance(value, dict):
        return {key: unwrap(item) for key, item in value.items()}
    return value


def is_property(obj: Any, name: str) -> bool:
    """Whether ``name`` is a property on the class of ``obj``."""
    try:
        return isinstance(inspect.getattr_static(type(obj), name), property)
    except AttributeError:
        return False


class InstrumentedElement:
    """Element handle that logs a step for every public method call.

    Private and dunder attributes are forwarded without logging.
    """

    def __init__(self, element: Any, label: str, on_step: Callable[[str], None]):
        self._element = element
        self._label = label
        self._on_step = on_step

    @property
    def wrapped(self) -> Any:
        return self._element

    def __getattr__(self, name: str) -> Any:
        value = getattr(self._element, name)
        if name.startswith("_") or not callable(value):
            return value

        @functools.wraps(value)
        def logged(*args: Any, **kwargs: Any) -> Any:
            self._on_step(step_title(self._label, name, args, kwargs))
            result = value(*unwrap(args), **unwrap(kwargs))
            if name in ELEMENT_METHODS:
                return wrap_element(result, ELEMENT_METHODS[name], self._on_step)
            return result

        return logged

    def __eq__(self, other: object) -> bool:
        if isinstance(other, InstrumentedElement):
            other = other.wrapped
        return self._element == other

    def __hash__(self) -> int:
        return hash(self._element)

    def __repr__(self) -> str:
        return f"<InstrumentedElement {self._label} {self._element!r}>"


class InstrumentedDriver:
    """Driver handle that logs a step for every public method call.

    Calls are surrounded by the ``before_command``/``after_command`` service
    hooks. Reading a property of the driver class (``title``,
    ``current_url``, ``page_source``, ...) sends a remote command too, so it
    is logged as ``driver.<name>`` with the same hooks. Results of
    ``find_element``/``find_elements`` are wrapped so that element
    interactions are logged too; wrapped elements passed back as arguments
    are unwrapped before they reach the client.

    Usage:
        driver = InstrumentedDriver(remote_driver, test_info.step, hooks)
        driver.find_element("id", "login").click()
        # steps: driver.find_element("id", "login"), element.click()
    """

    def __init__(self, driver: Any, on_step: Callable[[str], None], hooks: Hooks | None = None):
        object.__setattr__(self, "_driver", driver)
        object.__setattr__(self, "_on_step", on_step)
        object.__setattr__(self, "_hooks", hooks)

    @property
    def wrapped(self) -> Any:
        return self._driver

    def _run_command(self, name: str, args: list[Any], command: Callable[[], Any]) -> Any:
        if self._hooks is not None:
            self._hooks.before_command(name, args)

        try:
            result = command()
        except Exception as e:
            if self._hooks is not None:
                self._hooks.after_command(name, args, None, e)
            raise

        if self._hooks is not None:
            self._hooks.after_command(name, args, result, None)
        return result

    def __getattr__(self, name: str) -> Any:
        if not name.startswith("_") and is_property(self._driver, name):
            self._on_step(f"driver.{name}")
            return self._run_command(name, [], lambda: getattr(self._driver, name))

        value = getattr(self._driver, name)
        if name.startswith("_") or not callable(value):
            return value

        @functools.wraps(value)
        def logged(*args: Any, **kwargs: Any) -> Any:
            self._on_step(step_title("driver", name, args, kwargs))
            call_args, call_kwargs = unwrap(args), unwrap(kwargs)
            result = self._run_command(name, list(call_args), lambda: value(*call_args, **call_kwargs))

            if name in ELEMENT_METHODS:
                return wrap_element(result, ELEMENT_METHODS[name], self._on_step)
            return result

        return logged

    def __setattr__(self, name: str, value: Any) -> None:
        setattr(self._driver, name, value)

    def __repr__(self) -> str:
        return f"<InstrumentedDriver {self._driver!r}>"
