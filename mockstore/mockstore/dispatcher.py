"""Function dispatch registry.

Handlers register themselves via the ``@registry.handler`` decorator.
The dispatcher maps Miva function names to async callables — nothing more.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

log = logging.getLogger(__name__)

INVALID_FUNCTION = "MER-JSN-00018"

# Type alias for a function handler: async (call, catalog) -> result object
HandlerFn = Callable[[dict[str, Any], Any], Awaitable[dict[str, Any]]]


class FunctionNotFoundError(Exception):
    """Raised when no handler is registered for the requested function."""

    def __init__(self, function: str) -> None:
        self.function = function
        self.code = INVALID_FUNCTION
        super().__init__("Invalid function")

    def to_result(self) -> dict[str, Any]:
        return {"success": 0, "error_code": self.code, "error_message": str(self)}


class Registry:
    """A simple function name → handler mapping.

    Usage::

        registry = Registry()

        @registry.handler("Product_Load_Code")
        async def product_load(call, catalog):
            return {"success": 1, "data": catalog.products[call["Product_Code"]]}

        result = await registry.dispatch("Product_Load_Code", {...}, catalog)
    """

    def __init__(self) -> None:
        self._handlers: dict[str, HandlerFn] = {}

    # -- Registration --------------------------------------------------
    def handler(self, function: str) -> Callable[[HandlerFn], HandlerFn]:
        """Decorator that registers *fn* under *function*."""

        def decorator(fn: HandlerFn) -> HandlerFn:
            if function in self._handlers:
                log.warning("overwriting handler for %r", function)
            self._handlers[function] = fn
            log.debug("registered handler %r → %s", function, fn.__qualname__)
            return fn

        return decorator

    # -- Dispatch ------------------------------------------------------
    async def dispatch(self, function: str, call: dict[str, Any], catalog: Any) -> dict[str, Any]:
        """Call the handler for *function* and return its result object.

        Raises ``FunctionNotFoundError`` if the function is not registered.
        """
        fn = self._handlers.get(function)
        if fn is None:
            raise FunctionNotFoundError(function)
        return await fn(call, catalog)

    # -- Introspection -------------------------------------------------
    @property
    def functions(self) -> list[str]:
        return list(self._handlers.keys())

    def is_registered(self, function: str) -> bool:
        return function in self._handlers
