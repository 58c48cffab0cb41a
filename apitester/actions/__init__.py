# apitester/actions/__init__.py
"""
Action Registry

Holds built-in actions and custom actions loaded from files at startup.
A custom action file is a Python module exposing either a module-level
perform(config, context) callable or an `Action` class deriving from
AbstractAction. Its registered name comes from the file name.
"""

from __future__ import annotations

import importlib.util
import inspect
import logging
import re
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Type, Union

from apitester.actions.base import AbstractAction, ActionContext, FunctionAction
from apitester.actions.crypto import MacAction
from apitester.suite_types import ActionError, ConfigurationError, ConflictError, UnknownActionError

logger = logging.getLogger(__name__)

BUILTIN_SOURCE = "builtin"

# Built-in plugin table
BUILTIN_ACTIONS: Dict[str, Type[AbstractAction]] = {
    "mac": MacAction,
}

_SUFFIX_RE = re.compile(r"[-_.]?action$", re.I)


def action_name_from_path(path: Union[str, Path]) -> str:
    """
    Derive an action name from its file location.

    'lib/actions/HmacSignAction.py' -> 'hmacsign'
    'signer_action.py'              -> 'signer'
    """
    stem = Path(str(path).rstrip("/\\")).name
    stem = stem.split(".", 1)[0] if "." in stem else stem
    name = _SUFFIX_RE.sub("", stem).lower()
    if not name:
        raise ConfigurationError(f"cannot derive an action name from {str(path)!r}")
    return name


class ActionRegistry:
    """
    Name -> action map. Read-mostly once setup finishes, so one instance may
    be shared by concurrently running tests.
    """

    def __init__(self, include_builtins: bool = True):
        self._actions: Dict[str, AbstractAction] = {}
        self._sources: Dict[str, str] = {}
        if include_builtins:
            for name, cls in BUILTIN_ACTIONS.items():
                self.register(name, cls(), source=BUILTIN_SOURCE)

    def register(
        self,
        name: str,
        implementation: Union[AbstractAction, Callable[..., Any]],
        source: Optional[str] = None,
    ) -> None:
        """
        Bind `name` to an implementation.

        Raises:
            ConflictError: name already bound to an implementation from another source
        """
        key = name.lower()
        if source is None:
            source = f"{getattr(implementation, '__module__', '?')}.{getattr(implementation, '__qualname__', type(implementation).__qualname__)}"

        existing = self._sources.get(key)
        if existing is not None:
            if existing == source:
                logger.debug(f"Action '{key}' already registered from {source}")
                return
            raise ConflictError(f"Action '{key}' is already registered from {existing} (attempted {source})")

        if isinstance(implementation, AbstractAction):
            action = implementation
        elif callable(implementation):
            action = FunctionAction(key, implementation)
        else:
            raise ConfigurationError(f"Action '{key}' is not callable")

        self._actions[key] = action
        self._sources[key] = source
        logger.debug(f"Registered action '{key}' from {source}")

    def load_from_path(self, path: Union[str, Path]) -> str:
        """
        Import a custom action file and register it under its derived name.

        Returns:
            The registered name
        """
        p = Path(path)
        if not p.is_file():
            raise ConfigurationError(f"Custom action file not found: {p}")

        name = action_name_from_path(p)
        spec = importlib.util.spec_from_file_location(f"apitester_custom_actions.{name}", p)
        if spec is None or spec.loader is None:
            raise ConfigurationError(f"Cannot import custom action from {p}")

        module = importlib.util.module_from_spec(spec)
        try:
            spec.loader.exec_module(module)
        except Exception as e:
            raise ConfigurationError(f"Failed loading custom action {p}: {e}") from e

        impl = self._implementation_from_module(module, name)
        if impl is None:
            raise ConfigurationError(f"{p} defines neither perform(config, context) nor an Action class")

        self.register(name, impl, source=str(p.resolve()))
        logger.info(f"Loaded custom action '{name}' from {p}")
        return name

    def load_all(self, paths: Iterable[Union[str, Path]]) -> List[str]:
        return [self.load_from_path(p) for p in paths]

    @staticmethod
    def _implementation_from_module(module: Any, name: str) -> Optional[Union[AbstractAction, Callable[..., Any]]]:
        cls = getattr(module, "Action", None)
        if inspect.isclass(cls) and issubclass(cls, AbstractAction):
            return cls()
        func = getattr(module, "perform", None)
        if callable(func):
            return FunctionAction(name, func)
        return None

    def get(self, name: str) -> AbstractAction:
        try:
            return self._actions[name.lower()]
        except KeyError:
            raise UnknownActionError(name) from None

    async def invoke(self, name: str, config: Mapping[str, Any], context: ActionContext) -> Any:
        """
        Run an action.

        Raises:
            UnknownActionError: name is not registered
            ActionError: the action failed; `cause` holds the original error
        """
        action = self.get(name)
        return await action.execute(config, context)

    def names(self) -> List[str]:
        return sorted(self._actions)

    def __contains__(self, name: str) -> bool:
        return name.lower() in self._actions

    def __len__(self) -> int:
        return len(self._actions)


__all__ = [
    "AbstractAction",
    "ActionContext",
    "ActionError",
    "ActionRegistry",
    "BUILTIN_ACTIONS",
    "FunctionAction",
    "MacAction",
    "action_name_from_path",
]
