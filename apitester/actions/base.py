# apitester/actions/base.py
"""
Base class for actions.
All actions must inherit from AbstractAction or be wrapped in FunctionAction.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

from apitester.suite_types import ActionError, Step

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActionContext:
    """What an action may look at. Nothing here is writable."""
    test_id: str
    variables: Mapping[str, Any]
    step: Optional[Step] = None
    response: Optional[Any] = None


class AbstractAction(ABC):
    """
    Abstract base class for all actions.
    Actions are pure: perform(config, context) -> value, no state kept between calls.
    """

    # Run perform() in a worker thread; set for actions doing blocking I/O
    blocking: bool = False

    @property
    @abstractmethod
    def name(self) -> str:
        """Action name (e.g., 'mac')."""
        pass

    @abstractmethod
    def perform(self, config: Mapping[str, Any], context: ActionContext) -> Any:
        """
        Compute the action's value.

        Args:
            config: Resolved invocation configuration
            context: Read-only view of the step being executed
        """
        pass

    async def execute(self, config: Mapping[str, Any], context: ActionContext) -> Any:
        """
        Run perform() and wrap any failure in ActionError.

        Coroutine results are awaited, so perform() may be async.
        """
        try:
            if self.blocking:
                value = await asyncio.to_thread(self.perform, config, context)
            else:
                value = self.perform(config, context)
            if inspect.isawaitable(value):
                value = await value
            logger.debug(f"Action '{self.name}' completed")
            return value

        except asyncio.CancelledError:
            raise

        except ActionError:
            raise

        except Exception as e:
            logger.warning(f"Action '{self.name}' failed: {e}")
            raise ActionError(self.name, e) from e


class FunctionAction(AbstractAction):
    """Adapter for a plain perform(config, context) callable."""

    def __init__(self, name: str, func: Callable[..., Any], blocking: bool = False):
        self._name = name
        self._func = func
        self.blocking = blocking

    @property
    def name(self) -> str:
        return self._name

    def perform(self, config: Mapping[str, Any], context: ActionContext) -> Any:
        return self._func(config, context)
