"""Command registry backing the command palette and menu actions."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable

__all__ = ["Command", "CommandRegistry"]

LOGGER = logging.getLogger(__name__)

RegistryListener = Callable[[], None]


@dataclass(slots=True, frozen=True)
class Command:
    """A named action; ``callback`` may be sync or async."""

    command_id: str
    name: str
    callback: Callable[[], Any]


class CommandRegistry:
    """Keeps the registered commands and notifies listeners on changes."""

    def __init__(self) -> None:
        self._commands: dict[str, Command] = {}
        self._listeners: list[RegistryListener] = []

    def register(self, command: Command) -> None:
        if command.command_id in self._commands:
            raise ValueError(f"Command already registered: {command.command_id}")
        self._commands[command.command_id] = command
        LOGGER.debug("Registered command %s", command.command_id)
        self._notify()

    def unregister(self, command_id: str) -> bool:
        removed = self._commands.pop(command_id, None)
        if removed is None:
            return False
        LOGGER.debug("Unregistered command %s", command_id)
        self._notify()
        return True

    def get(self, command_id: str) -> Command | None:
        return self._commands.get(command_id)

    def __contains__(self, command_id: object) -> bool:
        return command_id in self._commands

    def commands(self) -> list[Command]:
        return list(self._commands.values())

    async def execute(self, command_id: str) -> Any:
        """Run a command, awaiting it when the callback is a coroutine."""

        command = self._commands.get(command_id)
        if command is None:
            raise KeyError(command_id)
        result = command.callback()
        if inspect.isawaitable(result):
            result = await result
        return result

    def add_listener(self, listener: RegistryListener) -> None:
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:  # pragma: no cover - listener isolation
                LOGGER.debug("Command registry listener failed", exc_info=True)
