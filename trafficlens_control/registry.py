"""
CommandRegistry - named control commands with declared payload fields.

Every handler receives the full JSON payload (``{"command": ..., ...}``).
Fields listed in ``required`` are checked before the handler runs, so a
handler never sees a payload missing one of its inputs.

Threading: register() takes a lock; lookups read a dict snapshot.
"""

import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Set, Tuple


class CommandNotAvailableError(Exception):
    """Raised when attempting to execute an unregistered command"""
    pass


class CommandPayloadError(ValueError):
    """Raised when a command payload lacks a required field"""
    pass


@dataclass(frozen=True)
class CommandSpec:
    name: str
    handler: Callable[[Dict[str, Any]], None]
    description: str
    required: Tuple[str, ...] = ()


class CommandRegistry:
    """
    Registry of control commands.

    Example:
        registry = CommandRegistry()
        registry.register('remove_entry', service.remove, "Remove a source",
                          required=('source',))

        try:
            registry.execute('remove_entry', {'command': 'remove_entry', 'source': '10.0.0.5'})
        except CommandNotAvailableError as e:
            print(f"Command not available: {e}")
    """

    def __init__(self):
        self._commands: Dict[str, CommandSpec] = {}
        self._lock = threading.Lock()

    def register(
        self,
        command: str,
        handler: Callable[[Dict[str, Any]], None],
        description: str,
        required: Tuple[str, ...] = (),
    ) -> None:
        """
        Register a command.

        Raises:
            ValueError: If the name is empty or already registered
        """
        name = command.strip().lower()
        if not name:
            raise ValueError("Command name cannot be empty")

        with self._lock:
            if name in self._commands:
                raise ValueError(f"Command '{name}' already registered")
            self._commands[name] = CommandSpec(
                name=name,
                handler=handler,
                description=description,
                required=tuple(required),
            )

    def execute(self, command: str, command_data: Dict[str, Any] = None) -> None:
        """
        Validate the payload and run the handler.

        Raises:
            CommandNotAvailableError: If command not registered
            CommandPayloadError: If a required field is missing or null
        """
        spec = self._commands.get(command)
        if spec is None:
            raise CommandNotAvailableError(
                f"Command '{command}' not available. "
                f"Available commands: {', '.join(sorted(self.available_commands))}"
            )

        payload = dict(command_data or {})
        missing = [f for f in spec.required if payload.get(f) is None]
        if missing:
            raise CommandPayloadError(
                f"Command '{command}' missing field(s): {', '.join(missing)}"
            )

        spec.handler(payload)

    @property
    def available_commands(self) -> Set[str]:
        return set(self._commands.keys())

    def get_help(self) -> Dict[str, str]:
        """Command name -> description, with required fields appended."""
        help_text = {}
        for name, spec in self._commands.items():
            text = spec.description
            if spec.required:
                text += f" (requires: {', '.join(spec.required)})"
            help_text[name] = text
        return help_text

    def __len__(self) -> int:
        return len(self._commands)
