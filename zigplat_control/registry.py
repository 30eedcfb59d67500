"""
CommandRegistry - Explicit command registration pattern

Bounded Context: Device command registration and validation
Responsibilities:
  - Register commands with handlers
  - Validate command existence before execution
  - Provide introspection (available_commands, get_help)

Design Motivation:
  Problem: A free-form "if message == ..." chain hides which commands a
           device accepts
  Solution: Explicit registration; unknown payloads fail fast

Threading: Thread-safe (uses lock for write operations)
"""

from typing import Dict, Callable, Set
import threading


class CommandNotAvailableError(Exception):
    """Raised when attempting to execute an unregistered command"""
    pass


class CommandRegistry:
    """
    Registry for device commands with explicit registration.

    Thread Safety:
      - Uses lock for write operations (register)
      - Read operations are lock-free (immutable dict reads)

    Example:
        registry = CommandRegistry()
        registry.register('restart', platform.restart, "Reconnect, keep credential")

        try:
            registry.execute('restart')
        except CommandNotAvailableError as e:
            print(f"Command not available: {e}")
    """

    def __init__(self):
        self._commands: Dict[str, Callable[[], None]] = {}
        self._descriptions: Dict[str, str] = {}
        self._lock = threading.Lock()

    def register(self, command: str, handler: Callable[[], None], description: str) -> None:
        """
        Register a command with its handler function.

        Args:
            command: Command name (lowercase, no spaces)
            handler: Zero-argument callable that executes the command
            description: Human-readable description for help text

        Raises:
            ValueError: If command already registered (double registration)
        """
        with self._lock:
            if command in self._commands:
                raise ValueError(f"Command '{command}' already registered")

            self._commands[command] = handler
            self._descriptions[command] = description

    def execute(self, command: str) -> None:
        """
        Execute a registered command.

        Raises:
            CommandNotAvailableError: If command not registered
        """
        if command not in self._commands:
            raise CommandNotAvailableError(
                f"Command '{command}' not available. "
                f"Available commands: {', '.join(sorted(self.available_commands))}"
            )

        self._commands[command]()

    def is_available(self, command: str) -> bool:
        return command in self._commands

    @property
    def available_commands(self) -> Set[str]:
        """Snapshot of all registered command names."""
        return set(self._commands.keys())

    def get_help(self) -> Dict[str, str]:
        """Snapshot of command names with descriptions."""
        return dict(self._descriptions)

    def count(self) -> int:
        return len(self._commands)
