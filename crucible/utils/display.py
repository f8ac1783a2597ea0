"""
Task display for Crucible.

Prints one line per resource transition (creating, created, skipped, ...).
Thread-safe singleton so every scope shares one console.
"""

import threading
from typing import Optional

from rich.console import Console
from rich.theme import Theme

crucible_theme = Theme({
    "fqn": "dim white",
    "creating": "cyan",
    "created": "bold green",
    "updating": "yellow",
    "updated": "bold yellow",
    "replaced": "bold magenta",
    "deleting": "red",
    "deleted": "bold red",
    "skipped": "dim",
    "cleanup": "red",
    "cleaned": "bold red",
    "read": "blue",
    "error": "bold red",
})

TRANSITIONS = frozenset({
    "creating", "created", "updating", "updated", "replaced",
    "deleting", "deleted", "skipped", "cleanup", "cleaned", "read",
})


class TaskDisplay:
    """
    Console output for resource transitions.

    Usage:
        display = TaskDisplay()
        display.task("app/dev/bucket", "created", "Created Resource")
    """

    _instance: Optional["TaskDisplay"] = None
    _lock = threading.Lock()

    console: Console
    _print_lock: threading.Lock

    def __new__(cls) -> "TaskDisplay":
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    instance = super().__new__(cls)
                    instance.console = Console(theme=crucible_theme, stderr=True)
                    instance._print_lock = threading.Lock()
                    cls._instance = instance
        return cls._instance

    def task(
        self,
        fqn: str,
        status: str,
        message: str,
        prefix: Optional[str] = None,
        quiet: bool = False,
    ) -> None:
        """Print one transition line unless ``quiet``."""
        if quiet:
            return
        style = status if status in TRANSITIONS else "fqn"
        label = (prefix or status).upper()
        with self._print_lock:
            self.console.print(
                f"[{style}]{label:>9}[/{style}] [fqn]{fqn}[/fqn] {message}",
                highlight=False,
            )

    def error(self, message: str) -> None:
        with self._print_lock:
            self.console.print(f"[error]❌ {message}[/error]", highlight=False)

    @classmethod
    def reset_instance(cls) -> None:
        """Reset singleton instance (useful for testing)."""
        cls._instance = None


def get_display() -> TaskDisplay:
    """Get the shared TaskDisplay."""
    return TaskDisplay()
