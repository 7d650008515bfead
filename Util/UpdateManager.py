import threading
from typing import Callable, Iterable, List


class UpdateManager:
    """
    Progress and status sink shared by the training code.

    Messages are printed with the same `[Component] message` convention the
    rest of the package uses. The sink is purely observational: listeners and
    console output never feed back into training.
    """

    console_output = True
    indent_string = "  "

    _lock = threading.Lock()
    _indent = 0
    _listeners: List[Callable[[str], None]] = []
    _progress_shown = -1

    @classmethod
    def add_listener(cls, listener: Callable[[str], None]) -> None:
        with cls._lock:
            cls._listeners.append(listener)

    @classmethod
    def remove_listener(cls, listener: Callable[[str], None]) -> None:
        with cls._lock:
            if listener in cls._listeners:
                cls._listeners.remove(listener)

    @classmethod
    def add_indent(cls) -> None:
        with cls._lock:
            cls._indent += 1

    @classmethod
    def remove_indent(cls) -> None:
        with cls._lock:
            cls._indent = max(0, cls._indent - 1)

    @classmethod
    def reset_indent(cls) -> None:
        with cls._lock:
            cls._indent = 0

    @classmethod
    def write(cls, message: str, *args) -> None:
        """Emit one formatted line at the current indent level."""
        if args:
            message = message.format(*args)
        with cls._lock:
            line = cls.indent_string * cls._indent + message
            listeners = list(cls._listeners)
            if cls.console_output:
                print(line)
        for listener in listeners:
            listener(line)

    @classmethod
    def write_line(cls, message: str = "", *args) -> None:
        cls.write(message, *args)

    @classmethod
    def raise_progress(cls, value: int, maximum: int) -> None:
        """Report progress in whole percent, printing only when the percentage changes."""
        if maximum <= 0:
            return
        percent = int(100 * value / maximum)
        with cls._lock:
            if percent == cls._progress_shown:
                return
            cls._progress_shown = percent
        if percent % 10 == 0:
            cls.write("{0}%", percent)

    @classmethod
    def progress_enum(cls, items: Iterable) -> Iterable:
        """Yield from `items` while reporting progress."""
        items = list(items)
        total = len(items)
        for i, item in enumerate(items):
            cls.raise_progress(i, total)
            yield item
        cls.raise_progress(total, total)
        with cls._lock:
            cls._progress_shown = -1
