"""Library for formatting output."""

from abc import ABC, abstractmethod
from collections.abc import Generator
import json
import sys
from typing import Any, TextIO

import yaml


PADDING = 4


def column_format_string(rows: list[list[str]]) -> str:
    """Produce a format string based on max width of columns."""
    widths = [0] * len(rows[0])
    for row in rows:
        for i, value in enumerate(row):
            widths[i] = max(widths[i], len(value))
    return "".join([f"{{:{w + PADDING}}}" for w in widths])


class PrintFormatter:
    """A formatter that prints a human readable table."""

    def __init__(self, keys: list[str] | None = None):
        """Initialize the PrintFormatter with optional keys to print."""
        self._keys = keys

    def format(self, data: list[dict[str, Any]]) -> Generator[str, None, None]:
        """Format the data objects as rows under a header."""
        if not data:
            return
        keys = self._keys if self._keys is not None else list(data[0])
        rows = [[key.upper() for key in keys]]
        rows.extend([str(row.get(key, "")) for key in keys] for row in data)
        format_string = column_format_string(rows)
        for row in rows:
            yield format_string.format(*row).rstrip()

    def print(
        self, data: list[dict[str, Any]], file: TextIO | None = None
    ) -> None:
        """Output the data objects, to stdout unless another file is given."""
        for result in self.format(data):
            print(result, file=file or sys.stdout)


class StructFormatter(ABC):
    """A formatter that prints a single structured object."""

    @abstractmethod
    def format(self, data: Any) -> str:
        """Format the data object."""

    def print(self, data: Any, file: TextIO | None = None) -> None:
        """Print the data object, to stdout unless another file is given."""
        print(self.format(data), end="", file=file or sys.stdout)


class YamlFormatter(StructFormatter):
    """A formatter that prints yaml output."""

    def format(self, data: Any) -> str:
        """Format the data object."""
        return yaml.dump(data, sort_keys=False, explicit_start=True)


class JsonFormatter(StructFormatter):
    """A formatter that prints json output."""

    def format(self, data: Any) -> str:
        """Format the data object."""
        return json.dumps(data, indent=4, sort_keys=False) + "\n"


FORMATTERS: dict[str, type[StructFormatter]] = {
    "yaml": YamlFormatter,
    "json": JsonFormatter,
}
