"""Library for formatting output."""

from typing import Generator, Any

from typing import TextIO
import yaml


PADDING = 4


def format_columns(
    headers: list[str], rows: list[list[str]]
) -> Generator[str, None, None]:
    """Print the specified output rows in a column format."""
    data = [headers] + rows
    if not headers:
        return
    widths = [max(len(str(row[i])) for row in data) for i in range(len(headers))]
    format_string = "".join([f"{{:{w+PADDING}}}" for w in widths])
    for row in data:
        yield format_string.format(*[str(x) for x in row])


class PrintFormatter:
    """A formatter that prints human readable console output."""

    def __init__(self, keys: list[str] | None = None):
        """Initialize the PrintFormatter with optional keys to print."""
        self._keys = keys

    def format(self, data: list[dict[str, Any]]) -> Generator[str, None, None]:
        """Format the data objects."""
        if not data:
            return
        keys = self._keys if self._keys is not None else list(data[0])
        rows = [[str(row[key]) for key in keys] for row in data]
        yield from format_columns([key.upper() for key in keys], rows)

    def print(self, data: list[dict[str, Any]], file: TextIO | None = None) -> None:
        """Output the data objects, to the current stdout by default."""
        for result in self.format(data):
            print(result, file=file)


class YamlListFormatter:
    """A formatter that prints yaml output for a list of objects."""

    def format(self, data: Any) -> Generator[str, None, None]:
        """Format the data objects."""
        content = yaml.dump(data, sort_keys=False, explicit_start=True)
        yield from content.split("\n")

    def print(self, data: Any, file: TextIO | None = None) -> None:
        """Format the data objects."""
        print(yaml.dump(data, sort_keys=False, explicit_start=True), end="", file=file)
