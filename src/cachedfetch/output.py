"""Where cachedfetch writes: payloads to stdout, diagnostics to stderr.

Only fetched payloads reach stdout, so ``cachedfetch fetch /users | jq``
keeps working whatever else happens.  Everything else goes to stderr
through the process-wide :class:`OutputManager` returned by
:func:`get_output`:

* errors, always;
* informational notes such as ``Wrote <path>``, unless ``--quiet``;
* retry notices and cache hits or misses, which the executor and the
  cached client report at debug level and which only show with
  ``--verbose``.

Colour follows ``--no-color``, ``NO_COLOR`` and ``TERM=dumb``.
"""

from __future__ import annotations

import json
import os
import sys
from enum import Enum
from typing import Any, Iterator, Optional

from rich.console import Console


class OutputFormat(str, Enum):
    """How :meth:`OutputManager.format_response` renders a payload."""

    AUTO = "auto"
    JSON = "json"
    PLAIN = "plain"
    RICH = "rich"


class OutputManager:
    """Renders payloads and diagnostics for one CLI invocation.

    Args:
        format: Payload format.  ``AUTO`` becomes ``RICH`` on a colour
            terminal and ``PLAIN`` when stdout is piped.
        no_color: Disable colour on both streams.
        quiet: Hide :meth:`info` notes.  Errors still show.
        verbose: Show :meth:`debug` lines (retries, cache traffic).
    """

    def __init__(
        self,
        format: OutputFormat = OutputFormat.AUTO,
        no_color: bool = False,
        quiet: bool = False,
        verbose: bool = False,
    ) -> None:
        no_color = no_color or _colour_disabled_by_env()
        if format == OutputFormat.AUTO:
            format = OutputFormat.RICH if _is_tty() and not no_color else OutputFormat.PLAIN
        self._format = format
        self._quiet = quiet
        self._verbose = verbose
        # No explicit file: rich then resolves sys.stdout / sys.stderr on every write.
        self._stdout = Console(no_color=no_color)
        self._stderr = Console(stderr=True, no_color=no_color, highlight=False)

    @property
    def format(self) -> OutputFormat:
        return self._format

    @property
    def is_verbose(self) -> bool:
        return self._verbose

    # ----- payloads (stdout) ----- #

    def format_response(self, data: Any) -> None:
        """Write a decoded response body to stdout.

        ``None`` (an empty body) writes nothing.  In ``JSON`` mode a text
        body is written unchanged, since it already failed JSON decoding.
        """
        if data is None:
            return
        if self._format == OutputFormat.JSON:
            if isinstance(data, str):
                self.print_data(data)
            else:
                self.print_data(json.dumps(data, indent=2, ensure_ascii=False, default=str))
        elif self._format == OutputFormat.PLAIN:
            for line in _plain_lines(data):
                self.print_data(line)
        elif isinstance(data, (dict, list)):
            self._stdout.print_json(data=data, default=str)
        else:
            self._stdout.print(str(data), markup=False, highlight=False, soft_wrap=True)

    def print_data(self, text: str) -> None:
        """Write *text* and a newline to stdout, unstyled."""
        print(text, file=sys.stdout, flush=True)

    # ----- diagnostics (stderr) ----- #

    def info(self, message: str) -> None:
        if not self._quiet:
            self._diagnostic(message)

    def error(self, message: str) -> None:
        self._diagnostic(f"Error: {message}", style="bold red")

    def debug(self, message: str) -> None:
        """Report a retry or cache event.  Shown only in verbose mode."""
        if self._verbose:
            self._diagnostic(f"[debug] {message}", style="dim")

    def _diagnostic(self, text: str, style: Optional[str] = None) -> None:
        self._stderr.print(text, style=style, markup=False, soft_wrap=True)


def _plain_lines(data: Any) -> Iterator[str]:
    """Tab-separated lines: ``key<TAB>value`` for objects, one row per list item."""
    if isinstance(data, dict):
        for key, value in data.items():
            yield f"{key}\t{value}"
    elif isinstance(data, list):
        for item in data:
            if isinstance(item, dict):
                yield "\t".join(str(value) for value in item.values())
            else:
                yield str(item)
    else:
        yield str(data)


def _is_tty() -> bool:
    return sys.stdout.isatty()


def _colour_disabled_by_env() -> bool:
    return "NO_COLOR" in os.environ or os.environ.get("TERM") == "dumb"


# ----- process-wide instance ----- #

_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """Return the installed :class:`OutputManager`, creating a default one on first use."""
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: OutputManager) -> None:
    global _output
    _output = output


def reset_output() -> None:
    """Forget the installed manager.  Tests call this between cases."""
    global _output
    _output = None
