from __future__ import annotations

from typing import Dict, List, Optional

import click

from hc_admin import constants
from hc_admin.models.setup import ConductorInfo


def msg(text: str) -> None:
    """Print a user-facing line prefixed with `hc-admin:`."""
    click.echo(f"{click.style(constants.MESSAGE_PREFIX, fg='blue', bold=True)} {text}")


def table(headers: List[str], rows: List[List[str]], max_widths: Optional[Dict[int, int]] = None) -> str:
    """Format data as ASCII table."""
    if not rows:
        return "No data"

    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            if i < len(widths):
                widths[i] = max(widths[i], len(str(cell)))

    if max_widths:
        for i, max_w in max_widths.items():
            if i < len(widths):
                widths[i] = min(widths[i], max_w)

    header_line = "  ".join(h.ljust(widths[i]) for i, h in enumerate(headers))
    separator = "  ".join("-" * w for w in widths)
    row_lines = []
    for row in rows:
        row_lines.append(
            "  ".join(str(cell)[: widths[i]].ljust(widths[i]) for i, cell in enumerate(row))
        )

    return "\n".join([header_line, separator] + row_lines)


def conductor_table(infos: List[ConductorInfo]) -> str:
    rows = [
        [
            str(info.index),
            info.status.value,
            "" if info.port is None else str(info.port),
            "" if info.pid is None else str(info.pid),
            str(info.path),
            info.error or "",
        ]
        for info in infos
    ]
    return table(["INDEX", "STATUS", "PORT", "PID", "PATH", "ERROR"], rows, max_widths={5: 80})
