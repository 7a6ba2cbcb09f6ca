# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Column-aligned plain-text tables."""


def format_table(rows: list[list[str]], padding: int = 3) -> str:
    """Align *rows* into columns separated by at least *padding* spaces.

    The last column is not padded.  Returns an empty string for no rows.

    Example::

        >>> print(format_table([["ID", "NAME"], ["abc", "web"]]))
        ID    NAME
        abc   web
    """
    if not rows:
        return ""
    columns = max(len(row) for row in rows)
    widths = [0] * columns
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(cell))
    lines = []
    for row in rows:
        cells = [
            cell if i == len(row) - 1 else cell.ljust(widths[i] + padding)
            for i, cell in enumerate(row)
        ]
        lines.append("".join(cells))
    return "\n".join(lines) + "\n"
