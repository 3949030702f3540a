"""
Rspamd Monitor - Terminal Charts.

============================================================
CHART RENDERING
============================================================

Draws one ASCII line chart per non-empty series, each under
a caption with the window statistics:

[Label: spam msg/sec] [LAST: 1.00] [AVG: 0.75] [MIN: 0.50] [MAX: 1.00]

Output goes through a rich Console so colours degrade
gracefully when stdout is not a terminal.

============================================================
"""

import math
from typing import Iterable, List, Optional, Sequence

import asciichartpy
from rich.console import Console
from rich.text import Text

from .aggregator import StatAggregator
from .models import SeriesView


LABEL_FORMAT = "{:8.2f} "


def ascii_chart(values: Sequence[float], height: int = 6, width: Optional[int] = None) -> str:
    """
    Render values as a multi-line ASCII chart with a y-axis.

    Args:
        values: Points to plot, oldest first
        height: Number of rows spanned by the value range
        width: Keep only the last `width` points

    Returns:
        Chart text, empty string for no values
    """
    points = list(values)
    if width is not None and len(points) > width:
        points = points[-width:]
    if not points:
        return ""

    cfg = {"height": height, "format": LABEL_FORMAT}
    low, high = min(points), max(points)
    if low == high and math.isfinite(low):
        # Flat line: span the enclosing integers so each row gets its own label
        cfg["min"], cfg["max"] = math.floor(low), math.ceil(high)
    return asciichartpy.plot(points, cfg)


def caption(view: SeriesView) -> Text:
    """Coloured caption line with LAST / AVG / MIN / MAX."""
    summary = view.summary()
    if summary is None:
        return Text(f"[Label: {view.label}]")
    return Text.assemble(
        "[Label: ", (view.label, "bold"), "] ",
        "[LAST: ", (f"{summary.last:.2f}", "bright_magenta underline"), "] ",
        "[AVG: ", (f"{summary.mean:.2f}", "bold white"), "] ",
        "[MIN: ", (f"{summary.min:.2f}", "bold green"), "] ",
        "[MAX: ", (f"{summary.max:.2f}", "bold red"), "]",
    )


class ChartRenderer:
    """Redraws all series charts on every cycle."""

    def __init__(
        self,
        console: Optional[Console] = None,
        height: int = 6,
        clear: bool = True,
    ) -> None:
        self._console = console or Console()
        self._height = height
        self._clear = clear

    def __call__(self, aggregator: StatAggregator) -> None:
        self.draw(aggregator.views())

    def render(self, views: Iterable[SeriesView]) -> List[Text]:
        """Caption and chart for each non-empty view."""
        blocks = []
        for view in views:
            if view.is_empty:
                continue
            blocks.append(caption(view))
            blocks.append(Text(ascii_chart(view.history, self._height, view.capacity)))
        return blocks

    def draw(self, views: Iterable[SeriesView]) -> None:
        if self._clear:
            self._console.clear()
        for block in self.render(views):
            self._console.print(block, soft_wrap=True)
