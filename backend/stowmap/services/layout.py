"""Pure geometry for drawer grids, splits and merges.

Nothing here touches the database. Compartment coordinates are centers
relative to the parent drawer's center, so a drawer of size ``W x H`` spans
``[-W/2, W/2] x [-H/2, H/2]`` in this frame.
"""

import enum
import math
from dataclasses import dataclass, field
from typing import Iterable, Optional, Protocol, Sequence

from ..errors import SplitTooNarrow, ValidationError

EPSILON = 1e-6


class SplitOrientation(str, enum.Enum):
    # A vertical cut is a line x = position; a horizontal cut is y = position.
    vertical = "vertical"
    horizontal = "horizontal"


class Placed(Protocol):
    id: int
    x: float
    y: float
    width: float
    height: float
    z_index: int


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float

    @property
    def left(self) -> float:
        return self.x - self.width / 2

    @property
    def right(self) -> float:
        return self.x + self.width / 2

    @property
    def top(self) -> float:
        return self.y - self.height / 2

    @property
    def bottom(self) -> float:
        return self.y + self.height / 2

    @classmethod
    def from_edges(cls, left: float, top: float, right: float, bottom: float) -> "Rect":
        return cls(
            x=(left + right) / 2,
            y=(top + bottom) / 2,
            width=right - left,
            height=bottom - top,
        )

    @classmethod
    def of(cls, item: Placed) -> "Rect":
        return cls(item.x, item.y, item.width, item.height)


@dataclass(frozen=True)
class CellAssignment:
    compartment_id: int
    row: int
    col: int


@dataclass
class GridPlan:
    rows: int
    cols: int
    assignments: list[CellAssignment] = field(default_factory=list)
    to_delete: list[int] = field(default_factory=list)
    empty_cells: list[tuple[int, int]] = field(default_factory=list)


def validate_grid_dims(rows: int, cols: int) -> None:
    if not isinstance(rows, int) or not isinstance(cols, int) or rows < 1 or cols < 1:
        raise ValidationError("Rows and columns must be positive integers")


def cell_rect(row: int, col: int, rows: int, cols: int, width: float, height: float) -> Rect:
    cell_w = width / cols
    cell_h = height / rows
    return Rect(
        x=-width / 2 + cell_w / 2 + col * cell_w,
        y=-height / 2 + cell_h / 2 + row * cell_h,
        width=cell_w,
        height=cell_h,
    )


def grid_cells(rows: int, cols: int, width: float, height: float) -> list[tuple[int, int, Rect]]:
    """All cells of a grid in row-major order."""
    return [
        (r, c, cell_rect(r, c, rows, cols, width, height))
        for r in range(rows)
        for c in range(cols)
    ]


def preferred_cell(x: float, y: float, rows: int, cols: int, width: float, height: float) -> tuple[int, int]:
    cell_w = width / cols
    cell_h = height / rows
    col = math.floor((x + width / 2) / cell_w)
    row = math.floor((y + height / 2) / cell_h)
    return min(max(row, 0), rows - 1), min(max(col, 0), cols - 1)


def assign_compartments_to_grid(
    compartments: Sequence[Placed],
    rows: int,
    cols: int,
    width: float,
    height: float,
    stocked_ids: Iterable[int] = (),
) -> GridPlan:
    """Greedily place existing compartments into a ``rows x cols`` grid.

    Compartments holding stock go first, then by ``z_index`` (input order
    breaks remaining ties). Each takes the free cell with the smallest
    Manhattan distance to the cell its current center falls in; equal
    distances resolve to the first cell in row-major scan order. Whatever
    does not fit is returned in ``to_delete``.
    """
    validate_grid_dims(rows, cols)
    stocked = set(stocked_ids)
    ordered = sorted(compartments, key=lambda c: (0 if c.id in stocked else 1, c.z_index))

    plan = GridPlan(rows=rows, cols=cols)
    used: set[tuple[int, int]] = set()
    capacity = rows * cols
    for comp in ordered:
        if len(used) >= capacity:
            plan.to_delete.append(comp.id)
            continue
        want_r, want_c = preferred_cell(comp.x, comp.y, rows, cols, width, height)
        best: Optional[tuple[int, int]] = None
        best_dist = math.inf
        for r in range(rows):
            for c in range(cols):
                if (r, c) in used:
                    continue
                dist = abs(r - want_r) + abs(c - want_c)
                if dist < best_dist:
                    best, best_dist = (r, c), dist
                    if dist == 0:
                        break
            if best_dist == 0:
                break
        used.add(best)
        plan.assignments.append(CellAssignment(comp.id, best[0], best[1]))

    plan.empty_cells = [(r, c) for r in range(rows) for c in range(cols) if (r, c) not in used]
    return plan


def choose_grid_dims(count: int, width: float, height: float) -> tuple[int, int]:
    """Factor ``count`` into the rows x cols closest to the drawer's aspect ratio."""
    if count < 1:
        raise ValidationError("Cannot lay out an empty grid")
    target = math.log(width / height) if width > 0 and height > 0 else 0.0
    best = (1, count)
    best_score = math.inf
    for rows in range(1, count + 1):
        if count % rows:
            continue
        cols = count // rows
        # Slight preference for square grids when two factorizations tie.
        score = abs(math.log(cols / rows) - target) + 0.001 * abs(rows - cols)
        if score < best_score:
            best, best_score = (rows, cols), score
    return best


def _span(rect: Rect, orientation: SplitOrientation) -> tuple[float, float]:
    if orientation == SplitOrientation.vertical:
        return rect.left, rect.right
    return rect.top, rect.bottom


def straddles(rect: Rect, orientation: SplitOrientation, position: float, margin: float) -> bool:
    low, high = _span(rect, orientation)
    return low + margin <= position <= high - margin


def find_split_target(
    compartments: Sequence[Placed],
    orientation: SplitOrientation,
    position: float,
    margin: float,
) -> Optional[Placed]:
    """Topmost compartment the cut crosses with at least ``margin`` on each side."""
    candidates = [c for c in compartments if straddles(Rect.of(c), orientation, position, margin)]
    if not candidates:
        return None
    candidates.sort(key=lambda c: c.z_index, reverse=True)
    return candidates[0]


def split_rect(rect: Rect, orientation: SplitOrientation, position: float, min_size: float) -> tuple[Rect, Rect]:
    """Cut ``rect`` at ``position``; the first half is the left (or top) one."""
    low, high = _span(rect, orientation)
    if position - low < min_size or high - position < min_size:
        raise SplitTooNarrow("Split too close to the edge")
    if orientation == SplitOrientation.vertical:
        return (
            Rect.from_edges(rect.left, rect.top, position, rect.bottom),
            Rect.from_edges(position, rect.top, rect.right, rect.bottom),
        )
    return (
        Rect.from_edges(rect.left, rect.top, rect.right, position),
        Rect.from_edges(rect.left, position, rect.right, rect.bottom),
    )


def _close(a: float, b: float) -> bool:
    return math.isclose(a, b, abs_tol=EPSILON)


def merged_rect(a: Rect, b: Rect) -> Optional[Rect]:
    """Union of two rectangles sharing a full edge, or None if it is not a rectangle."""
    if _close(a.top, b.top) and _close(a.bottom, b.bottom):
        if _close(a.right, b.left) or _close(b.right, a.left):
            return Rect.from_edges(min(a.left, b.left), a.top, max(a.right, b.right), a.bottom)
    if _close(a.left, b.left) and _close(a.right, b.right):
        if _close(a.bottom, b.top) or _close(b.bottom, a.top):
            return Rect.from_edges(a.left, min(a.top, b.top), a.right, max(a.bottom, b.bottom))
    return None
