"""Point quadtree used by the many-body and collision forces."""

from __future__ import annotations

from collections.abc import Iterable, Iterator


def rect_intersects_circle(
    bounds: tuple[float, float, float, float],
    x: float,
    y: float,
    radius: float,
) -> bool:
    x0, y0, x1, y1 = bounds
    nearest_x = min(max(x, x0), x1)
    nearest_y = min(max(y, y0), y1)
    dx = x - nearest_x
    dy = y - nearest_y
    return (dx * dx) + (dy * dy) <= (radius * radius)


class QuadCell:
    """One square cell. Leaves hold points; internal cells hold four-way children."""
    __slots__ = ("bounds", "points", "children", "count", "cx", "cy")

    def __init__(self, bounds: tuple[float, float, float, float]):
        self.bounds = bounds
        self.points: list[tuple[int, float, float]] = []
        self.children: list[QuadCell] | None = None
        self.count = 0
        self.cx = 0.0
        self.cy = 0.0

    @property
    def width(self) -> float:
        return self.bounds[2] - self.bounds[0]

    @property
    def is_leaf(self) -> bool:
        return self.children is None


def _square_bounds(points: list[tuple[int, float, float]]) -> tuple[float, float, float, float]:
    if not points:
        return (0.0, 0.0, 1.0, 1.0)
    xs = [p[1] for p in points]
    ys = [p[2] for p in points]
    x0, y0 = min(xs), min(ys)
    # +1 keeps the max point strictly inside the half-open cell
    size = max(max(xs) - x0, max(ys) - y0) + 1.0
    return (x0, y0, x0 + size, y0 + size)


def quadtree_build(
    points: Iterable[tuple[int, float, float]],
    *,
    max_items: int = 1,
    max_depth: int = 24,
) -> QuadCell:
    """Build a quadtree over ``(index, x, y)`` points and compute cell centroids."""
    pts = list(points)
    root = QuadCell(_square_bounds(pts))
    _split(root, pts, 0, max_items, max_depth)
    return root


def _split(cell: QuadCell, pts: list[tuple[int, float, float]], depth: int, max_items: int, max_depth: int):
    cell.count = len(pts)
    if pts:
        cell.cx = sum(p[1] for p in pts) / len(pts)
        cell.cy = sum(p[2] for p in pts) / len(pts)
    if depth >= max_depth or len(pts) <= max_items:
        cell.points = pts
        return

    x0, y0, x1, y1 = cell.bounds
    mx = (x0 + x1) * 0.5
    my = (y0 + y1) * 0.5
    quadrants = [
        (x0, y0, mx, my),
        (mx, y0, x1, my),
        (x0, my, mx, y1),
        (mx, my, x1, y1),
    ]
    buckets: list[list[tuple[int, float, float]]] = [[], [], [], []]
    for p in pts:
        index = (1 if p[1] >= mx else 0) + (2 if p[2] >= my else 0)
        buckets[index].append(p)

    cell.children = []
    for bucket, qbounds in zip(buckets, quadrants):
        if bucket:
            child = QuadCell(qbounds)
            _split(child, bucket, depth + 1, max_items, max_depth)
            cell.children.append(child)


def quadtree_query_radius(cell: QuadCell, x: float, y: float, radius: float) -> Iterator[tuple[int, float, float]]:
    """Yield every point whose cell intersects the circle (a superset of hits)."""
    if not rect_intersects_circle(cell.bounds, x, y, radius):
        return
    if cell.is_leaf:
        yield from cell.points
        return
    for child in cell.children:
        yield from quadtree_query_radius(child, x, y, radius)
