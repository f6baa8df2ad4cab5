"""Camera transform, pointer picking and resize handling."""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from orgnet.analysis.models import Node
from orgnet.visualization.canvas import Canvas

logger = logging.getLogger(__name__)

MIN_SCALE = 0.1
MAX_SCALE = 10.0


@dataclass
class CameraTransform:
    """Screen = graph * k + (x, y)."""
    x: float = 0.0
    y: float = 0.0
    k: float = 1.0

    def apply(self, gx: float, gy: float) -> tuple[float, float]:
        return gx * self.k + self.x, gy * self.k + self.y

    def invert(self, sx: float, sy: float) -> tuple[float, float]:
        return (sx - self.x) / self.k, (sy - self.y) / self.k


@dataclass(frozen=True)
class Tooltip:
    x: float
    y: float
    name: str


def hit_radius(node: Node) -> float:
    return min(20.0, max(5.0, 5 + math.log2(max(1, node.degree)) * 2))


def _clamp_scale(k: float) -> float:
    return max(MIN_SCALE, min(MAX_SCALE, k))


class InteractionController:
    """Maps pointer input onto camera changes and node picks.

    Business state (selection, hover targets) lives with the host; the
    controller only reports through callbacks.
    """

    def __init__(
        self,
        canvas: Canvas,
        initial_scale: float = 0.7,
        on_node_click: Callable[[str | None], None] | None = None,
        on_node_hover: Callable[[str | None], None] | None = None,
        on_transform: Callable[[CameraTransform], None] | None = None,
        on_reinitialize: Callable[[], None] | None = None,
    ):
        self.canvas = canvas
        self.transform = CameraTransform(k=_clamp_scale(initial_scale))
        self.on_node_click = on_node_click
        self.on_node_hover = on_node_hover
        self.on_transform = on_transform
        self.on_reinitialize = on_reinitialize
        self.nodes: Sequence[Node] = ()
        self.tooltip: Tooltip | None = None
        self._hovered: str | None = None
        self._was_hidden = not canvas.is_visible

    def set_nodes(self, nodes: Sequence[Node]):
        self.nodes = nodes
        self._hovered = None
        self.tooltip = None

    # ---------------------------------------------------------------- camera

    def set_transform(self, x: float, y: float, k: float):
        self.transform = CameraTransform(x, y, _clamp_scale(k))
        self._changed()

    def pan_by(self, dx: float, dy: float):
        self.transform = CameraTransform(self.transform.x + dx, self.transform.y + dy, self.transform.k)
        self._changed()

    def zoom_by(self, factor: float, cx: float | None = None, cy: float | None = None):
        """Zoom around a screen point (canvas center by default), keeping it fixed."""
        if cx is None:
            cx = self.canvas.width / 2
        if cy is None:
            cy = self.canvas.height / 2
        t = self.transform
        k = _clamp_scale(t.k * factor)
        gx, gy = t.invert(cx, cy)
        self.transform = CameraTransform(cx - gx * k, cy - gy * k, k)
        self._changed()

    def _changed(self):
        if self.on_transform:
            self.on_transform(self.transform)

    def to_graph(self, sx: float, sy: float) -> tuple[float, float]:
        return self.transform.invert(sx, sy)

    # --------------------------------------------------------------- picking

    def hit_test(self, sx: float, sy: float) -> Node | None:
        """First node (in iteration order) whose hit radius contains the point."""
        gx, gy = self.to_graph(sx, sy)
        for node in self.nodes:
            if math.hypot(gx - node.x, gy - node.y) < hit_radius(node):
                return node
        return None

    def _tooltip_node(self, sx: float, sy: float) -> Node | None:
        gx, gy = self.to_graph(sx, sy)
        for node in self.nodes:
            size = min(25.0, max(5.0, 5 + math.log2(max(1, node.degree)) * 3))
            if math.hypot(gx - node.x, gy - node.y) <= size + 5:
                return node
        return None

    def pointer_move(self, sx: float, sy: float) -> str | None:
        tip = self._tooltip_node(sx, sy)
        self.tooltip = Tooltip(sx, sy, tip.name) if tip else None
        node = self.hit_test(sx, sy)
        node_id = node.id if node else None
        if node_id != self._hovered:
            self._hovered = node_id
            if self.on_node_hover:
                self.on_node_hover(node_id)
        return node_id

    def pointer_leave(self):
        self.tooltip = None
        if self._hovered is not None:
            self._hovered = None
            if self.on_node_hover:
                self.on_node_hover(None)

    def click(self, sx: float, sy: float) -> str | None:
        node = self.hit_test(sx, sy)
        node_id = node.id if node else None
        if self.on_node_click:
            self.on_node_click(node_id)
        return node_id

    # ---------------------------------------------------------------- resize

    def resize(self, width: int, height: int, device_pixel_ratio: float = 1.0) -> bool:
        """Handle a container size change. Returns True when a repaint/re-init was requested."""
        if width <= 0 or height <= 0:
            self._was_hidden = True
            return False
        if self._was_hidden:
            self._was_hidden = False
            self.canvas.resize(width, height, device_pixel_ratio)
            logger.debug("Surface visible again at %dx%d, re-initializing", width, height)
            if self.on_reinitialize:
                self.on_reinitialize()
            return True
        if self.canvas.resize(width, height, device_pixel_ratio):
            self._changed()
            return True
        return False
