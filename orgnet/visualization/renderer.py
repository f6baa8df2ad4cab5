"""Paint nodes, aggregated edges, labels and team pills onto a Canvas."""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from orgnet.analysis.models import (
    CONSTITUENT,
    INTER_TEAM_CONNECTION,
    LINK_SOURCE_TEAMS,
    MULTI_TEAM_MEMBER,
    SECTION_LEADER,
    TEAM_CONNECTION,
    TEAM_LEAD,
    AggregatedEdge,
    Node,
)
from orgnet.errors import RenderPreconditionError
from orgnet.visualization import palette
from orgnet.visualization.canvas import Canvas

logger = logging.getLogger(__name__)

DIMMED_ALPHA = 0.25
LABEL_OFFSET = 12
PILL_FONT_SIZE = 14


@dataclass(frozen=True)
class EdgeStyle:
    color: str
    width: float
    alpha: float
    dash: tuple[float, float] | None = None


@dataclass(frozen=True)
class Ring:
    offset: float
    color: str
    width: float
    alpha: float = 1.0
    under_border: bool = False


@dataclass(frozen=True)
class NodeStyle:
    radius: float
    fill: str | tuple[int, int, int]
    fill_alpha: float
    stroke: str
    stroke_width: float
    alpha: float
    matched: bool
    rings: tuple[Ring, ...] = ()


@dataclass
class RenderResult:
    """What one frame painted; useful to hosts and tests."""
    nodes_drawn: int = 0
    edges_drawn: int = 0
    labels: dict[str, str] = field(default_factory=dict)
    matched: set[str] = field(default_factory=set)
    dimmed: set[str] = field(default_factory=set)
    pills: list[str] = field(default_factory=list)


def matches_search(node: Node, query: str | None) -> bool:
    """Case-insensitive substring match on name, team names or chapter."""
    if not query:
        return False
    q = query.lower()
    if q in (node.name or "").lower():
        return True
    if any(q in team.lower() for team in node.teams):
        return True
    return q in (node.chapter or "").lower()


def node_radius(node: Node) -> float:
    size = min(25.0, max(5.0, 5 + math.log2(max(1, node.degree)) * 3))
    if node.type == MULTI_TEAM_MEMBER:
        size += 3
    if node.type == TEAM_LEAD:
        size += 2
    if node.type == SECTION_LEADER:
        size = max(size + 10, 18)
    if node.type == CONSTITUENT:
        size = max(4.0, size - 2)
    return size


def edge_width(count: int) -> float:
    if count <= 0:
        return 1.0
    return min(1 + math.log2(count) * 1.2, 8.0)


def truncate_label(text: str, max_width: float, measure) -> str:
    width = measure(text)
    if width <= max_width or width <= 0:
        return text
    return text[: int(len(text) * max_width / width)] + "..."


class CanvasRenderer:
    """Stateless painter: every frame is a function of its arguments."""

    def __init__(self, custom_colors: Mapping[str, str] | None = None):
        self.custom_colors = dict(custom_colors or {})

    def _chapter(self, chapter: str | None) -> str:
        return palette.chapter_color(chapter, self.custom_colors)

    def edge_style(self, edge: AggregatedEdge, source: Node, target: Node) -> EdgeStyle:
        width = edge_width(edge.count)
        if edge.highlighted:
            return EdgeStyle(palette.HIGHLIGHT, max(width, 3), 1.0)
        if edge.type == SECTION_LEADER or edge.link_source == SECTION_LEADER:
            chapter = target.chapter or source.chapter
            color = self._chapter(chapter) if chapter else palette.SECTION_LEADER_EDGE
            return EdgeStyle(color, 2.5, 0.75, (10, 5))
        if edge.type == INTER_TEAM_CONNECTION:
            return EdgeStyle(palette.MULTI_TEAM, max(width, 2), 0.8, (5, 5))
        if edge.type == TEAM_CONNECTION or edge.link_source == LINK_SOURCE_TEAMS:
            chapter = source.chapter or target.chapter
            color = self._chapter(chapter) if edge.team_name and chapter else palette.DEFAULT_TEAM_EDGE
            return EdgeStyle(color, max(width, 1.5), 0.7)
        if edge.type == CONSTITUENT:
            chapter = source.chapter or target.chapter
            color = self._chapter(chapter) if chapter else palette.CONSTITUENT_EDGE
            return EdgeStyle(color, 0.8, 0.25)
        return EdgeStyle(palette.DEFAULT_EDGE, width, 0.6)

    def node_style(self, node: Node, selected: bool = False, search_text: str = "", color_mode: str = "chapter") -> NodeStyle:
        radius = node_radius(node)
        chapter_color = self._chapter(node.chapter)
        fill: str | tuple[int, int, int] = chapter_color
        fill_alpha = 1.0
        stroke = "#ffffff"
        stroke_width = 1.5

        if node.type == CONSTITUENT:
            loe = (node.loe_status or "").lower()
            stroke = chapter_color
            if "teamleader" in loe or "1_" in loe:
                fill = chapter_color
            elif "member" in loe or "2_" in loe or "3_" in loe:
                fill_alpha = 0.4
            elif "supporter" in loe or "4_" in loe:
                fill = "#ffffff"
            else:
                fill = palette.UNKNOWN_FILL
                stroke = palette.UNKNOWN_STROKE
        elif color_mode == "loe":
            fill = palette.loe_shade(chapter_color, node.loe_status)

        if selected:
            fill, fill_alpha = palette.HIGHLIGHT, 1.0
            stroke, stroke_width = palette.HIGHLIGHT, 3.0

        has_search = bool(search_text)
        matched = matches_search(node, search_text)
        alpha = DIMMED_ALPHA if has_search and not matched and not selected else 1.0

        rings: list[Ring] = []
        if not selected:
            if node.type == MULTI_TEAM_MEMBER:
                rings.append(Ring(1, palette.MULTI_TEAM, 3, under_border=True))
            if node.type == SECTION_LEADER:
                rings.append(Ring(4, palette.GOLD, 3))
                rings.append(Ring(8, palette.GOLD, 2, 0.35))
            if matched:
                rings.append(Ring(8, palette.GOLD, 8, 0.4))
                rings.append(Ring(5, palette.GOLD, 5, 0.7))
                rings.append(Ring(2, palette.GOLD, 3, 1.0))

        return NodeStyle(radius, fill, fill_alpha, stroke, stroke_width, alpha, matched, tuple(rings))

    def render(
        self,
        canvas: Canvas,
        nodes: Sequence[Node],
        edges: Sequence[AggregatedEdge],
        transform=None,
        selected_node_id: str | None = None,
        search_text: str = "",
        color_mode: str = "chapter",
        show_group_labels: bool = False,
    ) -> RenderResult | None:
        """Paint one frame. Returns None when there is nothing to paint."""
        if not nodes:
            return None
        try:
            canvas.begin_frame()
        except RenderPreconditionError as exc:
            logger.debug("Skipping frame: %s", exc)
            return None
        if transform is not None:
            canvas.set_transform(transform.x, transform.y, transform.k)

        result = RenderResult()
        by_id = {n.id: n for n in nodes}
        self._paint_edges(canvas, edges, by_id, result)
        for node in nodes:
            if not (math.isfinite(node.x) and math.isfinite(node.y)):
                continue
            style = self.node_style(node, node.id == selected_node_id, search_text, color_mode)
            self._paint_node(canvas, node, style)
            self._paint_label(canvas, node, style, node.id == selected_node_id, bool(search_text), result)
            result.nodes_drawn += 1
            if style.matched:
                result.matched.add(node.id)
            if style.alpha < 1.0:
                result.dimmed.add(node.id)
        if show_group_labels:
            self._paint_team_pills(canvas, nodes, result)
        canvas.present()
        return result

    def _paint_edges(self, canvas: Canvas, edges, by_id: dict[str, Node], result: RenderResult):
        for edge in edges:
            source, target = by_id.get(edge.source), by_id.get(edge.target)
            if source is None or target is None:
                continue
            if not all(math.isfinite(v) for v in (source.x, source.y, target.x, target.y)):
                continue
            style = self.edge_style(edge, source, target)
            canvas.line(source.x, source.y, target.x, target.y, style.color, style.width, style.alpha, style.dash)
            result.edges_drawn += 1

    def _paint_node(self, canvas: Canvas, node: Node, style: NodeStyle):
        canvas.circle(node.x, node.y, style.radius, fill=style.fill, alpha=style.alpha, fill_alpha=style.fill_alpha)
        for ring in style.rings:
            if ring.under_border:
                canvas.ring(node.x, node.y, style.radius + ring.offset, ring.color, ring.width, ring.alpha * style.alpha)
        canvas.ring(node.x, node.y, style.radius, style.stroke, style.stroke_width, style.alpha)
        for ring in style.rings:
            if not ring.under_border:
                canvas.ring(node.x, node.y, style.radius + ring.offset, ring.color, ring.width, ring.alpha * style.alpha)

    def _paint_label(self, canvas: Canvas, node: Node, style: NodeStyle, selected: bool, has_search: bool,
                     result: RenderResult):
        size = style.radius
        protected = node.type == SECTION_LEADER
        if not (size > 4 or style.matched or selected or protected):
            return
        emphasized = style.matched or selected or protected
        font_size = 13 if emphasized else min(12, size)
        max_width = size * 5 if style.matched or protected else size * 3
        text = truncate_label(node.name or node.id, max_width, lambda t: canvas.measure_text(t, font_size, emphasized))
        text_width = canvas.measure_text(text, font_size, emphasized)
        label_y = node.y + size + LABEL_OFFSET

        color = "#333333"
        alpha = style.alpha
        if has_search and style.matched:
            canvas.rect(node.x - text_width / 2 - 6, node.y + size + 6, text_width + 12, font_size + 8, palette.GOLD)
            color, alpha = "#000000", 1.0
        elif selected:
            canvas.rect(node.x - text_width / 2 - 4, node.y + size + 6, text_width + 8, font_size + 6, "#ffffff", 0.9)
        canvas.text(node.x, label_y, text, color, font_size, emphasized, alpha)
        result.labels[node.id] = text

    def _paint_team_pills(self, canvas: Canvas, nodes: Sequence[Node], result: RenderResult):
        groups: dict[str, list] = {}
        for node in nodes:
            if not (math.isfinite(node.x) and math.isfinite(node.y)):
                continue
            for team in node.teams:
                entry = groups.setdefault(team, [0.0, 0.0, 0, self._chapter(node.chapter)])
                entry[0] += node.x
                entry[1] += node.y
                entry[2] += 1
        for team, (sum_x, sum_y, count, color) in groups.items():
            if count < 2:
                continue
            cx, cy = sum_x / count, sum_y / count
            text_width = canvas.measure_text(team, PILL_FONT_SIZE, True)
            pad_x, pad_y = 8, 4
            canvas.pill(
                cx - text_width / 2 - pad_x,
                cy - PILL_FONT_SIZE / 2 - pad_y,
                text_width + pad_x * 2,
                PILL_FONT_SIZE + pad_y * 2,
                fill="#ffffff",
                stroke=color,
                stroke_width=1.5,
                fill_alpha=0.85,
            )
            canvas.text(cx, cy, team, color, PILL_FONT_SIZE, True, 0.9)
            result.pills.append(team)
