"""
Graph session: the context object that owns one rendered network.

A session wires builder, aggregator, simulation, renderer and interaction
together for a single surface. Nothing here is module-global, so several
sessions can live side by side.

Ordering contract: the simulation mutates node positions inside ``tick()``
and the renderer paints afterwards, in the same call. Hosts never see nodes
mid-tick; they receive copies through ``on_nodes_change`` when a layout
settles, is stopped for a rebuild, or the session closes.
"""

from __future__ import annotations

import dataclasses
import logging
import random
import time
from collections.abc import Callable, Iterable
from typing import Any

from orgnet.analysis.graph_builder import GraphBuilder, NetworkView
from orgnet.analysis.identity import IdentityResolver
from orgnet.analysis.link_aggregator import LinkAggregator
from orgnet.analysis.models import AggregatedEdge, GraphData, Node, NodePosition
from orgnet.analysis.name_merge import DEFAULT_NAME_VARIATIONS, NameMergeCache
from orgnet.errors import OrgnetError
from orgnet.simulation.force_engine import ForceSimulationEngine
from orgnet.utils.config_loader import render_settings, simulation_settings
from orgnet.visualization.canvas import Canvas
from orgnet.visualization.interaction import InteractionController
from orgnet.visualization.renderer import CanvasRenderer, RenderResult

logger = logging.getLogger(__name__)

SHAKE_ALPHA = 0.8


class GraphSession:
    def __init__(
        self,
        config: dict[str, Any] | None = None,
        resolver: IdentityResolver | None = None,
        canvas: Canvas | None = None,
        on_node_click: Callable[[str | None], None] | None = None,
        on_node_hover: Callable[[str | None], None] | None = None,
        on_nodes_change: Callable[[list[Node]], None] | None = None,
        custom_colors: dict[str, str] | None = None,
        rng: random.Random | None = None,
    ):
        config = config or {}
        self.sim_settings = simulation_settings(config)
        self.render_settings = render_settings(config)
        rs = self.render_settings
        self.canvas = canvas or Canvas(rs.width, rs.height, rs.device_pixel_ratio, rs.background, rs.font)
        self.rng = rng or random.Random(self.sim_settings.seed)

        variations = dict(DEFAULT_NAME_VARIATIONS)
        variations.update({str(k).lower(): str(v).lower() for k, v in (config.get("name_variations") or {}).items()})
        self.builder = GraphBuilder(resolver=resolver, merge_cache=NameMergeCache(variations), rng=self.rng)
        self.aggregator = LinkAggregator()
        self.renderer = CanvasRenderer(custom_colors)
        self.controller = InteractionController(
            self.canvas,
            initial_scale=rs.initial_scale,
            on_node_click=on_node_click,
            on_node_hover=on_node_hover,
            on_transform=lambda _t: self.render(),
            on_reinitialize=self._reinitialize,
        )
        self.on_nodes_change = on_nodes_change

        # Last committed layout, keyed by node id; survives view switches
        self.position_cache: dict[str, tuple[float, float]] = {}

        self.view: NetworkView | None = None
        self.graph: GraphData | None = None
        self.nodes: list[Node] = []
        self.edges: list[AggregatedEdge] = []
        self.engine: ForceSimulationEngine | None = None
        self.color_mode = "chapter"
        self.show_group_labels: bool | None = None
        self.last_frame: RenderResult | None = None

        self._selected: str | None = None
        self._search = ""
        self._hovered_meeting: str | None = None
        self._in_tick = False
        self._shaking = False
        self._closed = False

    # ----------------------------------------------------------- host state

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def selected_node_id(self) -> str | None:
        return self._selected

    @selected_node_id.setter
    def selected_node_id(self, value: str | None):
        self._selected = value
        self.render()

    @property
    def search_text(self) -> str:
        return self._search

    @search_text.setter
    def search_text(self, value: str | None):
        self._search = value or ""
        self.render()

    @property
    def hovered_meeting_id(self) -> str | None:
        return self._hovered_meeting

    @hovered_meeting_id.setter
    def hovered_meeting_id(self, value: str | None):
        self._hovered_meeting = value
        self.aggregator.highlight(self.edges, value)
        self.render()

    # ------------------------------------------------------------ lifecycle

    def load(
        self,
        view: NetworkView | str,
        teams: Iterable[Any] | None,
        meetings: Iterable[Any] | None,
        loe_filter: Iterable[str] | None = None,
        chapter: str | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> GraphData:
        """Rebuild the graph for a view and start a fresh simulation.

        A running simulation is stopped (and its positions committed) first.
        """
        if self._closed:
            raise OrgnetError("session is closed")
        if self.engine is not None:
            self.engine.stop(flush=True)
            self.engine = None

        graph = self.builder.build(view, teams, meetings, loe_filter, chapter, start_date, end_date)
        restored = set()
        for node in graph.nodes:
            saved = self.position_cache.get(node.id)
            if saved is not None:
                node.x, node.y = saved
                restored.add(node.id)

        self.view = NetworkView(view)
        self.graph = graph
        self.nodes = graph.nodes
        self.edges = self.aggregator.aggregate(graph.edges, graph.nodes, self._hovered_meeting)
        self.controller.set_nodes(self.nodes)
        self._start_engine(restored)
        logger.info(
            "Loaded %s view: %d nodes, %d edges (%d positions restored)",
            self.view.value, len(self.nodes), len(self.edges), len(restored),
        )
        self.render()
        return graph

    def _start_engine(self, restored: set[str]):
        width = self.canvas.width or self.sim_settings.width
        height = self.canvas.height or self.sim_settings.height
        self.engine = ForceSimulationEngine(
            self.nodes, self.edges, self.sim_settings, width, height, restored_ids=restored, rng=self.rng
        )
        self.engine.on("end", self._commit)

    def _reinitialize(self):
        if self._closed or not self.nodes:
            return
        if self.engine is not None:
            self.engine.stop(flush=True)
        self._start_engine({n.id for n in self.nodes if n.id in self.position_cache})
        self.render()

    def _commit(self, snapshot: tuple[NodePosition, ...]):
        for pos in snapshot:
            self.position_cache[pos.id] = (pos.x, pos.y)
        if self.on_nodes_change:
            self.on_nodes_change([dataclasses.replace(n) for n in self.nodes])

    def tick(self) -> bool:
        """Advance the simulation one step, then paint. Returns True while the layout is still moving."""
        if self._closed or self.engine is None:
            return False
        if self._in_tick:
            raise OrgnetError("tick() is not re-entrant")
        self._in_tick = True
        try:
            if self._shaking and self.engine.alpha < SHAKE_ALPHA:
                self.engine.alpha = SHAKE_ALPHA
            moving = self.engine.step()
            self.render()
        finally:
            self._in_tick = False
        return moving

    def run(self, max_ticks: int | None = None, frame_interval: float = 0.0) -> int:
        """Drive ticks until the layout settles (or ``max_ticks``)."""
        ticks = 0
        while max_ticks is None or ticks < max_ticks:
            if not self.tick():
                break
            ticks += 1
            if frame_interval > 0:
                time.sleep(frame_interval)
        return ticks

    def render(self) -> RenderResult | None:
        if self._closed or not self.nodes:
            return None
        show_pills = self.show_group_labels
        if show_pills is None:
            show_pills = self.view is NetworkView.TEAM_MEMBERS
        self.last_frame = self.renderer.render(
            self.canvas,
            self.nodes,
            self.edges,
            self.controller.transform,
            selected_node_id=self._selected,
            search_text=self._search,
            color_mode=self.color_mode,
            show_group_labels=show_pills,
        )
        return self.last_frame

    def resize(self, width: int, height: int, device_pixel_ratio: float = 1.0) -> bool:
        changed = self.controller.resize(width, height, device_pixel_ratio)
        if changed and self.engine is not None and width > 0 and height > 0:
            self.engine.set_size(width, height)
        return changed

    def start_shaking(self):
        """Reheat the layout and keep it hot until ``stop_shaking``."""
        if self.engine is None or self._closed:
            return
        self._shaking = True
        self.engine.reheat(1.0)

    def stop_shaking(self):
        self._shaking = False
        if self.engine is not None:
            self.engine.alpha_target = self.sim_settings.alpha_target

    def close(self):
        """Stop the simulation and hand the final layout to the host. Idempotent."""
        if self._closed:
            return
        if self.engine is not None:
            if self.engine.running:
                self.engine.stop(flush=True)
            else:
                self._commit(self.engine.snapshot())
        self.engine = None
        self._closed = True
        logger.debug("Session closed with %d cached positions", len(self.position_cache))
