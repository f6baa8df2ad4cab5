"""Collapse raw interaction edges into one weighted edge per node pair."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

import networkx as nx

from orgnet.analysis.models import AggregatedEdge, Node, RawEdge

logger = logging.getLogger(__name__)


def endpoint_pair(a: str, b: str) -> tuple[str, str]:
    """Order-independent grouping key for an unordered node pair."""
    return (a, b) if a <= b else (b, a)


def pair_key(a: str, b: str) -> str:
    """Display key for an unordered node pair. Not unique when ids contain "-"."""
    return "-".join(endpoint_pair(a, b))


class LinkAggregator:
    """Aggregates raw edges and keeps node degrees in sync with the result."""

    def aggregate(
        self,
        raw_edges: Iterable[RawEdge],
        nodes: Sequence[Node] | None = None,
        hovered_meeting_id: str | None = None,
    ) -> list[AggregatedEdge]:
        """Group raw edges by unordered endpoint pair.

        When ``nodes`` is given, edges with an endpoint outside it are
        dropped and node degrees are recomputed from the aggregates.
        """
        known = {n.id for n in nodes} if nodes is not None else None
        by_pair: dict[tuple[str, str], AggregatedEdge] = {}
        dropped = 0

        for raw in raw_edges:
            if not raw.source or not raw.target or raw.source == raw.target:
                dropped += 1
                continue
            if known is not None and (raw.source not in known or raw.target not in known):
                dropped += 1
                continue
            pair = endpoint_pair(raw.source, raw.target)
            agg = by_pair.get(pair)
            if agg is None:
                agg = AggregatedEdge(
                    source=raw.source,
                    target=raw.target,
                    key=pair_key(*pair),
                    count=0,
                    type=raw.type or "",
                    link_source=raw.link_source or "",
                    team_name=raw.team_name or "",
                )
                by_pair[pair] = agg
            agg.count += 1
            if raw.id:
                agg.contributing_ids.append(raw.id)
            if raw.meeting_id:
                agg.meeting_ids.append(raw.meeting_id)
            if not agg.type and raw.type:
                agg.type = raw.type
            if not agg.team_name and raw.team_name:
                agg.team_name = raw.team_name
            if not agg.link_source and raw.link_source:
                agg.link_source = raw.link_source

        aggregated = list(by_pair.values())
        self.highlight(aggregated, hovered_meeting_id)
        if dropped:
            logger.debug("Dropped %d raw edges (self-loop or unknown endpoint)", dropped)
        if nodes is not None:
            self.recompute_degrees(nodes, aggregated)
        return aggregated

    @staticmethod
    def highlight(aggregated: Iterable[AggregatedEdge], hovered_meeting_id: str | None) -> None:
        for agg in aggregated:
            agg.highlighted = bool(hovered_meeting_id) and hovered_meeting_id in agg.meeting_ids

    @staticmethod
    def recompute_degrees(nodes: Sequence[Node], aggregated: Iterable[AggregatedEdge]) -> dict[str, int]:
        """Degree = number of distinct aggregated edges touching a node."""
        graph = nx.Graph()
        graph.add_nodes_from(n.id for n in nodes)
        graph.add_edges_from(
            (a.source, a.target) for a in aggregated if a.source in graph and a.target in graph
        )
        degrees = dict(graph.degree())
        for node in nodes:
            node.degree = degrees.get(node.id, 0)
        return degrees
