"""Graph data structures shared by the builder, aggregator, simulation and renderer."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

TEAM_LEAD = "team_lead"
TEAM_MEMBER = "team_member"
MULTI_TEAM_MEMBER = "multi_team_member"
ACTIVE_ORGANIZER = "active_organizer"
CONVERSATION_PARTNER = "conversation_partner"
SECTION_LEADER = "section_leader"
CONSTITUENT = "constituent"

TEAM_CONNECTION = "team_connection"
CONVERSATION = "conversation"
INTER_TEAM_CONNECTION = "inter_team_connection"

LINK_SOURCE_TEAMS = "teams"
LINK_SOURCE_MEETINGS = "meetings"


@dataclass
class Node:
    """A canonical person in the graph.

    x/y/vx/vy belong to the force simulation while it runs; fx/fy pin a node.
    """
    id: str
    name: str
    chapter: str = "Unknown"
    type: str = TEAM_MEMBER
    loe_status: str = "Unknown"
    teams: list[str] = field(default_factory=list)
    degree: int = 0
    x: float = 0.0
    y: float = 0.0
    vx: float = 0.0
    vy: float = 0.0
    fx: float | None = None
    fy: float | None = None
    index: int = -1

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data.pop("index")
        return data


@dataclass(frozen=True)
class NodePosition:
    """Immutable position record handed to the host."""
    id: str
    x: float
    y: float
    vx: float = 0.0
    vy: float = 0.0


@dataclass
class RawEdge:
    """One interaction record between two canonical nodes, before aggregation."""
    source: str
    target: str
    link_source: str
    type: str
    result: str = ""
    timestamp: str | None = None
    meeting_id: str | None = None
    team_name: str | None = None
    id: str = ""


@dataclass
class AggregatedEdge:
    """All raw edges between one unordered node pair, collapsed."""
    source: str
    target: str
    key: str
    count: int = 1
    type: str = ""
    link_source: str = ""
    team_name: str = ""
    highlighted: bool = False
    contributing_ids: list[str] = field(default_factory=list)
    meeting_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class TeamCenter:
    team: str
    chapter: str
    x: float
    y: float
    node_ids: list[str] = field(default_factory=list)


@dataclass
class GraphData:
    """Result of one build: nodes, raw edges and team anchor points."""
    nodes: list[Node] = field(default_factory=list)
    edges: list[RawEdge] = field(default_factory=list)
    team_centers: list[TeamCenter] = field(default_factory=list)

    def node_map(self) -> dict[str, Node]:
        return {n.id: n for n in self.nodes}

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [asdict(e) for e in self.edges],
            "team_centers": [asdict(c) for c in self.team_centers],
        }
