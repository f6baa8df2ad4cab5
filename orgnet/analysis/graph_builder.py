"""Build view-specific relationship graphs from rosters and meeting logs."""

from __future__ import annotations

import logging
import math
import random
from collections.abc import Callable, Iterable
from enum import Enum
from typing import Any

from orgnet.analysis.engagement import STAFF_STATUS, loe_category
from orgnet.analysis.identity import IdentityResolver
from orgnet.analysis.link_aggregator import LinkAggregator, endpoint_pair, pair_key
from orgnet.analysis.models import (
    ACTIVE_ORGANIZER,
    CONVERSATION,
    CONVERSATION_PARTNER,
    LINK_SOURCE_MEETINGS,
    LINK_SOURCE_TEAMS,
    MULTI_TEAM_MEMBER,
    TEAM_CONNECTION,
    TEAM_LEAD,
    TEAM_MEMBER,
    GraphData,
    Node,
    RawEdge,
    TeamCenter,
)
from orgnet.analysis.name_merge import NameMergeCache
from orgnet.analysis.records import Meeting, Team, load_meetings, load_teams

logger = logging.getLogger(__name__)

ALL_CHAPTERS = "All Chapters"

TEAM_SPACING = 300.0
CANVAS_WIDTH = 800.0
CANVAS_HEIGHT = 600.0


class NetworkView(str, Enum):
    TEAM_MEMBERS = "team-members"
    CONNECTIONS = "connections"
    BY_LOE = "by-loe"


class _BuildState:
    """Mutable scratch space for a single build."""

    def __init__(self):
        self.nodes: list[Node] = []
        self.by_id: dict[str, Node] = {}
        self.edges: list[RawEdge] = []
        self.team_centers: list[TeamCenter] = []
        self.person_teams: dict[str, set[int]] = {}
        self.roster_ids: set[str] = set()

    def add(self, node: Node) -> Node:
        self.by_id[node.id] = node
        self.nodes.append(node)
        return node


class GraphBuilder:
    """Turns rosters + meetings into nodes and raw edges for one view.

    The result is rebuilt wholesale on every call. Malformed records are
    skipped one at a time so a partially bad export still yields a graph.
    """

    def __init__(
        self,
        resolver: IdentityResolver | None = None,
        merge_cache: NameMergeCache | None = None,
        loe_lookup: Callable[[str], str | None] | None = None,
        name_lookup: Callable[[str, str, str], str] | None = None,
        rng: random.Random | None = None,
        progress_callback: Callable[[dict[str, Any]], None] | None = None,
    ):
        self.resolver = resolver
        self.merge_cache = merge_cache or NameMergeCache()
        self.loe_lookup = loe_lookup
        self.name_lookup = name_lookup
        self.rng = rng or random.Random()
        self.aggregator = LinkAggregator()
        self._progress_callback = progress_callback

    def _emit(self, status: str, message: str, **kwargs):
        if self._progress_callback:
            payload = {"status": status, "message": message}
            payload.update(kwargs)
            self._progress_callback(payload)
        logger.debug("[%s] %s", status, message)

    # ------------------------------------------------------------------ ids

    def _canonical(self, raw_id: str, merges: dict[str, str]) -> str:
        ident = merges.get(raw_id, raw_id)
        if self.resolver is not None:
            mapping = self.resolver.resolve(ident)
            if mapping is not None:
                return mapping.primary_id
        return ident

    def _name_for(self, raw_id: str | None, fallback: str, role: str) -> str:
        if self.name_lookup is not None:
            return self.name_lookup(raw_id or "", fallback, role) or fallback
        if self.resolver is not None and raw_id:
            return self.resolver.canonical_name(raw_id, fallback or None)
        return fallback

    def _loe_for(self, raw_id: str, own: str | None) -> str:
        if self.loe_lookup is not None:
            status = self.loe_lookup(raw_id)
            if status:
                return status
        return own or "Unknown"

    # ---------------------------------------------------------------- build

    def build(
        self,
        view: NetworkView | str,
        teams: Iterable[Team | dict] | None,
        meetings: Iterable[Meeting | dict] | None,
        loe_filter: Iterable[str] | None = None,
        chapter: str | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> GraphData:
        """Build the graph for ``view``.

        ``loe_filter`` only applies to the by-LOE view; ``None`` keeps every
        bucket. ``chapter`` scopes rosters to one chapter and keeps a meeting
        only when one of its endpoints is on such a roster.
        """
        view = NetworkView(view)
        team_list = load_teams(list(teams or []))
        meeting_list = load_meetings(list(meetings or []))
        merges = self.merge_cache.get(team_list, meeting_list)

        if chapter and chapter != ALL_CHAPTERS:
            wanted = chapter.strip().lower()
            scoped_teams = [t for t in team_list if t.chapter.lower() == wanted]
            chapter_filter = True
        else:
            scoped_teams = team_list
            chapter_filter = False

        scoped_meetings = filter_meetings_by_date(meeting_list, start_date, end_date)
        self._emit("start", f"Building {view.value} view", teams=len(scoped_teams), meetings=len(scoped_meetings))

        state = _BuildState()
        self._team_members_view(state, scoped_teams, merges)
        if view in (NetworkView.CONNECTIONS, NetworkView.BY_LOE):
            self._overlay_meetings(state, scoped_meetings, merges, chapter_filter)
        if view is NetworkView.BY_LOE:
            self._filter_by_loe(state, loe_filter)

        graph = GraphData(nodes=state.nodes, edges=state.edges, team_centers=state.team_centers)
        # Degrees always reflect the aggregated edge set
        self.aggregator.aggregate(graph.edges, graph.nodes)
        self._emit("done", f"{len(graph.nodes)} nodes, {len(graph.edges)} raw edges")
        return graph

    def _team_members_view(self, state: _BuildState, teams: list[Team], merges: dict[str, str]):
        roster_loe = {m.id: m.loe_status for t in teams for m in t.members if m.loe_status}

        for team_index, team in enumerate(teams):
            for member in team.members:
                person_id = self._canonical(member.id, merges)
                state.person_teams.setdefault(person_id, set()).add(team_index)
                state.roster_ids.add(person_id)
                node = state.by_id.get(person_id)
                if node is None:
                    node = state.add(Node(
                        id=person_id,
                        name=member.name or f"Member {person_id}",
                        chapter=team.chapter or member.chapter or "Unknown",
                        type=TEAM_LEAD if team.is_lead(member) else TEAM_MEMBER,
                        loe_status=self._loe_for(member.id, roster_loe.get(member.id)),
                    ))
                label = team.display_name
                if label and label not in node.teams:
                    node.teams.append(label)

        teams_per_row = math.ceil(math.sqrt(len(teams))) if teams else 1
        for team_index, team in enumerate(teams):
            if not team.members:
                continue
            row, col = divmod(team_index, teams_per_row)
            cx = _clamp(150 + col * TEAM_SPACING, 100, 700)
            cy = _clamp(150 + row * TEAM_SPACING, 100, 500)

            team_nodes: list[Node] = []
            for member_index, member in enumerate(team.members):
                node = state.by_id.get(self._canonical(member.id, merges))
                if node is None or node in team_nodes:
                    continue
                if node.x == 0 and node.y == 0:
                    angle = member_index / len(team.members) * 2 * math.pi
                    radius = 50 + self.rng.random() * 30
                    node.x = _clamp(cx + math.cos(angle) * radius, 50, 750)
                    node.y = _clamp(cy + math.sin(angle) * radius, 50, 550)
                team_nodes.append(node)

            state.team_centers.append(TeamCenter(
                team=team.display_name,
                chapter=team.chapter,
                x=cx,
                y=cy,
                node_ids=[n.id for n in team_nodes],
            ))

            for i, source in enumerate(team_nodes):
                for target in team_nodes[i + 1:]:
                    state.edges.append(RawEdge(
                        source=source.id,
                        target=target.id,
                        link_source=LINK_SOURCE_TEAMS,
                        type=TEAM_CONNECTION,
                        result="team_member",
                        team_name=team.display_name,
                        id=f"team-{team_index}-{pair_key(source.id, target.id)}",
                    ))

        for person_id, team_indexes in state.person_teams.items():
            if len(team_indexes) > 1:
                state.by_id[person_id].type = MULTI_TEAM_MEMBER

    def _overlay_meetings(
        self, state: _BuildState, meetings: list[Meeting], merges: dict[str, str], chapter_filter: bool
    ):
        team_edges = [e for e in state.edges if e.link_source == LINK_SOURCE_TEAMS]
        kept: list[tuple[Meeting, str | None, str | None]] = []

        for meeting in meetings:
            org_id = self._canonical(meeting.organizer_id, merges) if meeting.organizer_id else None
            part_id = self._canonical(meeting.participant_id, merges) if meeting.participant_id else None
            if chapter_filter and org_id not in state.roster_ids and part_id not in state.roster_ids:
                continue
            kept.append((meeting, org_id, part_id))

            if org_id and org_id not in state.by_id:
                name = self._name_for(meeting.organizer_id, meeting.organizer_name, "organizer")
                if name:
                    state.add(self._random_node(org_id, name, meeting.chapter, ACTIVE_ORGANIZER,
                                                self._loe_for(meeting.organizer_id, None)))
            if part_id and part_id not in state.by_id:
                name = self._name_for(meeting.participant_id, meeting.participant_name, "contact")
                if name:
                    state.add(self._random_node(part_id, name, meeting.chapter, CONVERSATION_PARTNER,
                                                self._loe_for(meeting.participant_id, meeting.participant_loe)))

        seen_pairs: set[tuple[str, str]] = set()
        added = 0
        for meeting, org_id, part_id in kept:
            if not org_id or not part_id or org_id == part_id:
                continue
            if org_id not in state.by_id or part_id not in state.by_id:
                continue
            pair = endpoint_pair(org_id, part_id)
            if pair in seen_pairs:
                continue
            seen_pairs.add(pair)
            state.edges.append(RawEdge(
                source=org_id,
                target=part_id,
                link_source=LINK_SOURCE_MEETINGS,
                type=CONVERSATION,
                result="conversation",
                timestamp=meeting.datestamp,
                meeting_id=meeting.meeting_id,
                id=meeting.meeting_id,
            ))
            added += 1

        present = {endpoint_pair(e.source, e.target) for e in state.edges if e.link_source == LINK_SOURCE_TEAMS}
        for edge in team_edges:
            if endpoint_pair(edge.source, edge.target) not in present:
                state.edges.append(edge)
        self._emit("meetings", f"{len(kept)} meetings in scope, {added} conversation edges")

    def _random_node(self, node_id: str, name: str, chapter: str | None, node_type: str, loe: str) -> Node:
        return Node(
            id=node_id,
            name=name,
            chapter=chapter or "Unknown",
            type=node_type,
            loe_status=loe,
            x=self.rng.random() * CANVAS_WIDTH,
            y=self.rng.random() * CANVAS_HEIGHT,
        )

    def _filter_by_loe(self, state: _BuildState, loe_filter: Iterable[str] | None):
        for node in state.nodes:
            if node.id in state.roster_ids:
                node.loe_status = STAFF_STATUS
        if loe_filter is None:
            return
        selected = set(loe_filter)
        state.nodes = [
            n for n in state.nodes
            if loe_category(n.loe_status, n.id in state.roster_ids) in selected
        ]
        state.by_id = {n.id: n for n in state.nodes}
        state.edges = [e for e in state.edges if e.source in state.by_id and e.target in state.by_id]
        kept_ids = set(state.by_id)
        for center in state.team_centers:
            center.node_ids = [i for i in center.node_ids if i in kept_ids]


def filter_meetings_by_date(meetings: list[Meeting], start_date: str | None, end_date: str | None) -> list[Meeting]:
    """Keep meetings whose YYYY-MM-DD date lies in [start_date, end_date]."""
    if not start_date and not end_date:
        return list(meetings)
    kept = []
    for meeting in meetings:
        day = meeting.date
        if not day:
            continue
        if start_date and day < start_date:
            continue
        if end_date and day > end_date:
            continue
        kept.append(meeting)
    return kept


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))
