"""
Tests for GraphBuilder view construction and filtering.
"""

import random

import pytest

from orgnet.analysis.engagement import STAFF_STATUS, parse_buckets
from orgnet.analysis.graph_builder import ALL_CHAPTERS, GraphBuilder, NetworkView, filter_meetings_by_date
from orgnet.analysis.link_aggregator import LinkAggregator
from orgnet.analysis.models import (
    ACTIVE_ORGANIZER,
    CONVERSATION,
    CONVERSATION_PARTNER,
    MULTI_TEAM_MEMBER,
    TEAM_CONNECTION,
    TEAM_LEAD,
    TEAM_MEMBER,
)
from orgnet.analysis.records import Meeting, Team, load_meetings, load_teams, parse_record
from orgnet.errors import DataError


def _builder(**kwargs):
    kwargs.setdefault("rng", random.Random(3))
    return GraphBuilder(**kwargs)


def _pairs(graph):
    return {frozenset((e.source, e.target)) for e in graph.edges}


class TestTeamMembersView:

    def test_single_team_is_a_clique(self):
        team = {"team_name": "Solo", "chapter": "Durham",
                "organizers": [{"id": str(i), "name": f"Person{i} X"} for i in range(5)]}
        graph = _builder().build(NetworkView.TEAM_MEMBERS, [team], [])
        assert len(graph.nodes) == 5
        assert len(graph.edges) == 5 * 4 // 2
        assert all(e.type == TEAM_CONNECTION for e in graph.edges)
        assert all(n.degree == 4 for n in graph.nodes)

    def test_shared_member_bridges_two_teams(self, teams):
        graph = _builder().build(NetworkView.TEAM_MEMBERS, teams, [])
        nodes = graph.node_map()
        assert len(graph.nodes) == 6
        assert len(graph.edges) == 3 + 6
        assert nodes["3"].type == MULTI_TEAM_MEMBER
        assert nodes["3"].degree == 5
        assert nodes["3"].teams == ["Durham Housing", "Wake Transit"]
        assert nodes["1"].type == TEAM_LEAD
        assert nodes["4"].type == TEAM_LEAD
        assert nodes["2"].type == TEAM_MEMBER

    def test_team_centers_and_initial_positions(self, teams):
        graph = _builder().build(NetworkView.TEAM_MEMBERS, teams, [])
        centers = {c.team: c for c in graph.team_centers}
        assert (centers["Durham Housing"].x, centers["Durham Housing"].y) == (150, 150)
        assert (centers["Wake Transit"].x, centers["Wake Transit"].y) == (450, 150)
        assert centers["Wake Transit"].node_ids == ["3", "4", "5", "6"]
        for node in graph.nodes:
            assert 50 <= node.x <= 750
            assert 50 <= node.y <= 550

    def test_duplicate_roster_entries_collapse(self):
        team = {"team_name": "Dupes", "chapter": "Wake",
                "organizers": [{"id": "1", "name": "Ann"}, {"id": "1", "name": "Ann"}, {"id": "2", "name": "Sam"}]}
        graph = _builder().build(NetworkView.TEAM_MEMBERS, [team], [])
        assert len(graph.nodes) == 2
        assert len(graph.edges) == 1

    def test_nameless_member_gets_placeholder(self):
        team = {"team_name": "T", "chapter": "Wake", "organizers": [{"id": "77"}, {"id": "78", "name": "Max"}]}
        graph = _builder().build(NetworkView.TEAM_MEMBERS, [team], [])
        assert graph.node_map()["77"].name == "Member 77"

    def test_meetings_ignored(self, teams, meetings):
        graph = _builder().build(NetworkView.TEAM_MEMBERS, teams, meetings)
        assert {n.id for n in graph.nodes} == {"1", "2", "3", "4", "5", "6"}

    def test_empty_input(self):
        graph = _builder().build(NetworkView.TEAM_MEMBERS, [], [])
        assert graph.nodes == []
        assert graph.edges == []
        assert graph.team_centers == []

    def test_malformed_team_skipped(self, teams):
        graph = _builder().build(NetworkView.TEAM_MEMBERS, teams + [42, {"organizers": "nope"}], [])
        assert len(graph.nodes) == 6


class TestConnectionsView:

    def test_meeting_overlay(self, teams, meetings):
        graph = _builder().build(NetworkView.CONNECTIONS, teams, meetings)
        nodes = graph.node_map()
        assert set(nodes) == {"1", "2", "3", "4", "5", "6", "100", "101", "102", "200"}
        assert nodes["200"].type == ACTIVE_ORGANIZER
        assert nodes["100"].type == CONVERSATION_PARTNER
        assert nodes["100"].name == "Gina Lopez"
        conversations = [e for e in graph.edges if e.type == CONVERSATION]
        # Two Alice/Gina meetings produce one conversation edge
        assert len(conversations) == 3
        assert len([e for e in graph.edges if e.type == TEAM_CONNECTION]) == 9
        assert nodes["1"].degree == 3

    def test_conversation_edge_carries_meeting_id(self, teams, meetings):
        graph = _builder().build(NetworkView.CONNECTIONS, teams, meetings)
        edge = next(e for e in graph.edges if {e.source, e.target} == {"4", "101"})
        assert edge.meeting_id == "meeting-4-101-2025-02-15"
        assert edge.id == edge.meeting_id

    def test_chapter_filter(self, teams, meetings):
        graph = _builder().build(NetworkView.CONNECTIONS, teams, meetings, chapter="wake")
        nodes = graph.node_map()
        assert set(nodes) == {"3", "4", "5", "6", "101"}
        # Carol is only on the Wake roster within this scope
        assert nodes["3"].type == TEAM_MEMBER
        assert len(graph.edges) == 6 + 1

    def test_all_chapters_is_no_filter(self, teams, meetings):
        scoped = _builder().build(NetworkView.CONNECTIONS, teams, meetings, chapter=ALL_CHAPTERS)
        unscoped = _builder().build(NetworkView.CONNECTIONS, teams, meetings)
        assert {n.id for n in scoped.nodes} == {n.id for n in unscoped.nodes}

    def test_date_filter(self, teams, meetings):
        graph = _builder().build(NetworkView.CONNECTIONS, teams, meetings, start_date="2025-02-01")
        assert {"100", "101"} <= set(graph.node_map())
        assert "102" not in graph.node_map()
        assert "200" not in graph.node_map()

    def test_end_date_is_inclusive(self, teams, meetings):
        graph = _builder().build(NetworkView.CONNECTIONS, teams, meetings, end_date="2025-01-10")
        assert set(graph.node_map()) == {"1", "2", "3", "4", "5", "6", "100"}

    def test_resolver_folds_alternate_ids(self, teams, resolver):
        meetings = [{"organizer_vanid": "1001", "organizer": "Ali Smith", "vanid": "300", "contact": "Kim Lee",
                     "date": "2025-01-01"}]
        graph = _builder(resolver=resolver).build(NetworkView.CONNECTIONS, teams, meetings)
        assert "1001" not in graph.node_map()
        assert frozenset(("1", "300")) in _pairs(graph)

    def test_name_merge_folds_organizer_ids(self, teams):
        # Same first name as roster member 1, different id in the meeting export
        meetings = [{"organizer_vanid": "999", "organizer": "Alice S.", "vanid": "300", "contact": "Kim Lee"}]
        graph = _builder().build(NetworkView.CONNECTIONS, teams, meetings)
        assert "999" not in graph.node_map()
        assert frozenset(("1", "300")) in _pairs(graph)

    def test_participant_without_name_is_skipped(self, teams):
        meetings = [{"organizer_vanid": "1", "organizer": "Alice Smith", "vanid": "555"}]
        graph = _builder().build(NetworkView.CONNECTIONS, teams, meetings)
        assert "555" not in graph.node_map()
        assert len(graph.edges) == 9

    def test_self_meeting_adds_no_edge(self, teams):
        meetings = [{"organizer_vanid": "2", "organizer": "Bob Jones", "vanid": "2", "contact": "Bob Jones"}]
        graph = _builder().build(NetworkView.CONNECTIONS, teams, meetings)
        assert len(graph.edges) == 9

    def test_progress_callback(self, teams, meetings):
        events = []
        _builder(progress_callback=events.append).build(NetworkView.CONNECTIONS, teams, meetings)
        statuses = [e["status"] for e in events]
        assert statuses[0] == "start"
        assert statuses[-1] == "done"
        assert "meetings" in statuses


class TestByLoeView:

    def test_roster_members_become_staff(self, teams, meetings):
        graph = _builder().build(NetworkView.BY_LOE, teams, meetings)
        nodes = graph.node_map()
        assert nodes["1"].loe_status == STAFF_STATUS
        assert nodes["100"].loe_status == "3_Member"
        assert len(graph.nodes) == 10

    def test_bucket_filter(self, teams, meetings):
        graph = _builder().build(NetworkView.BY_LOE, teams, meetings, parse_buckets(["staff", "member"]))
        assert set(graph.node_map()) == {"1", "2", "3", "4", "5", "6", "100"}
        assert len(graph.edges) == 10
        for center in graph.team_centers:
            assert set(center.node_ids) <= set(graph.node_map())

    def test_empty_selection_keeps_nothing(self, teams, meetings):
        graph = _builder().build(NetworkView.BY_LOE, teams, meetings, frozenset())
        assert graph.nodes == []
        assert graph.edges == []

    def test_loe_lookup_overrides_record(self, teams, meetings):
        lookup = {"101": "2_TeamMember"}.get
        graph = _builder(loe_lookup=lookup).build(NetworkView.BY_LOE, teams, meetings, parse_buckets(["teammember"]))
        assert set(graph.node_map()) == {"101"}

    def test_filter_ignored_outside_loe_view(self, teams, meetings):
        graph = _builder().build(NetworkView.CONNECTIONS, teams, meetings, frozenset())
        assert len(graph.nodes) == 10


def test_unknown_view_rejected(teams):
    with pytest.raises(ValueError):
        _builder().build("org-chart", teams, [])


def test_degrees_match_aggregation(teams, meetings):
    graph = _builder().build(NetworkView.CONNECTIONS, teams, meetings)
    built = {n.id: n.degree for n in graph.nodes}
    expected = LinkAggregator.recompute_degrees(graph.nodes, LinkAggregator().aggregate(graph.edges))
    assert built == expected


def test_filter_meetings_by_date_drops_undated():
    meetings = load_meetings([
        {"organizer_vanid": "1", "vanid": "2", "date": "2025-05-01"},
        {"organizer_vanid": "1", "vanid": "3"},
    ])
    assert len(filter_meetings_by_date(meetings, None, None)) == 2
    assert len(filter_meetings_by_date(meetings, "2025-01-01", None)) == 1


class TestRecordLoading:

    def test_malformed_meeting_raises_data_error(self):
        row = {"organizer_name": "Nobody", "participant_name": "Also Nobody"}
        with pytest.raises(DataError) as info:
            parse_record(Meeting, row)
        assert info.value.record is row

    def test_non_mapping_team_raises_data_error(self):
        with pytest.raises(DataError):
            parse_record(Team, "Durham Housing")

    def test_loaders_skip_malformed_rows(self):
        meetings = load_meetings([
            {"organizer_vanid": 1, "vanid": 100, "contact": "Gina Lopez"},
            {"organizer_name": "Nobody"},
            "not a row",
        ])
        assert [(m.organizer_id, m.participant_id) for m in meetings] == [("1", "100")]
        teams = load_teams({"teams": [{"team_name": "Durham Housing", "organizers": []}, 42]})
        assert [t.display_name for t in teams] == ["Durham Housing"]
