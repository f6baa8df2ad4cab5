"""Shared fixtures: two small Durham/Wake teams and a handful of one-on-ones."""

import random

import pytest

from orgnet.analysis.identity import IdentityResolver
from orgnet.analysis.mapping_store import InMemoryMappingStore, OrganizerMapping


@pytest.fixture
def teams():
    # Carol sits on both rosters (3 + 4 members, one shared)
    return [
        {
            "id": "t1",
            "team_name": "Durham Housing",
            "chapter": "Durham",
            "team_lead": {"id": "1", "name": "Alice Smith"},
            "organizers": [
                {"id": "1", "name": "Alice Smith"},
                {"id": "2", "name": "Bob Jones"},
                {"id": "3", "name": "Carol White"},
            ],
        },
        {
            "id": "t2",
            "team_name": "Wake Transit",
            "chapter": "Wake",
            "team_lead": {"id": "4", "name": "Dave Brown"},
            "organizers": [
                {"id": "3", "name": "Carol White"},
                {"id": "4", "name": "Dave Brown"},
                {"id": "5", "name": "Erin Green"},
                {"id": "6", "name": "Frank Black"},
            ],
        },
    ]


@pytest.fixture
def meetings():
    return [
        {"organizer_vanid": "1", "organizer": "Alice Smith", "vanid": "100", "contact": "Gina Lopez",
         "chapter": "Durham", "date": "2025-01-10", "loe_status": "3_Member"},
        {"organizer_vanid": "4", "organizer": "Dave Brown", "vanid": "101", "contact": "Hank Moore",
         "chapter": "Wake", "date": "2025-02-15", "loe_status": "4_Supporter"},
        # Second conversation between the same pair
        {"organizer_vanid": "1", "organizer": "Alice Smith", "vanid": "100", "contact": "Gina Lopez",
         "chapter": "Durham", "date": {"value": "2025-03-01T14:00:00"}},
        {"organizer_vanid": "200", "organizer": "Ivy Chen", "vanid": "102", "contact": "Jo Park",
         "chapter": "Wake", "date": "2025-01-20"},
        # Malformed rows
        {"organizer": "Nobody", "contact": "No One"},
        "not a record",
    ]


@pytest.fixture
def store():
    return InMemoryMappingStore([
        OrganizerMapping(
            primary_id="1",
            preferred_name="Alice Smith",
            alternate_ids=["1001"],
            name_variants=["Ali Smith"],
        ),
    ])


@pytest.fixture
def resolver(store):
    return IdentityResolver(store)


@pytest.fixture
def rng():
    return random.Random(7)
