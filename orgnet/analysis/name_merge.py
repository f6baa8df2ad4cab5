"""First-name based id merging across rosters and meeting logs.

Rosters and meeting exports frequently carry the same organizer under two
ids. The index groups roster members by normalized first name and folds the
duplicates onto the first-seen member. It is a heuristic: two different
people sharing a first name are merged as well.
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Mapping, Sequence

from orgnet.analysis.records import Meeting, Team

logger = logging.getLogger(__name__)

DEFAULT_NAME_VARIATIONS: dict[str, str] = {
    "lufti": "leo",
    "lutfi": "leo",
    "ben": "benjamin",
    "benny": "benjamin",
}


def normalize_first_name(full_name: str | None, variations: Mapping[str, str] | None = None) -> str:
    """Lower-cased first token of a name, folded through the nickname table."""
    if not full_name:
        return ""
    parts = full_name.strip().split()
    if not parts:
        return ""
    first = parts[0].lower()
    table = DEFAULT_NAME_VARIATIONS if variations is None else variations
    return table.get(first, first)


def build_name_merges(
    teams: Sequence[Team],
    meetings: Sequence[Meeting],
    variations: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Return ``raw_id -> canonical_id`` for ids that should be folded together.

    Ids that map to themselves are left out; look ups fall back to the raw id.
    """
    merges: dict[str, str] = {}
    canonical_by_name: dict[str, str] = {}
    ids_by_name: dict[str, list[str]] = {}

    for team in teams:
        for member in team.members:
            first = normalize_first_name(member.name, variations)
            if not member.id or not first:
                continue
            group = ids_by_name.setdefault(first, [])
            if member.id not in group:
                group.append(member.id)
            canonical_by_name.setdefault(first, member.id)

    for first, ids in ids_by_name.items():
        if len(ids) < 2:
            continue
        canonical = canonical_by_name[first]
        for raw_id in ids:
            if raw_id != canonical:
                merges[raw_id] = canonical

    for meeting in meetings:
        first = normalize_first_name(meeting.organizer_name, variations)
        if not meeting.organizer_id or not first:
            continue
        canonical = canonical_by_name.get(first)
        if canonical and canonical != meeting.organizer_id:
            merges[meeting.organizer_id] = canonical

    if merges:
        logger.debug("Name-based merges: %d raw ids folded", len(merges))
    return merges


def _fingerprint(teams: Sequence[Team], meetings: Sequence[Meeting]) -> str:
    payload = {
        "teams": [[(m.id, m.name) for m in t.members] for t in teams],
        "meetings": [(m.organizer_id, m.organizer_name) for m in meetings],
    }
    return hashlib.sha1(json.dumps(payload, sort_keys=True).encode()).hexdigest()


class NameMergeCache:
    """Memoizes the merge index for the current (teams, meetings) pair.

    Inputs are fingerprinted on ids and names only, so the index is rebuilt
    exactly when something it depends on changed, including in-place edits.
    """

    def __init__(self, variations: Mapping[str, str] | None = None):
        self.variations = dict(DEFAULT_NAME_VARIATIONS if variations is None else variations)
        self._fingerprint: str | None = None
        self._merges: dict[str, str] = {}
        self.builds = 0

    def get(self, teams: Sequence[Team], meetings: Sequence[Meeting]) -> dict[str, str]:
        fingerprint = _fingerprint(teams, meetings)
        if fingerprint != self._fingerprint:
            self._merges = build_name_merges(teams, meetings, self.variations)
            self._fingerprint = fingerprint
            self.builds += 1
        return self._merges

    def invalidate(self):
        self._fingerprint = None
        self._merges = {}
