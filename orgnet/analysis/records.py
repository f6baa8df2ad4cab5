"""Input records for rosters and meeting logs.

Raw rows come from several exports (dashboard API, BigQuery dumps, CSV
seeds) and disagree on field names, so every model accepts the known
aliases. Loading is per record: a malformed row is logged and skipped,
never aborting the batch.
"""

from __future__ import annotations

import logging
from typing import Any, TypeVar

from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator, model_validator

from orgnet.errors import DataError

logger = logging.getLogger(__name__)

_RecordT = TypeVar("_RecordT", bound=BaseModel)


def _as_id(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class RosterMember(BaseModel):
    """One person listed on a team roster."""
    model_config = {"extra": "ignore"}

    id: str = Field(..., validation_alias=AliasChoices("id", "vanid", "van_id", "member_id"))
    name: str = Field("", validation_alias=AliasChoices("name", "full_name", "fullname"))
    chapter: str | None = None
    role: str | None = Field(None, validation_alias=AliasChoices("role", "team_role", "constituentRole"))
    loe_status: str | None = Field(None, validation_alias=AliasChoices("loe_status", "loeStatus", "loe"))

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v):
        ident = _as_id(v)
        if ident is None:
            raise ValueError("member id is required")
        return ident

    @field_validator("name", mode="before")
    @classmethod
    def _coerce_name(cls, v):
        return "" if v is None else str(v).strip()


class Team(BaseModel):
    """A roster: named team inside a chapter with a lead and members."""
    model_config = {"extra": "ignore"}

    id: str | None = None
    name: str = Field("", validation_alias=AliasChoices("name", "team_name", "teamName"))
    chapter: str = ""
    lead: RosterMember | None = Field(None, validation_alias=AliasChoices("lead", "team_lead", "teamLead"))
    members: list[RosterMember] = Field(
        default_factory=list,
        validation_alias=AliasChoices("members", "organizers", "team_members", "teamMembersWithRoles"),
    )

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_team_id(cls, v):
        return _as_id(v)

    @field_validator("chapter", mode="before")
    @classmethod
    def _coerce_chapter(cls, v):
        return "" if v is None else str(v).strip()

    @field_validator("lead", mode="before")
    @classmethod
    def _lenient_lead(cls, v):
        if v is None or not isinstance(v, dict):
            return None
        try:
            return RosterMember.model_validate(v)
        except ValidationError:
            return None

    @field_validator("members", mode="before")
    @classmethod
    def _drop_bad_members(cls, v):
        if not isinstance(v, list):
            return []
        members = []
        for raw in v:
            if isinstance(raw, RosterMember):
                members.append(raw)
                continue
            try:
                members.append(RosterMember.model_validate(raw))
            except ValidationError as exc:
                logger.debug("Skipping roster member %r: %s", raw, exc.errors()[0].get("msg"))
        return members

    @property
    def display_name(self) -> str:
        return self.name or self.chapter

    def is_lead(self, member: RosterMember) -> bool:
        return self.lead is not None and self.lead.id == member.id


class Meeting(BaseModel):
    """A logged one-on-one conversation between an organizer and a participant."""
    model_config = {"extra": "ignore"}

    organizer_id: str | None = Field(None, validation_alias=AliasChoices("organizer_id", "organizer_vanid"))
    organizer_name: str = Field("", validation_alias=AliasChoices("organizer_name", "organizer"))
    participant_id: str | None = Field(
        None, validation_alias=AliasChoices("participant_id", "vanid", "participant_vanid")
    )
    participant_name: str = Field("", validation_alias=AliasChoices("participant_name", "contact", "participant"))
    chapter: str | None = None
    datestamp: str | None = Field(None, validation_alias=AliasChoices("datestamp", "date", "utc_datecanvassed"))
    meeting_type: str | None = None
    participant_loe: str | None = Field(None, validation_alias=AliasChoices("participant_loe", "loe_status", "loe"))

    @field_validator("organizer_id", "participant_id", mode="before")
    @classmethod
    def _coerce_ids(cls, v):
        return _as_id(v)

    @field_validator("organizer_name", "participant_name", mode="before")
    @classmethod
    def _coerce_names(cls, v):
        return "" if v is None else str(v).strip()

    @field_validator("datestamp", mode="before")
    @classmethod
    def _unwrap_datestamp(cls, v):
        # BigQuery exports wrap timestamps as {"value": "..."}
        if isinstance(v, dict):
            v = v.get("value")
        return _as_id(v)

    @model_validator(mode="after")
    def _needs_an_endpoint(self):
        if not self.organizer_id and not self.participant_id:
            raise ValueError("meeting has neither organizer nor participant id")
        return self

    @property
    def date(self) -> str | None:
        """Calendar date (YYYY-MM-DD) of the meeting, if known."""
        if not self.datestamp:
            return None
        return self.datestamp[:10]

    @property
    def meeting_id(self) -> str:
        return f"meeting-{self.organizer_id or ''}-{self.participant_id or ''}-{self.datestamp or ''}"


def _unwrap(raw: Any, key: str) -> list:
    if raw is None:
        return []
    if isinstance(raw, dict):
        raw = raw.get(key, [])
    return raw if isinstance(raw, list) else []


def parse_record(model: type[_RecordT], row: Any) -> _RecordT:
    """Validate one roster or meeting row; raises DataError when it is malformed."""
    if isinstance(row, model):
        return row
    try:
        return model.model_validate(row)
    except ValidationError as exc:
        raise DataError(f"invalid {model.__name__.lower()} record: {exc.errors()[0].get('msg')}", record=row) from exc


def _load(model: type[_RecordT], raw: Any, key: str) -> list[_RecordT]:
    records = []
    for row in _unwrap(raw, key):
        try:
            records.append(parse_record(model, row))
        except DataError as exc:
            logger.debug("Skipping %r: %s", exc.record, exc)
    return records


def load_teams(raw: Any) -> list[Team]:
    """Validate roster rows, skipping malformed ones."""
    return _load(Team, raw, "teams")


def load_meetings(raw: Any) -> list[Meeting]:
    """Validate meeting rows, skipping malformed ones."""
    return _load(Meeting, raw, "meetings")
