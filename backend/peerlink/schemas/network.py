"""Network Schemas — Pydantic request models for the dashboard API.

Invariants:
    - Domains are stripped, lowercased and non-empty before reaching the coordinator
    - Activity bodies must carry a string `type`; everything else is passed through untouched
    - targets=None means "all known peers"; an explicit list must not be empty

Design Decisions:
    - field_validator for side-effect-free transforms (strip/lower) — keeps models pure
"""

from pydantic import BaseModel, Field, field_validator

from peerlink.core.domain_types import normalize_domain


def _clean_domain(v: str) -> str:
    v = normalize_domain(v)
    if not v:
        raise ValueError("domain cannot be empty or whitespace")
    if "/" in v or "@" in v:
        raise ValueError("domain must be a bare host[:port]")
    return v


def _check_activity(v: dict) -> dict:
    if not isinstance(v.get("type"), str) or not v["type"]:
        raise ValueError("activity must have a string 'type'")
    return v


class DiscoverRequest(BaseModel):
    """Ask the coordinator to discover one domain."""
    domain: str = Field(min_length=1, max_length=253)

    @field_validator("domain")
    @classmethod
    def clean_domain(cls, v: str) -> str:
        return _clean_domain(v)


class SendActivityRequest(BaseModel):
    """Queue an activity for federation."""
    activity: dict
    targets: list[str] | None = Field(None, min_length=1, max_length=1000)

    @field_validator("activity")
    @classmethod
    def check_activity(cls, v: dict) -> dict:
        return _check_activity(v)

    @field_validator("targets")
    @classmethod
    def clean_targets(cls, v: list[str] | None) -> list[str] | None:
        if v is None:
            return None
        return [_clean_domain(d) for d in v]


class DirectSendRequest(BaseModel):
    """Deliver an activity to one target synchronously."""
    target: str = Field(min_length=1, max_length=253)
    activity: dict

    @field_validator("target")
    @classmethod
    def clean_target(cls, v: str) -> str:
        return _clean_domain(v)

    @field_validator("activity")
    @classmethod
    def check_activity(cls, v: dict) -> dict:
        return _check_activity(v)


class QueuedResponse(BaseModel):
    status: str = "queued"
    queued: int
