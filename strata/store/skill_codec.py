"""STRATA — Skill Payload Codec.

Skill maps are stored as a small versioned JSON envelope:
    {"v": 1, "skills": {...}}
The payload format is internal to the store; callers only ever see
SkillLevels / SkillAggregates.
"""

from typing import Dict, Literal

from pydantic import BaseModel, ConfigDict, ValidationError

from strata.core.errors import DecodeError, EncodeError
from strata.models.skill_models import SkillAggregate, SkillAggregates, SkillLevels

PAYLOAD_VERSION = 1


class SkillLevelsPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    v: Literal[1]
    skills: Dict[str, int] = {}


class SkillAggregatesPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    v: Literal[1]
    skills: Dict[str, SkillAggregate] = {}


def encode_levels(skills: SkillLevels) -> str:
    try:
        payload = SkillLevelsPayload(v=PAYLOAD_VERSION, skills=dict(skills))
    except ValidationError as e:
        raise EncodeError(f"Invalid skill levels: {e}") from e
    return payload.model_dump_json()


def decode_levels(payload: str) -> SkillLevels:
    try:
        return SkillLevelsPayload.model_validate_json(payload).skills
    except ValidationError as e:
        raise DecodeError(f"Malformed skill levels payload: {e}") from e


def encode_aggregates(skills: SkillAggregates) -> str:
    try:
        payload = SkillAggregatesPayload(v=PAYLOAD_VERSION, skills=dict(skills))
    except ValidationError as e:
        raise EncodeError(f"Invalid skill aggregates: {e}") from e
    return payload.model_dump_json()


def decode_aggregates(payload: str) -> SkillAggregates:
    try:
        return SkillAggregatesPayload.model_validate_json(payload).skills
    except ValidationError as e:
        raise DecodeError(f"Malformed skill aggregate payload: {e}") from e
