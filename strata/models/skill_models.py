"""STRATA — Skill Aggregate Models."""

from typing import Dict
from pydantic import BaseModel

SkillLevels = Dict[str, int]


class SkillAggregate(BaseModel):
    """Per-skill movement inside one bucket."""

    start: int = 0
    end: int = 0
    gain: int = 0


SkillAggregates = Dict[str, SkillAggregate]


def aggregate_skills(start: SkillLevels, end: SkillLevels) -> SkillAggregates:
    """Combine the first and last skill maps of a bucket.

    Every skill present in either map appears in the result; a skill missing
    from one side counts as level 0 on that side.
    """
    names = list(dict.fromkeys([*start, *end]))
    result: SkillAggregates = {}
    for name in names:
        s = start.get(name, 0)
        e = end.get(name, 0)
        result[name] = SkillAggregate(start=s, end=e, gain=e - s)
    return result


def start_levels(aggregates: SkillAggregates) -> SkillLevels:
    return {name: agg.start for name, agg in aggregates.items()}


def end_levels(aggregates: SkillAggregates) -> SkillLevels:
    return {name: agg.end for name, agg in aggregates.items()}
