"""
Work-unit planning
chunks + ChunkQuotas → WorkUnits

Inside one chunk the difficulty slots and the Bloom slots are expanded in tier
order and paired position by position:

  difficulty {easy: 2, hard: 1}            → easy, easy, hard
  bloom      {remember: 1, apply: 2}       → remember, apply, apply
  pairs                                    → (easy, remember), (easy, apply), (hard, apply)

Identical pairs are merged into one unit with a count. When one axis has more
slots in a chunk, its extra slots are paired with None ("any") so that every
assigned slot on both axes lands in exactly one unit. distribute_quota sizes
the larger axis to each chunk's question count, so the units of a plan add up
to exactly QuotaRequirement.total.
"""

from collections import OrderedDict
from itertools import zip_longest
from typing import List, Optional

from ingestion.chunker import chunk_sections
from ingestion.schemas import ChunkingConfig, ContentChunk, Section
from .errors import ConfigurationError
from .quota import distribute_quota
from .schemas import (
    BLOOM_TIERS,
    DIFFICULTY_TIERS,
    ChunkQuota,
    GenerationPlan,
    QuotaRequirement,
    WorkUnit,
)


def _expand(counts: dict, tiers) -> List[str]:
    slots: List[str] = []
    for tier in tiers:
        slots.extend([tier] * counts.get(tier, 0))
    return slots


def units_for_chunk(quota: ChunkQuota) -> List[WorkUnit]:
    difficulty_slots = _expand(quota.difficulty, DIFFICULTY_TIERS)
    bloom_slots = _expand(quota.bloom_levels, BLOOM_TIERS)

    grouped: "OrderedDict[tuple, int]" = OrderedDict()
    for difficulty, bloom in zip_longest(difficulty_slots, bloom_slots):
        key = (difficulty, bloom)
        grouped[key] = grouped.get(key, 0) + 1

    return [
        WorkUnit(chunk_id=quota.chunk_id, difficulty=difficulty, bloom_level=bloom, count=count)
        for (difficulty, bloom), count in grouped.items()
    ]


def build_work_units(quotas: List[ChunkQuota]) -> List[WorkUnit]:
    units: List[WorkUnit] = []
    for quota in quotas:
        units.extend(units_for_chunk(quota))
    return units


def build_plan(
    sections: List[Section],
    requirement: QuotaRequirement,
    config: Optional[ChunkingConfig] = None,
    chunks: Optional[List[ContentChunk]] = None,
) -> GenerationPlan:
    """
    Chunk → distribute → pair. Pure; safe to call from a request handler
    as a dry run.

    Raises:
        ConfigurationError: nothing requested, or the request cannot be placed on any chunk
    """
    if requirement.total <= 0:
        raise ConfigurationError("Quota requirement asks for zero questions")
    if chunks is None:
        chunks = chunk_sections(sections, config or ChunkingConfig())
    quotas = distribute_quota(chunks, requirement)
    units = build_work_units(quotas)
    return GenerationPlan(chunks=chunks, quotas=quotas, units=units)
