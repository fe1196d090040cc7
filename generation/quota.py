"""
Quota Distributor

Splits a global QuotaRequirement across chunks in proportion to chunk size
using the largest-remainder (Hamilton) method:

  share_i   = count × tokens_i / total_tokens
  floor_i   = ⌊share_i⌋
  remainder = count − Σ floor_i            (0 ≤ remainder < number of chunks)
  the remainder goes one unit at a time to the largest fractional parts,
  earliest chunk first on ties

Everything is integer arithmetic (numerator // total, numerator % total), so
Σ_i assigned_i == count holds exactly for every tier.

Example: weights [0.5, 0.3, 0.2] × 7 → shares [3.5, 2.1, 1.4] → floors [3, 2, 1]
         → remainder 1 → chunk 0 → [4, 2, 1]

Both axes describe the same questions, so the split runs in two passes:

1. the request total (the larger axis total) is split over chunk tokens,
   giving each chunk its question count
2. each axis total is split over those chunk counts, then each tier over the
   axis shares; single slots are moved from chunks above their share to
   chunks below it until every chunk's axis sum matches (tier sums never change)

The larger axis fills every chunk count exactly. The smaller axis never
exceeds it, and the planner pairs the gap with "any".
"""

import logging
from typing import Dict, List, Sequence

from ingestion.schemas import ContentChunk
from .errors import ConfigurationError
from .schemas import BLOOM_TIERS, DIFFICULTY_TIERS, ChunkQuota, QuotaRequirement

log = logging.getLogger("generation.pipeline")


def largest_remainder(count: int, weights: Sequence[int]) -> List[int]:
    """
    Apportion count over integer weights.

    Zero-weight entries always get 0. Raises ConfigurationError when count > 0
    and there is nothing (or nothing with weight) to give it to.
    """
    if count < 0:
        raise ConfigurationError(f"Tier count must be >= 0, got {count}")
    if count == 0:
        return [0] * len(weights)
    if not weights:
        raise ConfigurationError(f"Cannot distribute {count} questions across zero chunks")
    total = sum(weights)
    if total <= 0:
        raise ConfigurationError(f"Cannot distribute {count} questions: every chunk is empty")

    floors = []
    fractions = []
    for weight in weights:
        numerator = count * weight
        floors.append(numerator // total)
        fractions.append(numerator % total)

    remainder = count - sum(floors)
    order = sorted(range(len(weights)), key=lambda i: (-fractions[i], i))
    for i in order[:remainder]:
        floors[i] += 1
    return floors


def _distribute_axis(counts: Dict[str, int], tiers: Sequence[str], weights: List[int]) -> List[Dict[str, int]]:
    per_chunk: List[Dict[str, int]] = [dict() for _ in weights]
    for tier in tiers:
        shares = largest_remainder(counts.get(tier, 0), weights)
        for i, share in enumerate(shares):
            per_chunk[i][tier] = share
    return per_chunk


def _fill_axis(counts: Dict[str, int], tiers: Sequence[str], targets: List[int]) -> List[Dict[str, int]]:
    """Per-tier split whose per-chunk sums equal targets; sum(targets) must equal the axis total."""
    per_chunk = _distribute_axis(counts, tiers, targets)
    sums = [sum(row.values()) for row in per_chunk]
    while True:
        src = next((i for i, s in enumerate(sums) if s > targets[i]), None)
        if src is None:
            return per_chunk
        dst = next(j for j, s in enumerate(sums) if s < targets[j])
        # highest tier moves first
        tier = next(t for t in reversed(tiers) if per_chunk[src][t] > 0)
        per_chunk[src][tier] -= 1
        per_chunk[dst][tier] += 1
        sums[src] -= 1
        sums[dst] += 1


def distribute_quota(chunks: List[ContentChunk], requirement: QuotaRequirement) -> List[ChunkQuota]:
    """
    One ChunkQuota per chunk, index-aligned with chunks.

    Raises:
        ConfigurationError: non-zero request with no chunks, or only empty chunks
    """
    if not chunks and requirement.total > 0:
        raise ConfigurationError(
            f"Requested {requirement.total} questions but the material produced no content chunks"
        )

    weights = [max(0, c.tokens) for c in chunks]
    chunk_totals = largest_remainder(requirement.total, weights)
    difficulty = _fill_axis(
        requirement.difficulty,
        DIFFICULTY_TIERS,
        largest_remainder(requirement.difficulty_total, chunk_totals),
    )
    bloom = _fill_axis(
        requirement.bloom_levels,
        BLOOM_TIERS,
        largest_remainder(requirement.bloom_total, chunk_totals),
    )

    quotas = [
        ChunkQuota(
            chunk_id=chunk.id,
            chunk_tokens=chunk.tokens,
            difficulty=difficulty[i],
            bloom_levels=bloom[i],
        )
        for i, chunk in enumerate(chunks)
    ]

    for q in quotas:
        log.debug(f"[QUOTA] {q.chunk_id} ({q.chunk_tokens} tok) difficulty={q.difficulty} bloom={q.bloom_levels}")
    log.info(
        f"[QUOTA] distributed difficulty={requirement.difficulty_total} "
        f"bloom={requirement.bloom_total} over {len(chunks)} chunks"
    )
    return quotas
