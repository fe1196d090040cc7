from __future__ import annotations

from typing import List

import pytest
from pydantic import ValidationError

from conftest import make_sections

from generation.errors import ConfigurationError
from generation.planner import build_plan, units_for_chunk
from generation.quota import distribute_quota, largest_remainder
from generation.schemas import ChunkQuota, QuotaRequirement
from ingestion.schemas import ChunkingConfig, ContentChunk


def _chunks(tokens: List[int]) -> List[ContentChunk]:
    return [
        ContentChunk(id=f"chunk-{i}", title=f"Chunk {i}", content="x" * (t * 4), tokens=t)
        for i, t in enumerate(tokens, start=1)
    ]


# ─── largest_remainder ────────────────────────────────────────────────────────

def test_largest_remainder_worked_example() -> None:
    assert largest_remainder(7, [500, 300, 200]) == [4, 2, 1]


def test_largest_remainder_ties_go_to_earliest_chunk() -> None:
    assert largest_remainder(1, [100, 100, 100]) == [1, 0, 0]
    assert largest_remainder(2, [100, 100, 100]) == [1, 1, 0]


@pytest.mark.parametrize("count", [0, 1, 5, 13, 100])
def test_largest_remainder_sums_exactly(count: int) -> None:
    weights = [1234, 17, 980, 3, 455]

    shares = largest_remainder(count, weights)

    assert sum(shares) == count
    assert all(s >= 0 for s in shares)


def test_zero_weight_entries_get_nothing() -> None:
    assert largest_remainder(5, [0, 10, 0]) == [0, 5, 0]


def test_zero_count_needs_no_weights() -> None:
    assert largest_remainder(0, []) == []


def test_no_weights_with_positive_count_is_rejected() -> None:
    with pytest.raises(ConfigurationError):
        largest_remainder(3, [])
    with pytest.raises(ConfigurationError):
        largest_remainder(3, [0, 0])


# ─── distribute_quota ─────────────────────────────────────────────────────────

def test_distribution_is_per_tier_and_exact() -> None:
    requirement = QuotaRequirement(
        difficulty={"easy": 7, "hard": 3},
        bloom_levels={"remember": 5, "apply": 5},
    )

    quotas = distribute_quota(_chunks([500, 300, 200]), requirement)

    assert [q.difficulty["easy"] for q in quotas] == [4, 2, 1]
    assert sum(q.difficulty["hard"] for q in quotas) == 3
    assert sum(q.difficulty["medium"] for q in quotas) == 0
    assert [q.bloom_levels["remember"] for q in quotas] == [3, 1, 1]
    assert sum(q.bloom_levels["apply"] for q in quotas) == 5
    assert [q.chunk_id for q in quotas] == ["chunk-1", "chunk-2", "chunk-3"]


def test_single_chunk_takes_everything() -> None:
    requirement = QuotaRequirement(difficulty={"medium": 6}, bloom_levels={"analyze": 6})

    [quota] = distribute_quota(_chunks([42]), requirement)

    assert quota.difficulty["medium"] == 6
    assert quota.bloom_levels["analyze"] == 6


def test_no_chunks_with_positive_request_is_rejected() -> None:
    with pytest.raises(ConfigurationError):
        distribute_quota([], QuotaRequirement(difficulty={"easy": 1}))


def test_empty_request_over_no_chunks_is_empty() -> None:
    assert distribute_quota([], QuotaRequirement()) == []


# ─── QuotaRequirement ─────────────────────────────────────────────────────────

def test_requirement_normalises_aliases_and_case() -> None:
    requirement = QuotaRequirement(
        difficulty={"Easy": 2, "difficult": 1},
        bloom_levels={"Recall": 1, "analyse": 2},
    )

    assert requirement.difficulty == {"easy": 2, "medium": 0, "hard": 1}
    assert requirement.bloom_levels["remember"] == 1
    assert requirement.bloom_levels["analyze"] == 2
    assert requirement.total == 3


def test_requirement_rejects_unknown_tier_and_negative_count() -> None:
    with pytest.raises(ValidationError):
        QuotaRequirement(difficulty={"trivial": 1})
    with pytest.raises(ValidationError):
        QuotaRequirement(bloom_levels={"apply": -1})


def test_total_is_larger_axis() -> None:
    requirement = QuotaRequirement(difficulty={"easy": 2}, bloom_levels={"apply": 5})

    assert requirement.total == 5


# ─── Planner ──────────────────────────────────────────────────────────────────

def test_units_pair_slots_in_tier_order() -> None:
    quota = ChunkQuota(
        chunk_id="chunk-1",
        difficulty={"easy": 2, "medium": 0, "hard": 1},
        bloom_levels={"remember": 1, "apply": 2},
    )

    units = units_for_chunk(quota)

    assert [(u.difficulty, u.bloom_level, u.count) for u in units] == [
        ("easy", "remember", 1),
        ("easy", "apply", 1),
        ("hard", "apply", 1),
    ]


def test_extra_slots_pair_with_any() -> None:
    quota = ChunkQuota(chunk_id="chunk-2", difficulty={"medium": 1}, bloom_levels={"create": 3})

    units = units_for_chunk(quota)

    assert [(u.difficulty, u.bloom_level, u.count) for u in units] == [
        ("medium", "create", 1),
        (None, "create", 2),
    ]
    assert units[1].label == "chunk-2/any/create"


def test_build_plan_covers_every_requested_slot() -> None:
    sections = make_sections([900, 400, 1500, 300])
    requirement = QuotaRequirement(
        difficulty={"easy": 5, "medium": 4, "hard": 3},
        bloom_levels={"remember": 3, "understand": 3, "apply": 3, "evaluate": 3},
    )

    plan = build_plan(sections, requirement, ChunkingConfig(max_tokens_per_chunk=200, min_tokens_per_chunk=50))

    assert len(plan.chunks) > 1
    assert plan.total_requested == sum(q.total for q in plan.quotas) == requirement.total == 12
    for tier, count in requirement.difficulty.items():
        assert sum(u.count for u in plan.units if u.difficulty == tier) == count
    for tier, count in requirement.bloom_levels.items():
        assert sum(u.count for u in plan.units if u.bloom_level == tier) == count
    chunk_ids = {c.id for c in plan.chunks}
    assert all(u.chunk_id in chunk_ids for u in plan.units)


def test_build_plan_rejects_empty_request() -> None:
    with pytest.raises(ConfigurationError):
        build_plan(make_sections([100]), QuotaRequirement())


def test_unequal_axis_totals_plan_exactly_the_request() -> None:
    requirement = QuotaRequirement(difficulty={"easy": 1, "medium": 1}, bloom_levels={"remember": 2})

    plan = build_plan(
        make_sections([800, 800]),
        requirement,
        ChunkingConfig(max_tokens_per_chunk=210, min_tokens_per_chunk=0),
    )

    assert plan.total_requested == requirement.total == 2
    assert sum(u.count for u in plan.units if u.difficulty == "easy") == 1
    assert sum(u.count for u in plan.units if u.difficulty == "medium") == 1
    assert sum(u.count for u in plan.units if u.bloom_level == "remember") == 2
    assert all(u.difficulty is not None for u in plan.units)


@pytest.mark.parametrize("tokens", [[500, 300, 200], [120, 80, 400, 77, 310], [1, 1, 1, 1, 1, 1, 1]])
def test_chunk_axes_share_one_question_count(tokens: List[int]) -> None:
    requirement = QuotaRequirement(
        difficulty={"easy": 4, "medium": 2, "hard": 1},
        bloom_levels={"remember": 1, "apply": 2, "analyze": 1},
    )

    quotas = distribute_quota(_chunks(tokens), requirement)

    assert sum(q.total for q in quotas) == requirement.total == 7
    for q in quotas:
        assert sum(q.difficulty.values()) == q.total
        assert sum(q.bloom_levels.values()) <= q.total
    for tier, count in requirement.difficulty.items():
        assert sum(q.difficulty[tier] for q in quotas) == count
    for tier, count in requirement.bloom_levels.items():
        assert sum(q.bloom_levels[tier] for q in quotas) == count
