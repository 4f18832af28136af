"""Prometheus metrics for lifecycle, drafting and merge observability."""
from __future__ import annotations

from prometheus_client import Counter, Histogram


CEREMONY_TRANSITIONS_TOTAL = Counter(
    "fantasy_ceremony_transitions_total",
    "Ceremony status transitions",
    ["from_status", "to_status"],
)

DRAFT_LOCK_CASCADES_TOTAL = Counter(
    "fantasy_draft_lock_cascades_total",
    "Draft lock cascades by trigger",
    ["trigger"],
)

DRAFTS_CANCELLED_TOTAL = Counter(
    "fantasy_drafts_cancelled_total",
    "Drafts cancelled by a ceremony lock cascade",
)

DRAFT_TRANSITIONS_TOTAL = Counter(
    "fantasy_draft_transitions_total",
    "Draft status transitions",
    ["from_status", "to_status"],
)

NOMINATION_STATUS_CHANGES_TOTAL = Counter(
    "fantasy_nomination_status_changes_total",
    "Nomination ledger status changes",
    ["action", "impact"],
)

PICKS_SUBMITTED_TOTAL = Counter(
    "fantasy_picks_submitted_total",
    "Pick submissions by outcome",
    ["outcome"],
)

PICK_SUBMIT_LATENCY_SECONDS = Histogram(
    "fantasy_pick_submit_latency_seconds",
    "Pick submission latency",
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2, 5),
)

ENTITY_MERGES_TOTAL = Counter(
    "fantasy_entity_merges_total",
    "Merged canonical entities",
    ["entity"],
)

MERGE_ROWS_TOTAL = Counter(
    "fantasy_merge_rows_total",
    "Rows repointed or deleted by merge pipeline steps",
    ["entity", "step"],
)

REALTIME_EVENTS_DISPATCHED_TOTAL = Counter(
    "fantasy_realtime_events_dispatched_total",
    "Realtime ceremony events handed to the broker",
    ["event_type", "outcome"],
)

HYDRATION_FAILURES_TOTAL = Counter(
    "fantasy_hydration_failures_total",
    "Best-effort metadata lookups that failed",
    ["kind"],
)
