"""
Moderation pipeline for ModBot.

- **score_normalizer.py**: Turns raw classifier scores into a ViolationAssessment.
- **policy_evaluator.py**: Pure decision table from assessment and warning
  state to a ModerationDecision.
- **warning_store.py**: Per-user warning state with per-user serialized
  updates, inactivity reset and optional persistence.
- **dedup_cache.py**: TTL cache of assessments keyed by text fingerprint,
  with single-flight computation.
- **moderation_orchestrator.py**: Runs normalize, evaluate and update for
  single messages and batches; fails open on classifier outages.
- **moderation_stats.py**: Decision counters and classifier latency.
- **decision_enactor.py**: Maps a decision to steps on a platform adapter.
"""
