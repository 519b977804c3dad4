"""
Value objects and the error taxonomy shared by every ModBot component.

- **moderation_datatypes.py**: Toxicity attributes and default thresholds,
  the ModerationAction and Severity enums, ViolationAssessment, WarningState,
  ModerationDecision, PolicyConfig, and the batch item/result pair.

- **errors.py**: ModBotError and its subclasses (validation, classifier,
  batch item, authorization, rate limit, persistence).
"""
