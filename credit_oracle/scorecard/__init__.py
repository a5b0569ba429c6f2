"""Scorecard package: fixed heuristic weights and the scoring engine."""
from .scorecard_engine import ScoringEngine, validate_score

__all__ = ["ScoringEngine", "validate_score"]
