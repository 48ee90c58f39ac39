"""Quality gate for candidate media."""

from .gate import GateDecision, GateThresholds, decision_status, evaluate

__all__ = ["GateDecision", "GateThresholds", "decision_status", "evaluate"]
