"""
Workflows
=========

Higher-level patterns built on the Context chat primitives.
"""

from agentloop.workflows.evaluator import (
    EvaluationFeedback,
    EvaluatorOptimizer,
    RefinementResult,
    RefinementState,
    RefinementStep,
    coerce_feedback,
    parse_evaluation,
)

__all__ = [
    "EvaluationFeedback",
    "EvaluatorOptimizer",
    "RefinementResult",
    "RefinementState",
    "RefinementStep",
    "coerce_feedback",
    "parse_evaluation",
]
