"""
Evaluator-Optimizer Workflow
============================

One role (the optimizer) writes a response; another (the evaluator)
scores it and says what to improve; the optimizer tries again with that
feedback. The loop stops as soon as a response is good enough or the
iteration budget is spent.

State machine:

    GENERATING ──► EVALUATING ──┬─► ACCEPTED    accept flag or score >= threshold
         ▲                      ├─► EXHAUSTED   iteration cap reached
         └──────────────────────┘   otherwise: refine with the feedback

An evaluator reply that cannot be parsed never aborts the run. It is
recorded as score 0 / not accepted, and the parse problem is passed on
to the next optimizer prompt.

Usage:
    workflow = EvaluatorOptimizer(
        Context(llm=client),
        criteria=["Factually correct", "Under 100 words"],
        threshold=0.8,
        max_iterations=3,
    )
    result = await workflow.run("Explain TCP slow start")
    print(result.final_output, result.accepted, result.iterations)
"""

import inspect
import json
import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Awaitable, Callable

from agentloop.agent import Context
from agentloop.errors import MalformedEvaluationError
from agentloop.utils.config import get_config
from agentloop.utils.logger import Logger

logger = Logger("Evaluator")

OptimizerFn = Callable[[str, "EvaluationFeedback | None"], "str | Awaitable[str]"]
EvaluatorFn = Callable[[str, str], Any]

DEFAULT_EVALUATOR_PROMPT = (
    "You are a strict evaluator. Judge how well a response fulfils a request "
    "and give a score between 0.0 (useless) and 1.0 (perfect)."
)

EVALUATION_FORMAT = (
    "Reply with a single JSON object and nothing else:\n"
    '{"score": <number 0.0-1.0>, "accept": <true|false>, '
    '"feedback": "<what is wrong and how to fix it>", '
    '"improvements": ["<specific change>", ...]}'
)

EVALUATE_PROMPT = """Request:
{input}

Response to evaluate:
{output}"""

REFINE_PROMPT = """Improve your previous response to the request below using the evaluator's feedback.

Request:
{input}

Previous response:
{previous}

Evaluator feedback (score {score:.2f}):
{feedback}

Reply with the improved response only."""

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


class RefinementState(str, Enum):
    GENERATING = "generating"
    EVALUATING = "evaluating"
    ACCEPTED = "accepted"
    EXHAUSTED = "exhausted"


@dataclass
class EvaluationFeedback:
    """
    The evaluator's verdict on one candidate.

    Attributes:
        score: Quality in [0, 1]
        accept: Evaluator says the candidate is good enough
        feedback: Free-form critique for the optimizer
        improvements: Concrete suggested changes
        malformed: The evaluator's reply could not be parsed
    """
    score: float = 0.0
    accept: bool = False
    feedback: str = ""
    improvements: list[str] = field(default_factory=list)
    malformed: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "EvaluationFeedback":
        """
        Build feedback from a parsed evaluator reply.

        Raises:
            MalformedEvaluationError: If there is no numeric score
        """
        score = _coerce_score(data.get("score"))

        accept = data.get("accept", False)
        if isinstance(accept, str):
            accept = accept.strip().lower() in ("true", "yes", "1")

        improvements = data.get("improvements") or []
        if not isinstance(improvements, list):
            improvements = [improvements]

        return cls(
            score=score,
            accept=bool(accept),
            feedback=str(data.get("feedback") or ""),
            improvements=[str(item) for item in improvements],
        )

    @classmethod
    def degraded(cls, reason: str) -> "EvaluationFeedback":
        """Zero-score stand-in for an evaluator reply that could not be used."""
        return cls(
            score=0.0,
            accept=False,
            feedback=(
                f"The previous evaluation could not be read ({reason}). "
                "Re-check the response against the request and improve it."
            ),
            malformed=True,
        )

    def to_prompt_text(self) -> str:
        """Feedback and improvements as one block for the optimizer prompt."""
        lines = [self.feedback] if self.feedback else []
        lines.extend(f"- {item}" for item in self.improvements)
        return "\n".join(lines) or "No specific feedback."

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "accept": self.accept,
            "feedback": self.feedback,
            "improvements": self.improvements,
            "malformed": self.malformed,
        }


def _coerce_score(value: Any) -> float:
    if isinstance(value, bool) or value is None:
        raise MalformedEvaluationError(f"Evaluation has no numeric score: {value!r}")
    try:
        score = float(value)
    except (TypeError, ValueError) as e:
        raise MalformedEvaluationError(f"Evaluation score is not a number: {value!r}") from e
    if score != score:
        raise MalformedEvaluationError("Evaluation score is NaN")
    return min(max(score, 0.0), 1.0)


def parse_evaluation(text: str) -> EvaluationFeedback:
    """
    Parse an evaluator reply, tolerating code fences and chatter around
    the JSON object.

    Raises:
        MalformedEvaluationError: If no JSON object with a score is found
    """
    cleaned = _FENCE.sub("", text.strip())
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start == -1 or end <= start:
        raise MalformedEvaluationError("Evaluator reply contains no JSON object", raw=text)

    try:
        data = json.loads(cleaned[start:end + 1])
    except json.JSONDecodeError as e:
        raise MalformedEvaluationError(f"Evaluator reply is not valid JSON: {e}", raw=text) from e

    if not isinstance(data, dict):
        raise MalformedEvaluationError("Evaluator reply is not a JSON object", raw=text)

    return EvaluationFeedback.from_dict(data)


def coerce_feedback(value: Any) -> EvaluationFeedback:
    """Accept whatever a custom evaluator returned and turn it into feedback."""
    if isinstance(value, EvaluationFeedback):
        return replace(value, score=_coerce_score(value.score))
    if isinstance(value, dict):
        return EvaluationFeedback.from_dict(value)
    if isinstance(value, str):
        return parse_evaluation(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return EvaluationFeedback(score=_coerce_score(value))
    raise MalformedEvaluationError(f"Unsupported evaluator result: {type(value).__name__}")


@dataclass
class RefinementStep:
    """One generate + evaluate pass."""
    iteration: int
    candidate: str
    feedback: EvaluationFeedback

    def to_dict(self) -> dict:
        return {
            "iteration": self.iteration,
            "candidate": self.candidate,
            "feedback": self.feedback.to_dict(),
        }


@dataclass
class RefinementResult:
    """
    Outcome of EvaluatorOptimizer.run.

    Attributes:
        final_output: The accepted candidate, or the best-scoring one
            when the iteration cap was reached
        iterations: Number of generate + evaluate passes run
        accepted: Whether the acceptance condition was met
        history: Every pass, in order
        termination: ACCEPTED or EXHAUSTED
    """
    final_output: str
    iterations: int
    accepted: bool
    history: list[RefinementStep]
    termination: RefinementState

    def to_dict(self) -> dict:
        return {
            "final_output": self.final_output,
            "iterations": self.iterations,
            "accepted": self.accepted,
            "termination": self.termination.value,
            "history": [step.to_dict() for step in self.history],
        }


@dataclass
class _Refinement:
    """Mutable state of a single run; discarded when run() returns."""
    state: RefinementState = RefinementState.GENERATING
    iteration: int = 0
    best: RefinementStep | None = None
    history: list[RefinementStep] = field(default_factory=list)

    def record(self, step: RefinementStep) -> None:
        self.history.append(step)
        # ties go to the later candidate
        if self.best is None or step.feedback.score >= self.best.feedback.score:
            self.best = step

    def finish(self, state: RefinementState, output: str) -> RefinementResult:
        self.state = state
        return RefinementResult(
            final_output=output,
            iterations=self.iteration,
            accepted=state is RefinementState.ACCEPTED,
            history=list(self.history),
            termination=state,
        )


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class EvaluatorOptimizer:
    """
    Iterative refinement of a model's answer against an evaluator.

    Args:
        context: Context used by the optimizer role
        evaluator_context: Context for the evaluator role; by default a
            private Context sharing the optimizer's model client
        max_iterations: Passes allowed (>= 1); defaults to REFINE_MAX_ITERATIONS
        threshold: Score in [0, 1] that counts as accepted; defaults to REFINE_THRESHOLD
        criteria: Evaluation criteria listed in the evaluator's system prompt
        optimizer: Custom `(input, feedback) -> str` replacing the model optimizer
        evaluator: Custom `(input, output) -> feedback` replacing the model
            evaluator; may return EvaluationFeedback, a dict, JSON text or a score
        optimizer_prompt_template: Replaces REFINE_PROMPT (same placeholders)
        evaluator_prompt_template: Replaces the evaluator's base instructions
    """

    def __init__(
        self,
        context: Context | None = None,
        evaluator_context: Context | None = None,
        *,
        max_iterations: int | None = None,
        threshold: float | None = None,
        criteria: list[str] | None = None,
        optimizer: OptimizerFn | None = None,
        evaluator: EvaluatorFn | None = None,
        optimizer_prompt_template: str | None = None,
        evaluator_prompt_template: str | None = None
    ):
        config = get_config().refinement

        if context is None and optimizer is None:
            raise ValueError("Either a context or a custom optimizer is required")
        if context is None and evaluator_context is None and evaluator is None:
            raise ValueError("Either a context or a custom evaluator is required")

        self.context = context
        self._evaluator_context = evaluator_context
        self._owns_evaluator_context = evaluator_context is None
        self.max_iterations = max_iterations if max_iterations is not None else config.max_iterations
        self.threshold = threshold if threshold is not None else config.threshold
        self.criteria = list(criteria or [])
        self.optimizer = optimizer
        self.evaluator = evaluator
        self.optimizer_prompt_template = optimizer_prompt_template or REFINE_PROMPT
        self.evaluator_prompt_template = evaluator_prompt_template or DEFAULT_EVALUATOR_PROMPT

    @property
    def max_iterations(self) -> int:
        return self._max_iterations

    @max_iterations.setter
    def max_iterations(self, value: int) -> None:
        if value < 1:
            raise ValueError("max_iterations must be at least 1")
        self._max_iterations = value

    @property
    def threshold(self) -> float:
        return self._threshold

    @threshold.setter
    def threshold(self, value: float) -> None:
        if not 0.0 <= value <= 1.0:
            raise ValueError("threshold must be between 0.0 and 1.0")
        self._threshold = value

    def evaluator_system_prompt(self) -> str:
        """Evaluator instructions with the criteria folded in."""
        sections = [self.evaluator_prompt_template]
        if self.criteria:
            sections.append("Criteria:\n" + "\n".join(f"- {c}" for c in self.criteria))
        sections.append(f"A response scoring {self.threshold:.2f} or more is acceptable.")
        sections.append(EVALUATION_FORMAT)
        return "\n\n".join(sections)

    # ==========================================================================
    # Roles
    # ==========================================================================

    async def _optimize(self, task: str, run: _Refinement) -> str:
        last = run.history[-1] if run.history else None
        feedback = last.feedback if last else None

        if self.optimizer is not None:
            return str(await _resolve(self.optimizer(task, feedback)))

        if last is None:
            prompt = task
        else:
            prompt = self.optimizer_prompt_template.format(
                input=task,
                previous=last.candidate,
                score=last.feedback.score,
                feedback=last.feedback.to_prompt_text(),
            )

        response = await self.context.chat(prompt)
        return response.text

    def _get_evaluator_context(self) -> Context:
        if self._evaluator_context is None:
            self._evaluator_context = Context(llm=self.context.llm)

        if self._owns_evaluator_context:
            # each evaluation is judged on its own
            self._evaluator_context.clear_history()
            self._evaluator_context.system_prompt = self.evaluator_system_prompt()

        return self._evaluator_context

    async def _evaluate(self, task: str, candidate: str) -> EvaluationFeedback:
        try:
            if self.evaluator is not None:
                return coerce_feedback(await _resolve(self.evaluator(task, candidate)))

            context = self._get_evaluator_context()
            response = await context.chat(EVALUATE_PROMPT.format(input=task, output=candidate))
            return parse_evaluation(response.text)

        except MalformedEvaluationError as e:
            logger.warning("Evaluator output could not be parsed, scoring 0", {"error": str(e)})
            return EvaluationFeedback.degraded(str(e))

    # ==========================================================================
    # Loop
    # ==========================================================================

    async def run(self, task: str) -> RefinementResult:
        """
        Refine an answer to `task` until accepted or out of iterations.

        Model errors (TransportError, ProviderError) abort the run.
        """
        run = _Refinement()
        logger.info(
            f"Starting refinement (max {self.max_iterations} iterations, "
            f"threshold {self.threshold:.2f})"
        )

        while True:
            run.iteration += 1
            run.state = RefinementState.GENERATING
            candidate = await self._optimize(task, run)

            run.state = RefinementState.EVALUATING
            feedback = await self._evaluate(task, candidate)
            run.record(RefinementStep(run.iteration, candidate, feedback))

            logger.info(
                f"Iteration {run.iteration}: score {feedback.score:.2f}"
                f"{' (accepted)' if feedback.accept else ''}"
            )

            if feedback.accept or feedback.score >= self.threshold:
                return run.finish(RefinementState.ACCEPTED, candidate)

            if run.iteration >= self.max_iterations:
                logger.warning(f"Refinement exhausted after {run.iteration} iteration(s)")
                return run.finish(RefinementState.EXHAUSTED, run.best.candidate)
