"""
Tests for the Evaluator-Optimizer workflow
"""

import pytest

from agentloop.agent import Context
from agentloop.errors import MalformedEvaluationError, TransportError
from agentloop.types import LLMResponse
from agentloop.workflows import (
    EvaluationFeedback,
    EvaluatorOptimizer,
    RefinementState,
    coerce_feedback,
    parse_evaluation,
)
from tests.conftest import StubModelClient


def scripted_optimizer():
    """Optimizer producing 'draft 1', 'draft 2', ... and recording feedback."""
    seen = []

    def optimize(task, feedback):
        seen.append(feedback)
        return f"draft {len(seen)}"

    optimize.seen = seen
    return optimize


def scripted_evaluator(*scores):
    remaining = list(scores)

    async def evaluate(task, output):
        return {"score": remaining.pop(0), "feedback": f"critique of {output}"}

    return evaluate


class TestRefinementLoop:
    """Test the generate -> evaluate -> refine state machine."""

    @pytest.mark.asyncio
    async def test_accepts_on_third_iteration(self):
        workflow = EvaluatorOptimizer(
            optimizer=scripted_optimizer(),
            evaluator=scripted_evaluator(0.5, 0.7, 0.95),
            threshold=0.8,
            max_iterations=3,
        )

        result = await workflow.run("write something")

        assert result.accepted is True
        assert result.termination is RefinementState.ACCEPTED
        assert result.iterations == 3
        assert result.final_output == "draft 3"
        assert [step.candidate for step in result.history] == ["draft 1", "draft 2", "draft 3"]
        assert [step.feedback.score for step in result.history] == [0.5, 0.7, 0.95]

    @pytest.mark.asyncio
    async def test_feedback_flows_to_next_generation(self):
        optimizer = scripted_optimizer()
        workflow = EvaluatorOptimizer(
            optimizer=optimizer,
            evaluator=scripted_evaluator(0.1, 0.9),
        )

        await workflow.run("task")

        assert optimizer.seen[0] is None
        assert optimizer.seen[1].feedback == "critique of draft 1"

    @pytest.mark.asyncio
    async def test_stops_early_when_threshold_met(self):
        workflow = EvaluatorOptimizer(
            optimizer=scripted_optimizer(),
            evaluator=scripted_evaluator(0.85, 0.99),
            max_iterations=5,
        )

        result = await workflow.run("task")

        assert result.iterations == 1
        assert result.accepted is True

    @pytest.mark.asyncio
    async def test_accept_flag_overrides_low_score(self):
        workflow = EvaluatorOptimizer(
            optimizer=scripted_optimizer(),
            evaluator=lambda task, output: EvaluationFeedback(score=0.2, accept=True),
            max_iterations=3,
        )

        result = await workflow.run("task")

        assert result.accepted is True
        assert result.iterations == 1

    @pytest.mark.asyncio
    async def test_exhausted_returns_best_candidate(self):
        workflow = EvaluatorOptimizer(
            optimizer=scripted_optimizer(),
            evaluator=scripted_evaluator(0.3, 0.6, 0.4),
            max_iterations=3,
        )

        result = await workflow.run("task")

        assert result.accepted is False
        assert result.termination is RefinementState.EXHAUSTED
        assert result.iterations == 3
        assert result.final_output == "draft 2"
        assert len(result.history) == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize("score,accepted", [(0.9, True), (0.79, False)])
    async def test_single_iteration(self, score, accepted):
        optimizer = scripted_optimizer()
        workflow = EvaluatorOptimizer(
            optimizer=optimizer,
            evaluator=scripted_evaluator(score),
            max_iterations=1,
        )

        result = await workflow.run("task")

        assert result.iterations == 1
        assert result.accepted is accepted
        assert result.final_output == "draft 1"
        assert len(optimizer.seen) == 1

    @pytest.mark.asyncio
    async def test_malformed_evaluation_never_raises(self):
        replies = iter(["this is not json", {"score": "high"}, '{"score": 0.9}'])
        optimizer = scripted_optimizer()
        workflow = EvaluatorOptimizer(
            optimizer=optimizer,
            evaluator=lambda task, output: next(replies),
            max_iterations=3,
        )

        result = await workflow.run("task")

        first, second, third = result.history
        assert first.feedback.score == 0.0
        assert first.feedback.accept is False
        assert first.feedback.malformed is True
        assert second.feedback.malformed is True
        assert result.accepted is True
        assert result.iterations == 3
        # degraded feedback is handed to the optimizer
        assert "could not be read" in optimizer.seen[1].feedback

    @pytest.mark.asyncio
    async def test_malformed_until_exhausted(self):
        workflow = EvaluatorOptimizer(
            optimizer=scripted_optimizer(),
            evaluator=lambda task, output: "garbage",
            max_iterations=2,
        )

        result = await workflow.run("task")

        assert result.accepted is False
        assert result.iterations == 2
        assert result.final_output == "draft 2"

    def test_invalid_configuration(self):
        kwargs = {"optimizer": scripted_optimizer(), "evaluator": scripted_evaluator()}
        with pytest.raises(ValueError):
            EvaluatorOptimizer(max_iterations=0, **kwargs)
        with pytest.raises(ValueError):
            EvaluatorOptimizer(threshold=1.5, **kwargs)
        with pytest.raises(ValueError):
            EvaluatorOptimizer()

    def test_defaults(self):
        workflow = EvaluatorOptimizer(optimizer=scripted_optimizer(), evaluator=scripted_evaluator())
        assert workflow.max_iterations == 3
        assert workflow.threshold == 0.8


class TestModelDrivenRoles:
    """Test the default optimizer/evaluator running through Contexts."""

    @pytest.mark.asyncio
    async def test_default_roles_share_client(self):
        client = StubModelClient([
            LLMResponse(text="first try"),
            LLMResponse(text='```json\n{"score": 0.4, "accept": false, "feedback": "too short", "improvements": ["add detail"]}\n```'),
            LLMResponse(text="second try"),
            LLMResponse(text='{"score": 0.9, "accept": true, "feedback": "good"}'),
        ])
        context = Context(llm=client, system_prompt="")
        workflow = EvaluatorOptimizer(context, criteria=["Accurate", "Concise"])

        result = await workflow.run("Explain DNS")

        assert result.final_output == "second try"
        assert result.iterations == 2

        optimizer_first, evaluator_first, optimizer_second, evaluator_second = client.requests
        assert optimizer_first[-1].text == "Explain DNS"

        evaluator_system = evaluator_first[0]
        assert evaluator_system.role == "system"
        assert "- Accurate" in evaluator_system.text
        assert "- Concise" in evaluator_system.text
        assert "first try" in evaluator_first[-1].text

        refine_prompt = optimizer_second[-1].text
        assert "first try" in refine_prompt
        assert "too short" in refine_prompt
        assert "- add detail" in refine_prompt
        assert "0.40" in refine_prompt

        # each evaluation starts from a clean history
        assert [m.role for m in evaluator_second] == ["system", "user"]

    @pytest.mark.asyncio
    async def test_separate_evaluator_context(self):
        optimizer_client = StubModelClient([LLMResponse(text="answer")])
        evaluator_client = StubModelClient([LLMResponse(text='{"score": 1.0}')])

        workflow = EvaluatorOptimizer(
            Context(llm=optimizer_client),
            Context(llm=evaluator_client, system_prompt="Grade it."),
        )

        result = await workflow.run("task")

        assert result.accepted is True
        assert len(optimizer_client.requests) == 1
        assert evaluator_client.requests[0][0].text == "Grade it."

    @pytest.mark.asyncio
    async def test_model_garbage_is_recovered(self):
        client = StubModelClient([
            LLMResponse(text="attempt"),
            LLMResponse(text="I think it's pretty good!"),
        ])
        workflow = EvaluatorOptimizer(Context(llm=client), max_iterations=1)

        result = await workflow.run("task")

        assert result.accepted is False
        assert result.history[0].feedback.malformed is True

    @pytest.mark.asyncio
    async def test_transport_error_aborts_run(self):
        client = StubModelClient([TransportError("down")])
        workflow = EvaluatorOptimizer(Context(llm=client))

        with pytest.raises(TransportError):
            await workflow.run("task")


class TestParseEvaluation:
    """Test evaluator reply parsing."""

    def test_plain_json(self):
        feedback = parse_evaluation('{"score": 0.75, "accept": "true", "feedback": "ok"}')
        assert feedback.score == 0.75
        assert feedback.accept is True
        assert feedback.feedback == "ok"

    def test_json_with_chatter(self):
        feedback = parse_evaluation('Here you go: {"score": 0.5} Hope that helps.')
        assert feedback.score == 0.5

    def test_score_is_clamped(self):
        assert parse_evaluation('{"score": 7}').score == 1.0
        assert parse_evaluation('{"score": -2}').score == 0.0

    @pytest.mark.parametrize("text", [
        "no json here",
        '{"feedback": "missing score"}',
        '{"score": true}',
        '{"score": "NaN"}',
        '{"score": 0.5',
        "[0.5]",
    ])
    def test_malformed(self, text):
        with pytest.raises(MalformedEvaluationError):
            parse_evaluation(text)


class TestCoerceFeedback:
    """Test normalization of custom evaluator results."""

    def test_feedback_object_score_is_clamped(self):
        feedback = coerce_feedback(EvaluationFeedback(score=5.0, feedback="great"))
        assert feedback.score == 1.0
        assert feedback.feedback == "great"

    def test_feedback_object_with_nan_is_malformed(self):
        with pytest.raises(MalformedEvaluationError):
            coerce_feedback(EvaluationFeedback(score=float("nan")))

    @pytest.mark.asyncio
    async def test_out_of_range_feedback_does_not_skew_run(self):
        scores = iter([float("nan"), -3.0, 0.9])
        workflow = EvaluatorOptimizer(
            optimizer=scripted_optimizer(),
            evaluator=lambda task, output: EvaluationFeedback(score=next(scores)),
            max_iterations=3,
        )

        result = await workflow.run("task")

        assert [step.feedback.score for step in result.history] == [0.0, 0.0, 0.9]
        assert result.history[0].feedback.malformed is True
        assert result.accepted is True
