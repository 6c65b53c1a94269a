"""End-to-end tests for the chat pipeline state machine.

The pipeline runs against the DuckDB fixture; both LLM roles are scripted by
patching call_llm where the generator and narrator look it up.
"""

from contextlib import contextmanager
from unittest.mock import patch

import pytest

from adagent.contracts import ChatMessage, Goal, PipelineState
from adagent.errors import USER_MESSAGES, ExecutionError
from adagent.io.record_source import RecordSource
from adagent.sql.introspect import build_query_intent

from conftest import scripted_llm


BEST_ROAS_SQL = (
    "GOAL: CONVERSION\n"
    "SQL: SELECT platform, SUM(revenue) / SUM(spend) AS roas FROM video_ad_performance "
    "WHERE report_month = '2025-10-01' GROUP BY platform ORDER BY roas DESC"
)


@contextmanager
def llm_script(**responses):
    llm = scripted_llm(**responses)
    with patch("adagent.llm.query_generator.call_llm", llm), \
            patch("adagent.explain.narrator.call_llm", llm):
        yield llm


class FailingSource(RecordSource):
    name = "failing"

    def fetch_rows(self, report_month):
        raise ExecutionError("connection reset by peer", details={"source": self.name})


# ---------------------------------------------------------------------------
# Happy paths
# ---------------------------------------------------------------------------

class TestComparison:
    def test_best_roas_by_platform(self, pipeline):
        with llm_script(generator=BEST_ROAS_SQL, renderer="YouTube leads at **7x**.") as llm:
            run = pipeline.run_traced("Which platform has the best ROAS?")

        result = run.result
        assert result.success
        assert result.state == PipelineState.COMPLETE
        assert result.goal == Goal.CONVERSION
        assert result.answer == "YouTube leads at **7x**."
        assert result.sql.endswith("ORDER BY roas DESC")
        assert not result.is_strategy

        viz = result.visualization
        assert viz.type == "comparison"
        assert viz.dimension == "platform"
        assert viz.metrics == ["financial"]
        assert set(viz.data) == {"YouTube", "TikTok", "Meta"}
        assert viz.data["YouTube"]["roas"] == 7

        assert run.states == [
            PipelineState.RECEIVED,
            PipelineState.GOAL_RESOLVED,
            PipelineState.QUERY_GENERATED,
            PipelineState.VALIDATED,
            PipelineState.EXECUTED,
            PipelineState.COMPLETE,
        ]
        assert [role for role, _ in llm.calls] == ["generator", "renderer"]

    def test_filters_are_applied_in_memory(self, pipeline):
        sql = (
            "GOAL: CONVERSION\nSQL: SELECT SUM(spend) FROM video_ad_performance "
            "WHERE report_month = '2025-10-01' AND platform = 'YouTube'"
        )
        with llm_script(generator=sql, renderer="render failed") as llm:
            with patch("adagent.explain.narrator.call_llm", side_effect=ValueError("down")):
                result = pipeline.run("Total spend on YouTube")

        assert result.success
        assert result.visualization is None
        assert "spend $1,500.00" in result.answer
        assert llm.calls[0][0] == "generator"

    def test_or_predicates_are_not_applied_as_filters(self, pipeline):
        sql = (
            "GOAL: CONVERSION\nSQL: SELECT SUM(spend) FROM video_ad_performance "
            "WHERE report_month = '2025-10-01' AND (platform = 'YouTube' OR region = 'West')"
        )
        with llm_script(generator=sql, renderer=ValueError("down")):
            result = pipeline.run("Spend on YouTube or in the West")

        assert result.success
        assert "spend $3,000.00" in result.answer

    def test_validation_goes_through_query_intent(self, pipeline):
        sql = (
            "GOAL: CONVERSION\nSQL: SELECT platform, SUM(spend) FROM video_ad_performance "
            "WHERE region = 'West' GROUP BY platform;"
        )
        with llm_script(generator=sql), \
                patch("adagent.orchestrator.runtime.build_query_intent",
                      wraps=build_query_intent) as mock_intent:
            result = pipeline.run("Spend by platform in the West")

        mock_intent.assert_called_once()
        assert result.sql.endswith("GROUP BY platform")
        assert set(result.visualization.data) == {"YouTube", "TikTok"}

    def test_llm_calls_use_configured_timeout(self, pipeline):
        pipeline.config.http_timeout = 12
        with llm_script(generator=BEST_ROAS_SQL) as llm:
            pipeline.run("ROAS by platform")

        assert [kwargs["timeout"] for kwargs in llm.kwargs] == [12, 12]

    def test_single_shape_has_no_visualization(self, pipeline):
        sql = "GOAL: CONVERSION\nSQL: SELECT SUM(revenue) FROM video_ad_performance"
        with llm_script(generator=sql, renderer="Revenue was $14,800."):
            result = pipeline.run("Total revenue?")
        assert result.visualization is None
        assert result.answer == "Revenue was $14,800."


class TestGoalCarryForward:
    def test_followup_keeps_awareness(self, pipeline):
        history = [
            {"role": "user", "content": "Which platform has the most impressions?"},
            {"role": "assistant", "content": "TikTok.", "goal": "AWARENESS"},
        ]
        sql = (
            "GOAL: CONVERSION\nSQL: SELECT platform, SUM(spend) FROM video_ad_performance "
            "GROUP BY platform"
        )
        with llm_script(generator=sql) as llm:
            result = pipeline.run("How much for the best one?", history)

        assert result.goal == Goal.AWARENESS
        assert result.visualization.metrics == ["impressions", "cpm"]

        generator_messages = llm.calls[0][1]
        assert generator_messages[-1]["content"].endswith("Previous query goal: AWARENESS")
        assert [m["role"] for m in generator_messages[1:3]] == ["user", "assistant"]

    def test_chat_message_history(self, pipeline):
        history = [ChatMessage(role="assistant", content="Done.", goal="ENGAGEMENT")]
        sql = "GOAL: ENGAGEMENT\nSQL: SELECT SUM(clicks) FROM video_ad_performance"
        with llm_script(generator=sql):
            result = pipeline.run("What about TikTok?", history)
        assert result.goal == Goal.ENGAGEMENT

    def test_history_is_trimmed_for_generator(self, pipeline):
        pipeline.config.history_turns = 2
        history = [{"role": "user", "content": f"turn {i}"} for i in range(6)]
        sql = "GOAL: CONVERSION\nSQL: SELECT SUM(spend) FROM video_ad_performance"
        with llm_script(generator=sql) as llm:
            pipeline.run("Total spend?", history)

        generator_messages = llm.calls[0][1]
        assert [m["content"] for m in generator_messages[1:-1]] == ["turn 4", "turn 5"]


class TestStrategy:
    def test_strategy_flag_and_fallback_recommendations(self, pipeline):
        with llm_script(generator=BEST_ROAS_SQL, renderer=ValueError("timeout")):
            result = pipeline.run("Where should I shift budget across platforms?")

        assert result.success
        assert result.is_strategy
        assert "Shift 20% of Meta budget to YouTube" in result.answer

    def test_request_renderer_prompt_overrides_config(self, pipeline):
        pipeline.config.renderer_prompt = "Config prompt"
        with llm_script(generator=BEST_ROAS_SQL) as llm:
            pipeline.run("ROAS by platform", renderer_prompt="Request prompt")

        renderer_messages = llm.calls[1][1]
        assert renderer_messages[0]["content"] == "Request prompt"


# ---------------------------------------------------------------------------
# Early exits and failures
# ---------------------------------------------------------------------------

class TestNonQuery:
    def test_conversational_reply(self, pipeline):
        with llm_script(generator="Hi! Ask me about your campaign performance.") as llm:
            run = pipeline.run_traced("hello")

        result = run.result
        assert result.success
        assert result.sql is None
        assert result.visualization is None
        assert result.state == PipelineState.NON_QUERY
        assert result.answer == "Hi! Ask me about your campaign performance."
        assert run.states[-1] == PipelineState.NON_QUERY
        assert [role for role, _ in llm.calls] == ["generator"]


class TestFailures:
    def test_unsafe_sql(self, pipeline):
        generator = "GOAL: CONVERSION\nSQL: SELECT * FROM video_ad_performance; DROP TABLE video_ad_performance"
        with llm_script(generator=generator) as llm:
            run = pipeline.run_traced("Delete everything")

        result = run.result
        assert not result.success
        assert result.state == PipelineState.FAILED
        assert result.answer == USER_MESSAGES["validation"]
        assert result.sql is None
        assert PipelineState.VALIDATED not in run.states
        assert [role for role, _ in llm.calls] == ["generator"]

    def test_wrong_table(self, pipeline):
        with llm_script(generator="GOAL: CONVERSION\nSQL: SELECT * FROM users"):
            result = pipeline.run("Show users")
        assert result.answer == USER_MESSAGES["validation"]

    def test_execution_error_message(self):
        from adagent.orchestrator.runtime import ChatPipeline

        with llm_script(generator=BEST_ROAS_SQL):
            result = ChatPipeline(FailingSource()).run("ROAS by platform")

        assert not result.success
        assert result.answer == USER_MESSAGES["execution"]
        assert "connection reset" not in result.answer
        assert result.sql is not None

    def test_generator_transport_error_is_generic(self, pipeline):
        with llm_script(generator=ConnectionError("Cannot connect to Ollama")):
            result = pipeline.run("Which platform has the best ROAS?")

        assert not result.success
        assert result.answer == USER_MESSAGES["unhandled"]
        assert result.goal == Goal.CONVERSION

    def test_goal_is_returned_on_failure(self, pipeline):
        with llm_script(generator="GOAL: AWARENESS\nSQL: SELECT * FROM users"):
            result = pipeline.run("Impressions by region")
        assert result.goal == Goal.AWARENESS


@pytest.mark.parametrize(
    "question,generator,expected",
    [
        ("Which platform has the best ROAS?", BEST_ROAS_SQL, PipelineState.COMPLETE),
        ("hello", "Hello there!", PipelineState.NON_QUERY),
        (
            "drop it",
            "GOAL: CONVERSION\nSQL: SELECT 1 FROM video_ad_performance; DROP TABLE video_ad_performance",
            PipelineState.FAILED,
        ),
    ],
)
def test_every_run_ends_in_one_terminal_state(pipeline, question, generator, expected):
    with llm_script(generator=generator):
        run = pipeline.run_traced(question)

    terminal = [s for s in run.states if s in (
        PipelineState.COMPLETE, PipelineState.NON_QUERY, PipelineState.FAILED
    )]
    assert terminal == [expected]
    assert run.states.count(PipelineState.GOAL_RESOLVED) == 1
