"""Tests for generator prompt construction and lenient response parsing."""

from unittest.mock import patch

from adagent.contracts import Goal
from adagent.llm.query_generator import (
    build_messages,
    build_system_prompt,
    generate_query,
    parse_generator_response,
)


class TestParseGeneratorResponse:
    def test_goal_and_sql_markers(self):
        parsed = parse_generator_response(
            "GOAL: AWARENESS\nSQL: SELECT SUM(impressions) FROM video_ad_performance"
        )
        assert parsed.declared_goal == Goal.AWARENESS
        assert parsed.sql == "SELECT SUM(impressions) FROM video_ad_performance"
        assert parsed.is_query

    def test_markdown_fences_stripped(self):
        parsed = parse_generator_response(
            "GOAL: ENGAGEMENT\nSQL:\n```sql\nSELECT SUM(clicks) FROM video_ad_performance\n```"
        )
        assert parsed.declared_goal == Goal.ENGAGEMENT
        assert parsed.sql == "SELECT SUM(clicks) FROM video_ad_performance"

    def test_missing_markers_uses_whole_text(self):
        parsed = parse_generator_response("select * from video_ad_performance")
        assert parsed.declared_goal == Goal.CONVERSION
        assert parsed.sql == "select * from video_ad_performance"
        assert parsed.is_query

    def test_unknown_goal_defaults_to_conversion(self):
        parsed = parse_generator_response("GOAL: SALES\nSQL: SELECT 1 FROM video_ad_performance")
        assert parsed.declared_goal == Goal.CONVERSION

    def test_conversational_text_is_not_a_query(self):
        parsed = parse_generator_response("Hi! Ask me anything about your campaigns.")
        assert not parsed.is_query
        assert parsed.raw == "Hi! Ask me anything about your campaigns."

    def test_goal_after_sql(self):
        parsed = parse_generator_response(
            "SQL: SELECT SUM(spend) FROM video_ad_performance\nGOAL: CONVERSION"
        )
        assert parsed.sql == "SELECT SUM(spend) FROM video_ad_performance"
        assert parsed.declared_goal == Goal.CONVERSION

    def test_empty_response(self):
        parsed = parse_generator_response("")
        assert not parsed.is_query
        assert parsed.sql == ""


class TestBuildMessages:
    def test_system_prompt_names_table_and_period(self):
        prompt = build_system_prompt("2025-10-01")
        assert "video_ad_performance" in prompt
        assert "report_month = '2025-10-01'" in prompt
        assert "GOAL: <AWARENESS|ENGAGEMENT|CONVERSION>" in prompt

    def test_previous_goal_line(self):
        messages = build_messages(
            "How much for the best one?",
            report_month="2025-10-01",
            previous_goal=Goal.AWARENESS,
        )
        assert messages[0]["role"] == "system"
        assert messages[-1]["content"].endswith("Previous query goal: AWARENESS")

    def test_history_forwarded_and_filtered(self):
        history = [
            {"role": "user", "content": "Impressions by platform"},
            {"role": "assistant", "content": "YouTube leads."},
            {"role": "system", "content": "ignored"},
            {"role": "user", "content": "   "},
        ]
        messages = build_messages("What about TikTok?", report_month="2025-10-01", history=history)
        assert [m["role"] for m in messages] == ["system", "user", "assistant", "user"]
        assert messages[-1]["content"] == "What about TikTok?"


class TestGenerateQuery:
    def test_calls_generator_role(self):
        with patch("adagent.llm.query_generator.call_llm") as mock_llm:
            mock_llm.return_value = "GOAL: CONVERSION\nSQL: SELECT 1 FROM video_ad_performance"
            result = generate_query("ROAS?", report_month="2025-10-01", model="gpt-4o-mini")

        assert result.is_query
        _, kwargs = mock_llm.call_args
        assert kwargs["role"] == "generator"
        assert kwargs["model"] == "gpt-4o-mini"

    def test_injected_llm(self):
        result = generate_query(
            "hello",
            report_month="2025-10-01",
            llm=lambda messages, **kwargs: "Hello! How can I help?",
        )
        assert not result.is_query
