"""Orchestrator runtime for the campaign-performance chat pipeline.

One request runs these steps in order:
goal resolution → query generation → validation → in-memory aggregation → rendering

Key features:
- Deterministic flow with explicit states (see PipelineState)
- Goal resolved exactly once per request
- No retries: every failure is terminal for the request
- Failures converted to caller-safe messages at this boundary
- Renderer failures recovered with the deterministic fallback answer
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from adagent.config import PipelineConfig
from adagent.contracts import (
    DEFAULT_GOAL,
    TERMINAL_STATES,
    ChatMessage,
    ChatResult,
    Goal,
    PipelineState,
    Shape,
    VisualizationDescriptor,
)
from adagent.errors import AdAgentError, RenderError, ValidationError, user_message_for
from adagent.execution.aggregate import Aggregate, aggregate_for_shape, apply_filters
from adagent.explain.narrator import format_fallback_answer, render_answer
from adagent.io.record_source import RecordSource
from adagent.llm.query_generator import GeneratedQuery, generate_query
from adagent.planning.goal import find_previous_goal, resolve_goal
from adagent.planning.metrics import select_metrics
from adagent.planning.strategy import is_strategy_question
from adagent.sql.introspect import build_query_intent


logger = logging.getLogger(__name__)


@dataclass
class PipelineRun:
    """Trace of one request: every state entered, in order."""

    trace_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    states: list[PipelineState] = field(default_factory=list)
    result: ChatResult | None = None

    @property
    def state(self) -> PipelineState | None:
        return self.states[-1] if self.states else None

    def advance(self, state: PipelineState, **details: Any) -> None:
        if self.state in TERMINAL_STATES:
            raise RuntimeError(f"Run {self.trace_id} already finished in {self.state.value}")
        self.states.append(state)
        if details:
            logger.info("[%s] -> %s %s", self.trace_id[:8], state.value, details)
        else:
            logger.info("[%s] -> %s", self.trace_id[:8], state.value)


def _history_entry(entry: Any) -> dict[str, Any]:
    """Normalize a history entry (dict or ChatMessage) to a plain dict."""
    if isinstance(entry, ChatMessage):
        return entry.model_dump()
    if isinstance(entry, dict):
        return {
            "role": entry.get("role", "user"),
            "content": str(entry.get("content") or ""),
            "goal": entry.get("goal"),
        }
    return {"role": "user", "content": str(entry), "goal": None}


def format_context(history: list[dict[str, Any]]) -> str:
    """Render recent turns as 'User: ...' / 'Assistant: ...' lines."""
    lines = []
    for entry in history:
        content = entry["content"].strip()
        if not content or entry["role"] not in ("user", "assistant"):
            continue
        lines.append(f"{entry['role'].capitalize()}: {content}")
    return "\n".join(lines)


class ChatPipeline:
    """Answer one question about campaign performance per call.

    The pipeline holds configuration and collaborators only; history is
    supplied by the caller on every request, so one instance can serve
    concurrent requests.

    Usage:
        pipeline = ChatPipeline(DuckDBRecordSource("data/ads.duckdb"))
        result = pipeline.run("Which platform has the best ROAS?")
    """

    def __init__(
        self,
        record_source: RecordSource,
        config: PipelineConfig | None = None,
        generator: Callable[..., GeneratedQuery] | None = None,
        renderer: Callable[..., str] | None = None,
    ):
        """Initialize the pipeline.

        Args:
            record_source: Where period records are fetched from
            config: Optional configuration
            generator: Query generator (defaults to generate_query)
            renderer: Answer renderer (defaults to render_answer)
        """
        self.record_source = record_source
        self.config = config or PipelineConfig()
        self.generator = generator or generate_query
        self.renderer = renderer or render_answer

    def run(
        self,
        question: str,
        history: Iterable[Any] | None = None,
        *,
        renderer_prompt: str | None = None,
    ) -> ChatResult:
        """Run the pipeline and return the caller-facing result."""
        return self.run_traced(question, history, renderer_prompt=renderer_prompt).result

    def run_traced(
        self,
        question: str,
        history: Iterable[Any] | None = None,
        *,
        renderer_prompt: str | None = None,
    ) -> PipelineRun:
        """Run the pipeline and return the result with its state trace.

        Args:
            question: Current user question
            history: Earlier turns (dicts or ChatMessage), oldest first
            renderer_prompt: Optional renderer system prompt for this request

        Returns:
            PipelineRun whose result is always set and never carries raw
            exception text
        """
        run = PipelineRun()
        run.advance(PipelineState.RECEIVED)

        goal = DEFAULT_GOAL
        is_strategy = False
        sql: str | None = None

        try:
            entries = [_history_entry(e) for e in history or []]
            recent = entries[-self.config.history_turns:] if self.config.history_turns > 0 else []

            previous_goal = find_previous_goal(entries)
            goal = resolve_goal(question, previous_goal)
            is_strategy = is_strategy_question(question)
            run.advance(
                PipelineState.GOAL_RESOLVED,
                goal=goal.value,
                previous_goal=previous_goal.value if previous_goal else None,
                strategy=is_strategy,
            )

            generated = self.generator(
                question,
                report_month=self.config.report_month,
                previous_goal=previous_goal,
                history=recent,
                provider=self.config.llm_provider,
                model=self.config.llm_model_overrides.get("generator"),
                timeout=self.config.http_timeout,
            )
            run.advance(PipelineState.QUERY_GENERATED, is_query=generated.is_query)

            if not generated.is_query:
                run.result = ChatResult(
                    success=True,
                    sql=None,
                    answer=generated.raw.strip(),
                    goal=goal,
                    is_strategy=is_strategy,
                    state=PipelineState.NON_QUERY,
                )
                run.advance(PipelineState.NON_QUERY)
                return run

            if generated.declared_goal != goal:
                logger.info(
                    "Generator declared %s, keeping resolved goal %s",
                    generated.declared_goal.value,
                    goal.value,
                )

            intent = build_query_intent(generated.sql)
            if not intent.is_safe:
                raise ValidationError(intent.reason or "Invalid query", details={"sql": generated.sql})
            sql, filters, shape = intent.sql, intent.filters, intent.shape
            run.advance(
                PipelineState.VALIDATED,
                filters=filters,
                shape=shape.kind.value,
                dimension=shape.dimension,
            )

            records = self.record_source.fetch_period(self.config.report_month)
            matched = apply_filters(records, filters)
            data = aggregate_for_shape(matched, shape)
            run.advance(PipelineState.EXECUTED, fetched=len(records), matched=len(matched))

            metrics = select_metrics(sql, question, goal)
            answer = self._render(
                question,
                sql=sql,
                data=data,
                goal=goal,
                is_strategy=is_strategy,
                metrics=metrics,
                shape=shape,
                context=format_context(recent),
                system_prompt=renderer_prompt or self.config.renderer_prompt,
            )

            run.result = ChatResult(
                success=True,
                sql=sql,
                answer=answer,
                visualization=self._visualization(data, shape, metrics, goal),
                goal=goal,
                is_strategy=is_strategy,
                state=PipelineState.COMPLETE,
            )
            run.advance(PipelineState.COMPLETE)
            return run

        except AdAgentError as e:
            logger.warning("Request %s failed (%s): %s", run.trace_id[:8], e.kind, e.message)
            return self._fail(run, e, sql=sql, goal=goal, is_strategy=is_strategy)
        except Exception as e:
            logger.exception("Unhandled error in request %s", run.trace_id[:8])
            return self._fail(run, e, sql=sql, goal=goal, is_strategy=is_strategy)

    def _render(
        self,
        question: str,
        *,
        sql: str,
        data: Aggregate | dict[str, Aggregate],
        goal: Goal,
        is_strategy: bool,
        metrics: list[str],
        shape: Shape,
        context: str,
        system_prompt: str | None,
    ) -> str:
        """Render the answer, falling back to the deterministic summary."""
        try:
            return self.renderer(
                question,
                sql=sql,
                data=data,
                goal=goal,
                is_strategy=is_strategy,
                metrics=metrics,
                dimension=shape.dimension,
                context=context,
                system_prompt=system_prompt,
                provider=self.config.llm_provider,
                model=self.config.llm_model_overrides.get("renderer"),
                timeout=self.config.http_timeout,
            )
        except RenderError as e:
            logger.warning("Renderer failed, using fallback answer: %s", e.message)
            return format_fallback_answer(
                data,
                goal=goal,
                is_strategy=is_strategy,
                dimension=shape.dimension,
            )

    @staticmethod
    def _visualization(
        data: Aggregate | dict[str, Aggregate],
        shape: Shape,
        metrics: list[str],
        goal: Goal,
    ) -> VisualizationDescriptor | None:
        if not isinstance(data, dict) or not shape.dimension:
            return None
        return VisualizationDescriptor(
            dimension=shape.dimension,
            metrics=metrics,
            goal=goal,
            data={name: agg.to_dict() for name, agg in data.items()},
        )

    @staticmethod
    def _fail(
        run: PipelineRun,
        error: BaseException,
        *,
        sql: str | None,
        goal: Goal,
        is_strategy: bool,
    ) -> PipelineRun:
        run.advance(PipelineState.FAILED)
        run.result = ChatResult(
            success=False,
            sql=sql,
            answer=user_message_for(error),
            goal=goal,
            is_strategy=is_strategy,
            state=PipelineState.FAILED,
        )
        return run
