"""Runtime configuration read from environment variables.

Environment variables:
- AA_SUPABASE_URL / SUPABASE_URL: Supabase project URL (record source)
- AA_SUPABASE_KEY / SUPABASE_ANON_KEY: Supabase API key
- AA_DUCKDB_PATH: Local DuckDB file; used instead of Supabase when set
- AA_REPORT_MONTH: Reporting period to fetch (default 2025-10-01)
- AA_LLM_PROVIDER: openai, anthropic or ollama (inferred from model when unset)
- MODEL_NAME: Default model for both LLM roles (default gpt-4o-mini)
- AA_GENERATOR_MODEL / AA_RENDERER_MODEL: Per-role model overrides
- AA_HTTP_TIMEOUT: Timeout in seconds for outbound HTTP calls
- AA_HISTORY_TURNS: History entries forwarded to the LLM prompts
- PORT: HTTP port for `adagent serve`
"""

import os
from dataclasses import dataclass, field


DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_REPORT_MONTH = "2025-10-01"


def _env(*names: str, default: str | None = None) -> str | None:
    """Return the first non-empty environment variable among names."""
    for name in names:
        value = os.environ.get(name)
        if value:
            return value
    return default


def infer_provider(model: str) -> str:
    """Pick a provider from a model name when none is configured."""
    if "claude" in model.lower():
        return "anthropic"
    return "openai"


@dataclass
class Settings:
    """Process-wide settings."""

    supabase_url: str | None = None
    supabase_key: str | None = None
    duckdb_path: str | None = None
    report_month: str = DEFAULT_REPORT_MONTH

    model_name: str = DEFAULT_MODEL
    llm_provider: str = "openai"
    generator_model: str = DEFAULT_MODEL
    renderer_model: str = DEFAULT_MODEL

    http_timeout: int = 30
    history_turns: int = 6
    port: int = 3000


def load_settings() -> Settings:
    """Build Settings from the current environment."""
    model_name = _env("MODEL_NAME", default=DEFAULT_MODEL)
    provider = (_env("AA_LLM_PROVIDER") or infer_provider(model_name)).lower()

    return Settings(
        supabase_url=_env("AA_SUPABASE_URL", "SUPABASE_URL"),
        supabase_key=_env("AA_SUPABASE_KEY", "SUPABASE_ANON_KEY"),
        duckdb_path=_env("AA_DUCKDB_PATH"),
        report_month=_env("AA_REPORT_MONTH", default=DEFAULT_REPORT_MONTH),
        model_name=model_name,
        llm_provider=provider,
        generator_model=_env("AA_GENERATOR_MODEL", default=model_name),
        renderer_model=_env("AA_RENDERER_MODEL", default=model_name),
        http_timeout=int(_env("AA_HTTP_TIMEOUT", default="30")),
        history_turns=int(_env("AA_HISTORY_TURNS", default="6")),
        port=int(_env("PORT", default="3000")),
    )


@dataclass
class PipelineConfig:
    """Per-pipeline knobs."""

    report_month: str = DEFAULT_REPORT_MONTH
    history_turns: int = 6
    renderer_prompt: str | None = None  # Overrides the renderer system prompt
    http_timeout: int = 60  # Seconds, per LLM call
    llm_provider: str | None = None
    llm_model_overrides: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings: Settings) -> "PipelineConfig":
        return cls(
            report_month=settings.report_month,
            history_turns=settings.history_turns,
            http_timeout=settings.http_timeout,
            llm_provider=settings.llm_provider,
            llm_model_overrides={
                "generator": settings.generator_model,
                "renderer": settings.renderer_model,
            },
        )
