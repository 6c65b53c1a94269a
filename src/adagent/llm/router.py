"""LLM router for dispatching calls to the configured provider.

Two roles use the LLM:
- generator: turns a question into GOAL/SQL text
- renderer: turns aggregated data into the final answer

Supported providers:
- openai: GPT models via OpenAI API (default)
- anthropic: Claude models via Anthropic API (chosen automatically for "claude" models)
- ollama: Local models via Ollama

Environment variables:
- AA_LLM_PROVIDER: Provider to use (openai, anthropic, ollama)
- MODEL_NAME: Model for both roles (default gpt-4o-mini)
- AA_GENERATOR_MODEL / AA_RENDERER_MODEL: Per-role overrides
- AA_OPENAI_API_KEY / OPENAI_API_KEY
- AA_ANTHROPIC_API_KEY / ANTHROPIC_API_KEY
"""

import importlib.util
import logging
import os
from typing import Any

from adagent.config import DEFAULT_MODEL, infer_provider
from adagent.llm.ollama_client import ollama_chat


logger = logging.getLogger(__name__)

ROLES = ("generator", "renderer")

# Generator output must be deterministic; the renderer gets a little room
ROLE_TEMPERATURES = {
    "generator": 0.0,
    "renderer": 0.7,
}

ROLE_MAX_TOKENS = {
    "generator": 400,
    "renderer": 500,
}


API_KEY_ENV = {
    "openai": ("AA_OPENAI_API_KEY", "OPENAI_API_KEY"),
    "anthropic": ("AA_ANTHROPIC_API_KEY", "ANTHROPIC_API_KEY"),
}


def _api_key(provider: str) -> str:
    """Return the API key for a hosted provider or raise ValueError."""
    names = API_KEY_ENV[provider]
    for name in names:
        if os.environ.get(name):
            return os.environ[name]
    raise ValueError(f"No API key for {provider}. Set {' or '.join(names)}.")


def _split_system(messages: list[dict[str, str]]) -> tuple[str | None, list[dict[str, str]]]:
    """Separate the system prompt from conversation turns (Anthropic's shape)."""
    system = None
    turns = []
    for message in messages:
        if message["role"] == "system":
            system = message["content"]
        else:
            turns.append(message)
    return system, turns


def _call_anthropic(
    messages: list[dict[str, str]],
    model: str,
    temperature: float,
    max_tokens: int,
    timeout: int,
) -> str:
    import anthropic

    client = anthropic.Anthropic(api_key=_api_key("anthropic"), timeout=timeout)
    system, turns = _split_system(messages)
    response = client.messages.create(
        model=model,
        system=system or "You are a marketing analytics assistant.",
        messages=turns,
        max_tokens=max_tokens,
        temperature=temperature,
    )
    return "".join(block.text for block in response.content if getattr(block, "type", "text") == "text")


def _call_openai(
    messages: list[dict[str, str]],
    model: str,
    temperature: float,
    max_tokens: int,
    timeout: int,
) -> str:
    import openai

    client = openai.OpenAI(api_key=_api_key("openai"), timeout=timeout)
    completion = client.chat.completions.create(
        model=model,
        messages=messages,
        max_tokens=max_tokens,
        temperature=temperature,
    )
    return completion.choices[0].message.content or ""


PROVIDER_CALLS = {
    "anthropic": _call_anthropic,
    "openai": _call_openai,
}


def resolve_model(role: str, model: str | None = None) -> str:
    """Pick the model for a role: explicit > per-role env > MODEL_NAME."""
    if model:
        return model
    env_name = "AA_GENERATOR_MODEL" if role == "generator" else "AA_RENDERER_MODEL"
    return os.environ.get(env_name) or os.environ.get("MODEL_NAME") or DEFAULT_MODEL


def resolve_provider(model: str, provider: str | None = None) -> str:
    """Pick the provider: explicit > AA_LLM_PROVIDER > inferred from model."""
    return (provider or os.environ.get("AA_LLM_PROVIDER") or infer_provider(model)).lower()


def call_llm(
    messages: list[dict[str, str]],
    *,
    role: str = "generator",
    max_tokens: int | None = None,
    timeout: int = 60,
    provider: str | None = None,
    model: str | None = None,
    temperature_override: float | None = None,
) -> str:
    """Route an LLM call to the configured provider.

    Args:
        messages: List of message dicts with 'role' and 'content'
        role: 'generator' or 'renderer'
        max_tokens: Maximum tokens in response (role default when None)
        timeout: Request timeout in seconds
        provider: Optional provider override
        model: Optional model override
        temperature_override: Optional temperature override

    Returns:
        Response text content

    Raises:
        ValueError: If role or provider is invalid, or the call fails
    """
    if role not in ROLES:
        raise ValueError(f"Invalid role: {role}. Must be one of: {', '.join(ROLES)}")

    role_model = resolve_model(role, model)
    resolved_provider = resolve_provider(role_model, provider)
    temperature = ROLE_TEMPERATURES[role] if temperature_override is None else temperature_override
    tokens = max_tokens or ROLE_MAX_TOKENS[role]

    logger.debug("LLM call role=%s provider=%s model=%s", role, resolved_provider, role_model)

    if resolved_provider == "ollama":
        return ollama_chat(
            messages,
            model=role_model,
            temperature=temperature,
            max_tokens=tokens,
            timeout=timeout,
        )

    call = PROVIDER_CALLS.get(resolved_provider)
    if call is None:
        raise ValueError(
            f"Unsupported LLM provider: {resolved_provider}. "
            f"Use one of: ollama, {', '.join(PROVIDER_CALLS)}"
        )
    return call(messages, role_model, temperature, tokens, timeout)


def get_available_providers() -> list[str]:
    """Providers whose package is installed and whose API key is set (ollama always)."""
    available = ["ollama"]
    for provider, names in API_KEY_ENV.items():
        installed = importlib.util.find_spec(provider) is not None
        if installed and any(os.environ.get(name) for name in names):
            available.append(provider)
    return available


def get_current_config() -> dict[str, Any]:
    """Current LLM configuration, for the health endpoint and CLI."""
    generator_model = resolve_model("generator")
    return {
        "provider": resolve_provider(generator_model),
        "generator_model": generator_model,
        "renderer_model": resolve_model("renderer"),
        "available_providers": get_available_providers(),
    }
