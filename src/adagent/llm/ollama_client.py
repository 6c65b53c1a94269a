"""Ollama chat transport for local models.

Transient failures (connection refused, timeouts, 5xx) are retried here with
exponential backoff. The pipeline itself never retries.

Environment variables:
- AA_OLLAMA_BASE_URL: Ollama server (default http://localhost:11434)
- AA_OLLAMA_MAX_RETRIES: Retries after the first attempt (default 2)
"""

import logging
import os
import time

import requests


logger = logging.getLogger(__name__)


def _backoff(attempt: int) -> None:
    # 0.5s, 1s, 2s ...
    time.sleep(0.5 * (2 ** attempt))


def _is_transient(error: requests.exceptions.RequestException) -> bool:
    if isinstance(error, (requests.exceptions.ConnectionError, requests.exceptions.Timeout)):
        return True
    response = getattr(error, "response", None)
    return response is not None and response.status_code >= 500


def ollama_chat(
    messages: list[dict[str, str]],
    *,
    model: str,
    temperature: float = 0.0,
    max_tokens: int | None = None,
    timeout: int = 30,
) -> str:
    """Send a non-streaming chat request and return the reply text.

    Raises:
        ConnectionError: If the server stays unreachable
        ValueError: On any other failure, or a reply without message content
    """
    base_url = os.environ.get("AA_OLLAMA_BASE_URL", "http://localhost:11434").rstrip("/")
    retries = int(os.environ.get("AA_OLLAMA_MAX_RETRIES", "2"))

    options: dict[str, float | int] = {"temperature": temperature}
    if max_tokens is not None:
        options["num_predict"] = max_tokens
    body = {"model": model, "messages": messages, "stream": False, "options": options}

    attempt = 0
    while True:
        try:
            response = requests.post(f"{base_url}/api/chat", json=body, timeout=timeout)
            response.raise_for_status()
            break
        except requests.exceptions.RequestException as e:
            if _is_transient(e) and attempt < retries:
                logger.warning("Ollama call failed (%s), retry %d/%d", type(e).__name__, attempt + 1, retries)
                _backoff(attempt)
                attempt += 1
                continue
            if isinstance(e, requests.exceptions.ConnectionError):
                raise ConnectionError(
                    f"Cannot reach Ollama at {base_url}; is `ollama serve` running?"
                ) from e
            raise ValueError(f"Ollama request failed for model {model}: {e}") from e

    content = (response.json().get("message") or {}).get("content")
    if content is None:
        raise ValueError("Ollama reply has no message content")
    return content
