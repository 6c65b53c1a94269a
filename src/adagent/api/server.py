"""FastAPI backend for the campaign-performance chat.

Wraps the goal → query → validate → aggregate → render pipeline behind two
endpoints:
- POST /chat: answer one question given the caller's conversation history
- GET /health: liveness plus the configured model

The server holds no session state; callers resend history on every request
and echo each result's goal back as part of it.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from adagent.config import PipelineConfig, load_settings
from adagent.contracts import ChatMessage, ChatResult, PipelineState
from adagent.errors import USER_MESSAGES
from adagent.io.record_source import record_source_from_settings
from adagent.orchestrator.runtime import ChatPipeline


logger = logging.getLogger(__name__)


class ChatRequest(BaseModel):
    """Request to answer a question."""

    message: str = Field(..., min_length=1, description="Natural language question")
    history: list[ChatMessage] = Field(default_factory=list, description="Earlier turns, oldest first")
    renderer_prompt: str | None = Field(None, description="Optional system prompt for the answer renderer")


def build_pipeline() -> ChatPipeline:
    """Build a pipeline from environment settings."""
    settings = load_settings()
    return ChatPipeline(
        record_source_from_settings(settings),
        config=PipelineConfig.from_settings(settings),
    )


def create_app(pipeline: ChatPipeline | None = None) -> FastAPI:
    """Create the API application.

    Args:
        pipeline: Pipeline to serve; built from the environment on first use
            when omitted
    """
    app = FastAPI(title="AdAgent API", version="1.0.0")

    # Open CORS; the chat UI is served from other origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.pipeline = pipeline

    def get_pipeline() -> ChatPipeline:
        if app.state.pipeline is None:
            app.state.pipeline = build_pipeline()
        return app.state.pipeline

    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "model": load_settings().model_name}

    @app.post("/chat", response_model=ChatResult)
    def chat(request: ChatRequest) -> ChatResult:
        """Answer a question about campaign performance.

        Runs in FastAPI's threadpool; the pipeline is synchronous.
        """
        question = request.message.strip()
        logger.info("Chat request: %s (history=%d)", question[:100], len(request.history))
        try:
            pipeline = get_pipeline()
        except ValueError:
            logger.exception("Pipeline is not configured")
            return ChatResult(
                success=False,
                answer=USER_MESSAGES["unhandled"],
                state=PipelineState.FAILED,
            )
        return pipeline.run(
            question,
            request.history,
            renderer_prompt=request.renderer_prompt,
        )

    return app


app = create_app()
