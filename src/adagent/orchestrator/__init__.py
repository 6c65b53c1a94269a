"""Request orchestration for the chat pipeline."""

from adagent.orchestrator.runtime import ChatPipeline, PipelineRun

__all__ = ["ChatPipeline", "PipelineRun"]
