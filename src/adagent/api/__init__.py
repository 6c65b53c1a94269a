"""HTTP API for the chat pipeline."""
