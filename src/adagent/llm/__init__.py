"""LLM access: provider routing and the query-text generator."""
