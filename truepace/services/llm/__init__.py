"""LLM model access."""
