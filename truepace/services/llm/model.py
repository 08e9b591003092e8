"""OpenAI model handle for the change summary agent."""

import os

from pydantic_ai.models.openai import OpenAIModel

from truepace.config.settings import settings


def get_model(model_name: str | None = None) -> OpenAIModel:
    """Model used by the post-commit summary; defaults to SUMMARY_MODEL."""
    # pydantic_ai reads the key from the environment
    if settings.openai_api_key and not os.getenv("OPENAI_API_KEY"):
        os.environ["OPENAI_API_KEY"] = settings.openai_api_key
    return OpenAIModel(model_name or settings.summary_model)
