"""OpenAI client for the Summarizer Agent."""
import os

from openai import OpenAI

from profit_scout.utils.config import get_config


def get_client() -> OpenAI:
    """Return an initialised OpenAI client."""
    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        raise EnvironmentError(
            "OPENAI_API_KEY is not set. "
            "Add it to your environment or to a .env file in the project root."
        )
    return OpenAI(api_key=api_key, timeout=get_config().llm.request_timeout)
