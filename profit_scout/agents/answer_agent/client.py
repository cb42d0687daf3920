"""ChatOpenAI factory for the Answer Agent."""
import os

from langchain_openai import ChatOpenAI

from profit_scout.utils.config import get_config


def get_llm() -> ChatOpenAI:
    """Return a ChatOpenAI instance configured from config.yaml and environment."""
    cfg = get_config()
    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        raise EnvironmentError(
            "OPENAI_API_KEY is not set. "
            "Add it to your environment or to a .env file in the project root."
        )
    return ChatOpenAI(
        model=cfg.llm.model,
        temperature=cfg.answer.temperature,
        timeout=cfg.llm.request_timeout,
        api_key=api_key,
    )
