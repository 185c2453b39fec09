from langchain_core.language_models import BaseChatModel
from langchain_openai import ChatOpenAI

from .config import get_config


def get_pricing_model() -> BaseChatModel:
    cfg = get_config()
    if cfg.llm_provider != "openai":
        raise ValueError(
            f"unsupported LLM provider {cfg.llm_provider!r}; set LLM_PROVIDER=openai"
        )
    if not cfg.openai_api_key:
        raise ValueError("OPENAI_API_KEY is not configured")
    kwargs = {
        "api_key": cfg.openai_api_key,
        "temperature": cfg.pricing_temperature,
        "model": cfg.pricing_model,
        "timeout": cfg.pricing_timeout_seconds,
        "max_retries": 0,
    }
    if cfg.openai_api_base:
        kwargs["base_url"] = cfg.openai_api_base
    return ChatOpenAI(**kwargs)
