"""
OpenAI client and model selection shared by analysis, embeddings and chat.

Services accept an injected client (tests pass a MagicMock) or an explicit
API key; otherwise they share one lazily built client keyed on Config.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from openai import OpenAI

from ..config import Config


@lru_cache(maxsize=1)
def get_openai_client() -> OpenAI:
    if not Config.OPENAI_API_KEY:
        raise ValueError("OPENAI_API_KEY is required for analysis, embeddings and chat")
    return OpenAI(api_key=Config.OPENAI_API_KEY)


def resolve_client(client: Optional[OpenAI] = None, api_key: Optional[str] = None) -> OpenAI:
    """Injected client first, then a dedicated client for ``api_key``, then the shared one."""
    if client is not None:
        return client
    if api_key:
        return OpenAI(api_key=api_key)
    return get_openai_client()


def chat_model() -> str:
    return Config.OPENAI_MODEL


def embedding_model() -> str:
    return Config.OPENAI_EMBEDDING_MODEL
