"""
Embeddings for analyzed notes.

- The embedded text is "<improved_title> <summary>", nothing else.
- Vectors are kept exactly as the model returns them (no padding/truncation).
- Stored as JSON text on SQLite and as a pgvector literal on Postgres; an
  empty vector is stored as NULL.
"""

from __future__ import annotations

import json
import logging
import math
from typing import Any, List, Optional

from openai import OpenAI, OpenAIError

from .errors import EmbeddingError
from .openai_provider import embedding_model, resolve_client

logger = logging.getLogger(__name__)


def build_analysis_embedding_text(improved_title: str, summary: str) -> str:
    """Text embedded after analysis: the improved title and summary joined by one space."""
    return f"{improved_title} {summary}"


def cosine_similarity(a: List[float], b: List[float]) -> float:
    if not a or not b or len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


def normalize_similarity(sim: float) -> float:
    # [-1, 1] -> [0, 1]
    return max(0.0, min((sim + 1.0) / 2.0, 1.0))


def vector_to_pg_literal(vec: List[float]) -> str:
    return "[" + ",".join(f"{v:.8f}" for v in vec) + "]"


def vector_from_json(value: str) -> List[float]:
    try:
        parsed = json.loads(value)
    except (TypeError, ValueError):
        return []
    if isinstance(parsed, list):
        return [float(x) for x in parsed]
    return []


def encode_vector(vec: Optional[List[float]], dialect: str) -> Optional[str]:
    """Column value for ``vec`` on the given SQL dialect. Empty means absent."""
    if not vec:
        return None
    if dialect == "postgresql":
        return vector_to_pg_literal(vec)
    return json.dumps(vec)


def decode_vector(value: Any) -> Optional[List[float]]:
    """Inverse of encode_vector; also accepts what pgvector drivers hand back."""
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        value = value.decode()
    if isinstance(value, str):
        text = value.strip()
        # JSON text and pgvector's "[0.1,0.2]" output share the bracket form.
        parsed = vector_from_json(text)
        if parsed:
            return parsed
        inner = text.strip("[]")
        if not inner:
            return None
        try:
            return [float(x) for x in inner.split(",")]
        except ValueError:
            return None
    try:
        return [float(x) for x in value] or None
    except TypeError:
        return None


class EmbeddingsService:
    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        client: Optional[OpenAI] = None,
    ):
        self.client = resolve_client(client, api_key)
        self.model = model or embedding_model()

    def embed_text(self, text: str) -> List[float]:
        """
        Embed text as returned by the model, without truncation or padding.

        Blank text is not an error: it yields an empty vector and no call.

        Raises:
            EmbeddingError: if the upstream call fails or returns no vector
        """
        if not text or not text.strip():
            return []
        try:
            resp = self.client.embeddings.create(model=self.model, input=text)
        except OpenAIError as e:
            logger.error("OpenAI API error during embeddings: %s", e)
            raise EmbeddingError(f"embedding request failed: {e}") from e

        if not resp.data:
            raise EmbeddingError("embedding response contained no vectors")
        return list(resp.data[0].embedding)
