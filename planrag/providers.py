"""Model provider capability interface.

The pipeline only depends on `ModelClient` (embed + generate). `OpenAIModelClient`
adapts the OpenAI helpers in planrag.embedding / planrag.generation to it, so a
different provider can be plugged in without touching ingestion or query code.
"""
import logging
from typing import List, Optional, Protocol

from openai import OpenAIError

from planrag import embedding, generation
from planrag.errors import UpstreamError

logger = logging.getLogger(__name__)


class ModelClient(Protocol):
    def embed_texts(self, texts: List[str]) -> List[List[float]]: ...

    def embed_query(self, text: str) -> List[float]: ...

    def generate(self, prompt: str, json_response: bool = False) -> str: ...


class OpenAIModelClient:
    """ModelClient backed by the OpenAI embeddings and chat completions APIs."""

    def __init__(self, max_tokens: Optional[int] = None):
        self.max_tokens = max_tokens

    def embed_texts(self, texts: List[str]) -> List[List[float]]:
        try:
            return embedding.embed_texts(texts)
        except OpenAIError as e:
            raise UpstreamError("embedding", "batch embedding failed", e) from e

    def embed_query(self, text: str) -> List[float]:
        try:
            return embedding.embed_query(text)
        except OpenAIError as e:
            raise UpstreamError("embedding", "query embedding failed", e) from e

    def generate(self, prompt: str, json_response: bool = False) -> str:
        logger.debug("Generating (json=%s, prompt_chars=%d)", json_response, len(prompt))
        try:
            return generation.generate_text(prompt, json_response=json_response, max_tokens=self.max_tokens)
        except OpenAIError as e:
            raise UpstreamError("generation", "completion failed", e) from e
