"""Text generation utilities using OpenAI chat completions.

Provides:
- get_client: Cached OpenAI client
- generate_text: One single-prompt completion, optionally constrained to a JSON object

Configuration is read from planrag.config.settings.
"""
from typing import Optional

from openai import OpenAI

from planrag.config import settings

_client: OpenAI | None = None


def get_client() -> OpenAI:
    """Return a cached OpenAI Chat Completions client using the configured API key.

    Returns:
        OpenAI: Client instance reused across calls.
    """
    global _client
    if _client is None:
        _client = OpenAI(api_key=settings.OPENAI_API_KEY)
    return _client


def generate_text(prompt: str, json_response: bool = False, max_tokens: Optional[int] = None) -> str:
    """Send a single prompt to the chat model and return the reply text.

    Args:
        prompt: Full prompt, sent as the only user message.
        json_response: Ask the API for a JSON object response.
        max_tokens: Optional cap for output tokens; defaults to settings.MAX_OUTPUT_TOKENS.

    Returns:
        str: The generated text, stripped.
    """
    client = get_client()
    kwargs = {}
    if json_response:
        kwargs["response_format"] = {"type": "json_object"}

    resp = client.chat.completions.create(
        model=settings.OPENAI_MODEL,
        messages=[{"role": "user", "content": prompt}],
        temperature=settings.GENERATION_TEMPERATURE,
        max_tokens=max_tokens or settings.MAX_OUTPUT_TOKENS,
        **kwargs,
    )
    content = resp.choices[0].message.content or ""
    return content.strip()
