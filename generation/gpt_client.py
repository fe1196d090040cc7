"""
Default `generate` for JobRunner: one chat completion per work unit.

The prompt from prompts.build_prompt goes out under SYSTEM_PROMPT with JSON
mode on; the reply comes back as raw text and question_parser does the rest.
GPT_MODEL, GPT_TEMPERATURE and GPT_MAX_TOKENS come from the environment.
"""

import os
from openai import AsyncOpenAI

from .prompts import SYSTEM_PROMPT

GPT_MODEL = os.getenv("GPT_MODEL", "gpt-4o-mini")
GPT_TEMPERATURE = float(os.getenv("GPT_TEMPERATURE", "0.4"))
GPT_MAX_TOKENS = int(os.getenv("GPT_MAX_TOKENS", "4000"))

_client: AsyncOpenAI | None = None


def _get_client() -> AsyncOpenAI:
    global _client
    if _client is None:
        api_key = os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise RuntimeError("OPENAI_API_KEY is not set; question generation needs it (see .env)")
        _client = AsyncOpenAI(api_key=api_key)
    return _client


async def call_gpt(
    prompt: str,
    system: str = SYSTEM_PROMPT,
    temperature: float = GPT_TEMPERATURE,
    max_tokens: int = GPT_MAX_TOKENS,
) -> str:
    """Ask for one unit's questions as a JSON object; an empty reply comes back as ""."""
    response = await _get_client().chat.completions.create(
        model=GPT_MODEL,
        messages=[
            {"role": "system", "content": system},
            {"role": "user", "content": prompt},
        ],
        temperature=temperature,
        max_tokens=max_tokens,
        response_format={"type": "json_object"},
    )
    return response.choices[0].message.content or ""
