"""xAI-backed research collaborator for new-market probability estimates."""

from __future__ import annotations

from typing import Any, Dict, Optional, Protocol

import aiohttp

from ..core.errors import ResearchError

_PROMPT = (
    "Search X (Twitter) for recent posts, news, and discussion about the following "
    "prediction market question. Focus on concrete evidence: official announcements, "
    "credible reporting, expert opinions, and sentiment from informed accounts.\n\n"
    "Based on what you find, estimate the probability (0-100) that this resolves YES. "
    "If you find little or no relevant information, say so and give a low-confidence "
    "estimate near 50.\n\n"
    "Answer in exactly this format:\n"
    "PROBABILITY: <0-100>%\n"
    "REASONING: <one or two sentences summarising the key evidence>\n\n"
    "Question: \"{question}\"{description}"
)


class ResearchCollaborator(Protocol):
    """Anything that can turn a market question into free-text research."""

    async def research(self, question: str, description: Optional[str] = None) -> str:
        ...


def build_prompt(question: str, description: Optional[str] = None) -> str:
    section = ""
    if description:
        section = f"\n\nResolution criteria / description:\n\"{description}\""
    return _PROMPT.format(question=question, description=section)


def extract_output_text(body: Dict[str, Any]) -> str:
    """Concatenate every ``output_text`` block of ``message`` output items."""
    text = ""
    for item in body.get("output") or []:
        if not isinstance(item, dict) or item.get("type") != "message":
            continue
        for block in item.get("content") or []:
            if isinstance(block, dict) and block.get("type") == "output_text":
                text += str(block.get("text") or "")
    return text


class XaiResearchClient:
    """xAI Responses API client with the ``x_search`` tool enabled.

    Returns the model's raw text; parsing the ``PROBABILITY:`` line is the
    decision engine's job.
    """

    DEFAULT_MODEL = "grok-4-1-fast"
    DEFAULT_BASE = "https://api.x.ai"

    def __init__(self, api_key: str, model: str = DEFAULT_MODEL, api_base: str = "", timeout_s: float = 120.0) -> None:
        self.api_key = api_key
        self.model = model
        self.api_base = (api_base or self.DEFAULT_BASE).rstrip("/")
        self.timeout_s = timeout_s

    async def research(self, question: str, description: Optional[str] = None) -> str:
        url = f"{self.api_base}/v1/responses"
        payload = {
            "model": self.model,
            "input": [{"role": "user", "content": build_prompt(question, description)}],
            "tools": [{"type": "x_search"}],
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(url, json=payload, headers=headers, timeout=aiohttp.ClientTimeout(total=self.timeout_s)) as resp:
                    if resp.status >= 400:
                        body_text = await resp.text()
                        raise ResearchError(f"xAI API error {resp.status}: {body_text[:200]}")
                    body = await resp.json(content_type=None)
        except aiohttp.ClientError as e:
            raise ResearchError(f"xAI request failed: {e}") from e

        if not isinstance(body, dict):
            raise ResearchError("xAI returned a non-object body")
        error = body.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else error
            raise ResearchError(f"xAI error: {message}")

        return extract_output_text(body)
