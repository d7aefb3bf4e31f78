"""Language-model judge backend.

The judge is a plain text-completion endpoint (Ollama's ``/api/generate``)
called with temperature 0.  Transport failures surface as
:class:`JudgeError`; interpreting the text is left to
:mod:`accountmatch.matching.validation`.
"""

from __future__ import annotations

from typing import Protocol

import httpx
import structlog

from accountmatch.config import Settings
from accountmatch.matching.errors import JudgeError

logger = structlog.get_logger(__name__)


class JudgeBackend(Protocol):
    async def complete(self, prompt: str) -> str: ...


class OllamaJudge:
    """Async client for an Ollama-compatible ``/api/generate`` endpoint."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        model: str,
        max_tokens: int = 200,
    ) -> None:
        self.client = client
        self.model = model
        self.max_tokens = max_tokens

    @classmethod
    def from_settings(cls, settings: Settings) -> OllamaJudge:
        client = httpx.AsyncClient(
            base_url=settings.judge_url,
            timeout=settings.judge_timeout,
            headers={"Content-Type": "application/json"},
        )
        return cls(client, settings.judge_model, settings.judge_max_tokens)

    async def complete(self, prompt: str) -> str:
        """Send *prompt* and return the generated text."""
        try:
            resp = await self.client.post(
                "/api/generate",
                json={
                    "model": self.model,
                    "prompt": prompt,
                    "stream": False,
                    "options": {"temperature": 0, "num_predict": self.max_tokens},
                },
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "judge_http_error",
                status_code=exc.response.status_code,
                body=exc.response.text[:200],
            )
            raise JudgeError(f"Judge returned HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise JudgeError(f"Judge request failed: {exc}") from exc

        try:
            body = resp.json()
        except ValueError as exc:
            raise JudgeError("Judge returned a non-JSON body") from exc

        if not isinstance(body, dict) or not isinstance(body.get("response", ""), str):
            logger.warning("judge_malformed_body", body=resp.text[:200])
            raise JudgeError("Judge returned a malformed body")
        return body.get("response", "")

    async def aclose(self) -> None:
        await self.client.aclose()
