"""OpenAI adapter — implements the LlmGateway port."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from openai import AsyncOpenAI, AuthenticationError, RateLimitError

from repo_tutor.domain.entities import ChatMessage
from repo_tutor.domain.exceptions import LlmError

logger = logging.getLogger(__name__)


class OpenAIAdapter:
    """Concrete ``LlmGateway`` backed by the OpenAI chat-completions API."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        default_temperature: float | None = 0.2,
    ) -> None:
        self._client = AsyncOpenAI(api_key=api_key, max_retries=5)
        self._model = model
        self._default_temperature = default_temperature

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        *,
        temperature: float | None = None,
    ) -> str:
        """Send role-tagged messages and return the completion text."""
        try:
            kwargs: dict[str, object] = {
                "model": self._model,
                "messages": [{"role": m.role, "content": m.content} for m in messages],
            }
            if temperature is None:
                temperature = self._default_temperature
            if temperature is not None:
                kwargs["temperature"] = temperature

            response = await self._client.chat.completions.create(**kwargs)  # type: ignore[arg-type]

            choice = response.choices[0]
            content = choice.message.content

            if not content:
                raise LlmError("LLM returned an empty response.")

            return content

        except AuthenticationError as exc:
            raise LlmError(
                "Invalid OpenAI API key. "
                "Set a valid key in the OPENAI_API_KEY environment variable."
            ) from exc

        except RateLimitError as exc:
            detail = str(exc)
            logger.error("OpenAI RateLimitError: %s", detail)
            raise LlmError(
                f"OpenAI rate limit / quota error: {detail}"
            ) from exc

        except LlmError:
            raise

        except Exception as exc:
            raise LlmError(f"LLM call failed: {exc}") from exc

    async def close(self) -> None:
        """Release underlying HTTP resources."""
        await self._client.close()
