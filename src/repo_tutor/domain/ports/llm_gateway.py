"""Port: LLM gateway — defined by the domain, implemented by infrastructure."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from repo_tutor.domain.entities import ChatMessage


class LlmGateway(Protocol):
    """Abstract contract for interacting with a large-language model."""

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        *,
        temperature: float | None = None,
    ) -> str:
        """Send role-tagged messages and return the raw completion text."""
        ...
