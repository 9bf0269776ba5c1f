"""
LLM Provider — Abstract Interface

All model calls go through this interface. Swap providers
by changing COMPLIANCEBOT_LLM_PROVIDER in env.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional


class LLMProvider(ABC):
    """Abstract base for LLM providers."""

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        temperature: float = 0.0,
        json_mode: bool = False,
    ) -> str:
        """Generate a raw text response from the model."""
        ...


def strip_code_fences(text: str) -> str:
    """Strip markdown fences if the model wraps JSON in ```json blocks."""
    cleaned = (text or "").strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.split("\n", 1)[-1].rsplit("```", 1)[0].strip()
    return cleaned
