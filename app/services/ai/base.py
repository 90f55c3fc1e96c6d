from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional


class AIProvider(ABC):
    """
    Text-generation backend behind ProductAIService.

    Implementations never raise on quota or transport problems: they return an
    empty result so callers can fall back to heuristic scoring.
    """

    name: str = "base"

    @property
    def available(self) -> bool:
        return True

    @abstractmethod
    async def generate_text(self, prompt: str, model: Optional[str] = None) -> str:
        """Free-form completion, or "" when nothing could be generated."""

    @abstractmethod
    async def generate_json(self, prompt: str, model: Optional[str] = None) -> Dict[str, Any] | List[Any]:
        """Completion parsed as JSON, or {} when nothing usable came back."""
