import json
import logging
import re
from typing import Any, Dict, List, Optional

import google.generativeai as genai
from google.api_core.exceptions import ResourceExhausted, ServiceUnavailable

from app.services.ai.base import AIProvider

logger = logging.getLogger(__name__)

GENERATION_CONFIG = {
    "temperature": 0.7,
    "top_p": 0.95,
    "top_k": 40,
    "max_output_tokens": 2048,
}
JSON_GENERATION_CONFIG = {**GENERATION_CONFIG, "response_mime_type": "application/json"}

# Errors that mean "this key is spent for now", not "this prompt is bad"
ROTATABLE_ERRORS = (ResourceExhausted, ServiceUnavailable)

_JSON_BLOCK = re.compile(r"\{[\s\S]*\}")


def parse_json_text(text: str) -> Dict[str, Any] | List[Any]:
    """Strict JSON first, then the outermost {...} block in the text."""
    if not text:
        return {}
    try:
        return json.loads(text)
    except ValueError:
        pass
    match = _JSON_BLOCK.search(text)
    if not match:
        return {}
    try:
        return json.loads(match.group(0))
    except ValueError:
        return {}


class GeminiProvider(AIProvider):
    """
    Gemini over google-generativeai with a pool of API keys.

    A quota or availability error moves to the next key and retries the same
    prompt; each key gets at most one attempt per call.
    """

    name = "gemini"

    def __init__(self, api_keys: List[str], model_name: str = "gemini-1.5-flash"):
        self.api_keys = [key for key in api_keys if key]
        self.model_name = model_name
        self.current_key_index = 0
        self.model = None
        if self.api_keys:
            self._activate(0)
        else:
            logger.warning("No Gemini API keys configured; AI features use heuristic fallbacks.")

    @property
    def available(self) -> bool:
        return self.model is not None

    def _activate(self, index: int) -> None:
        self.current_key_index = index
        genai.configure(api_key=self.api_keys[index])
        self.model = genai.GenerativeModel(self.model_name, generation_config=GENERATION_CONFIG)
        logger.info(f"[Gemini] Using key #{index} of {len(self.api_keys)}")

    def _rotate_key(self) -> bool:
        if len(self.api_keys) < 2:
            return False
        self._activate((self.current_key_index + 1) % len(self.api_keys))
        return True

    def _model_for(self, model: Optional[str]):
        if not model or model == self.model_name:
            return self.model
        return genai.GenerativeModel(model, generation_config=GENERATION_CONFIG)

    async def _complete(self, prompt: str, model: Optional[str], **kwargs: Any) -> str:
        if not self.available:
            return ""

        for _ in range(len(self.api_keys)):
            try:
                response = await self._model_for(model).generate_content_async(prompt, **kwargs)
            except ROTATABLE_ERRORS as e:
                logger.warning(f"[Gemini] Key #{self.current_key_index} rejected the request: {e}")
                if not self._rotate_key():
                    break
                continue
            except Exception as e:
                logger.error(f"[Gemini] Generation failed: {e}")
                return ""
            return response.text or ""

        logger.error("[Gemini] Every configured key is exhausted")
        return ""

    async def generate_text(self, prompt: str, model: Optional[str] = None) -> str:
        return await self._complete(prompt, model)

    async def generate_json(self, prompt: str, model: Optional[str] = None) -> Dict[str, Any] | List[Any]:
        text = await self._complete(prompt, model, generation_config=JSON_GENERATION_CONFIG)
        return parse_json_text(text)
