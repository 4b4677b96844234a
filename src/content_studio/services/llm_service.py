"""
LLM Service - text and image generation through LiteLLM
"""
import logging
from typing import Optional, Dict

import litellm

from ..config import config
from ..exceptions import ProviderError, ProviderNotConfiguredError

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a professional content writer with expertise in creating high-quality, "
    "engaging content for various purposes. Provide well-structured, detailed, and "
    "original content based on the user's requirements."
)

ALLOWED_IMAGE_SIZES = ("256x256", "512x512", "1024x1024", "1024x1792", "1792x1024")
DEFAULT_IMAGE_SIZE = "1024x1024"

litellm.drop_params = True


def build_image_prompt(prompt: str, style: Optional[str] = None) -> str:
    """Append the style hint the way the image model expects it"""
    if style and style.strip() and style.strip().lower() != "none":
        return f"{prompt}, {style.strip().lower()} style"
    return prompt


class LLMService:
    """Thin wrapper over litellm completion and image generation"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        image_model: Optional[str] = None,
    ):
        self.api_key = api_key if api_key is not None else config.OPENAI_API_KEY
        self.model = model or config.LLM_MODEL
        self.image_model = image_model or config.IMAGE_MODEL

    def _require_key(self):
        if not self.api_key:
            logger.error("OPENAI_API_KEY is not configured")
            raise ProviderNotConfiguredError("openai")

    def generate_text(self, prompt: str, system_prompt: Optional[str] = None) -> str:
        """
        Generate text for a prompt.

        Raises:
            ProviderNotConfiguredError: No API key
            ProviderError: The completion call failed or returned nothing
        """
        self._require_key()
        messages = [
            {"role": "system", "content": system_prompt or DEFAULT_SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]
        try:
            response = litellm.completion(
                model=self.model,
                messages=messages,
                temperature=config.LLM_TEMPERATURE,
                max_tokens=config.LLM_MAX_TOKENS,
                api_key=self.api_key,
                timeout=config.LLM_TIMEOUT,
            )
        except Exception as e:
            logger.error(f"LLM completion failed ({self.model}): {type(e).__name__}: {e}")
            raise ProviderError("openai", str(e)) from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise ProviderError("openai", "Empty completion")
        return content.strip()

    def generate_image(
        self,
        prompt: str,
        style: Optional[str] = None,
        dimensions: str = DEFAULT_IMAGE_SIZE,
    ) -> Dict[str, str]:
        """
        Generate one image.

        Returns:
            {"image_url": ..., "prompt": <prompt sent to the model>}
        """
        if dimensions not in ALLOWED_IMAGE_SIZES:
            raise ValueError(
                f"Invalid dimensions: {dimensions}. Must be one of: {', '.join(ALLOWED_IMAGE_SIZES)}"
            )
        self._require_key()

        full_prompt = build_image_prompt(prompt, style)
        try:
            response = litellm.image_generation(
                prompt=full_prompt,
                model=self.image_model,
                n=1,
                size=dimensions,
                api_key=self.api_key,
                timeout=config.LLM_TIMEOUT,
            )
        except Exception as e:
            logger.error(f"Image generation failed ({self.image_model}): {type(e).__name__}: {e}")
            raise ProviderError("openai", str(e)) from e

        data = response.data or []
        image_url = data[0].url if data else None
        if not image_url:
            raise ProviderError("openai", "No image returned")
        return {"image_url": image_url, "prompt": full_prompt}


def get_llm_service() -> LLMService:
    """FastAPI dependency; overridden in tests"""
    return LLMService()
