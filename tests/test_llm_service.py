"""
Tests for the LiteLLM wrapper
"""
import pytest
from types import SimpleNamespace
from unittest.mock import patch

from content_studio.exceptions import ProviderError, ProviderNotConfiguredError
from content_studio.services.llm_service import LLMService, build_image_prompt


def completion_response(text):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])


class TestBuildImagePrompt:
    """Test style hints"""

    def test_with_style(self):
        assert build_image_prompt("a cat", " Watercolor ") == "a cat, watercolor style"

    def test_without_style(self):
        assert build_image_prompt("a cat", None) == "a cat"
        assert build_image_prompt("a cat", "none") == "a cat"


class TestGenerateText:
    """Test text generation"""

    def test_success(self):
        service = LLMService(api_key="sk-test", model="gpt-4o-mini")
        with patch("content_studio.services.llm_service.litellm.completion",
                   return_value=completion_response("  Hello world \n")) as completion:
            assert service.generate_text("Say hello") == "Hello world"

        kwargs = completion.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["messages"][0]["role"] == "system"
        assert kwargs["messages"][1] == {"role": "user", "content": "Say hello"}

    def test_custom_system_prompt(self):
        service = LLMService(api_key="sk-test")
        with patch("content_studio.services.llm_service.litellm.completion",
                   return_value=completion_response("ok")) as completion:
            service.generate_text("x", system_prompt="Be terse")
        assert completion.call_args.kwargs["messages"][0]["content"] == "Be terse"

    def test_missing_key(self):
        with pytest.raises(ProviderNotConfiguredError):
            LLMService(api_key="").generate_text("hello")

    def test_provider_failure(self):
        service = LLMService(api_key="sk-test")
        with patch("content_studio.services.llm_service.litellm.completion", side_effect=RuntimeError("429")):
            with pytest.raises(ProviderError):
                service.generate_text("hello")

    def test_empty_completion(self):
        service = LLMService(api_key="sk-test")
        with patch("content_studio.services.llm_service.litellm.completion",
                   return_value=completion_response("")):
            with pytest.raises(ProviderError):
                service.generate_text("hello")


class TestGenerateImage:
    """Test image generation"""

    def test_success(self):
        service = LLMService(api_key="sk-test", image_model="dall-e-3")
        response = SimpleNamespace(data=[SimpleNamespace(url="https://img.example/1.png")])
        with patch("content_studio.services.llm_service.litellm.image_generation",
                   return_value=response) as image_generation:
            result = service.generate_image("a cat", "Pixel Art", "512x512")

        assert result == {"image_url": "https://img.example/1.png", "prompt": "a cat, pixel art style"}
        assert image_generation.call_args.kwargs["size"] == "512x512"

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            LLMService(api_key="sk-test").generate_image("a cat", dimensions="1x1")

    def test_no_image_returned(self):
        service = LLMService(api_key="sk-test")
        with patch("content_studio.services.llm_service.litellm.image_generation",
                   return_value=SimpleNamespace(data=[])):
            with pytest.raises(ProviderError):
                service.generate_image("a cat")
