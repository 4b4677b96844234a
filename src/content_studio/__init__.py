"""
Content Studio - AI content generation API
Template-driven text and image generation with credits, billing and admin tooling
"""
import os

# Keep LiteLLM from importing its proxy server modules
os.environ.setdefault("LITELLM_DISABLE_PROXY", "1")

__version__ = "0.1.0"
