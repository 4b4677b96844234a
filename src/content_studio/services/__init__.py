"""Service layer: templates, LLM, credits, content, billing and analytics"""
