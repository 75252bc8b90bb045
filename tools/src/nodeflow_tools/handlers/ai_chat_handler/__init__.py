"""
AI Chat Handler - ChatGPT, Claude and Gemini nodes through LiteLLM.
"""

from .ai_chat_handler import PROVIDERS, register_handlers, resolve_model, resolve_prompt

__all__ = ["PROVIDERS", "register_handlers", "resolve_model", "resolve_prompt"]
