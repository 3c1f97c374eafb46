"""
Codex API - save prompts and compare LLM responses to them.
"""

__version__ = "1.0.0"
