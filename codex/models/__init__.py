"""
Database models package.
"""

from codex.models.user import User, AccountStatus
from codex.models.prompt import Prompt
from codex.models.response import Response

__all__ = ["User", "AccountStatus", "Prompt", "Response"]
