"""
Repository layer for the interest coach.

All SQL lives here and ONLY here. No database access outside this module.
"""

from coach.repos.conversation_repo import ConversationRepo

__all__ = [
    "ConversationRepo",
]
