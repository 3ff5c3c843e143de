"""
SheetCheck - answer-sheet evaluation service
"""

from .config import settings

__all__ = [
    "settings",
]
