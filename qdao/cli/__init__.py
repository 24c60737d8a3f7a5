"""
QDAO CLI Tools
"""

from .main import cli

__all__ = ["cli"]
