"""
Ordino configuration: environment-driven settings and logging setup.
"""

from config.settings import settings, Settings, LLMProvider
from config.logging_config import setup_logging

__all__ = ["settings", "Settings", "LLMProvider", "setup_logging"]
