"""
Utilities Module
================

Shared helpers:
- logger: leveled, colored, context-prefixed logging
- config: environment-backed configuration
"""

from agentloop.utils.logger import Logger
from agentloop.utils.config import get_config, Config

__all__ = ["Logger", "get_config", "Config"]
