"""
Logging configuration for Nova servers.

Re-exports xhsnova.logging_config for server use.
"""

from xhsnova.logging_config import get_logger, NovaLogger, set_debug_mode

__all__ = ['get_logger', 'NovaLogger', 'set_debug_mode']
