"""
Server Configuration for Nova API

Re-exports the core xhsnova.config for server use.
"""

from xhsnova.config import config, NovaConfig

__all__ = ['config', 'NovaConfig']
