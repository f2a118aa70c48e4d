"""
Nova - AI-assisted Xiaohongshu post drafting
"""

__version__ = "1.0.0"

# Export central configuration
from .config import config, NovaConfig

# Export logging utilities
from .logging_config import get_logger, NovaLogger

# Export exceptions
from .exceptions import (
    NovaError,
    ProjectNotFoundError,
    CardNotFoundError,
    DatabaseError,
    UpstreamError,
    StreamTransportError,
    ValidationError,
    ConfigurationError,
    AIGenerationError,
    create_error_response
)

__all__ = [
    'config', 'NovaConfig',
    'get_logger', 'NovaLogger',
    'NovaError', 'ProjectNotFoundError', 'CardNotFoundError',
    'DatabaseError', 'UpstreamError', 'StreamTransportError',
    'ValidationError', 'ConfigurationError', 'AIGenerationError',
    'create_error_response',
    '__version__'
]
