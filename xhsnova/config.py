"""
Centralized Configuration for Nova

Manages data paths, upstream service endpoints and API keys.
Every value can be overridden through environment variables (or a .env file
loaded by the server entry point).
"""

import os
from pathlib import Path
from typing import Optional


# Canvas grid layout: every keyword owns a fixed band of slots
SLOTS_PER_KEYWORD = 3
PLACEHOLDER_TITLE_SUFFIX = " - 加载中..."

# Display placeholders that replace directive markup in stored messages
NEW_CARD_PLACEHOLDER = "[新卡片已创建]"
UPDATED_CARD_PLACEHOLDER = "[卡片已更新]"
DEFAULT_CARD_TITLE_PREFIX = "AI生成卡片"

SSE_DONE_SENTINEL = "[DONE]"


class NovaConfig:
    """Central configuration for Nova paths and settings."""

    def __init__(self, root_dir: Optional[Path] = None):
        """
        Initialize configuration.

        Args:
            root_dir: Root directory of the Nova checkout.
                     If None, auto-detects based on this file's location.
        """
        if root_dir is None:
            # xhsnova/config.py -> parent is root
            self._root_dir = Path(__file__).parent.parent.resolve()
        else:
            self._root_dir = Path(root_dir).resolve()

    @property
    def root_dir(self) -> Path:
        """Root directory of the Nova checkout."""
        return self._root_dir

    @property
    def data_dir(self) -> Path:
        """Directory holding the SQLite database."""
        custom_path = os.getenv('NOVA_DATA_DIR')
        if custom_path:
            return Path(custom_path).resolve()
        return self._root_dir / "data"

    @property
    def db_path(self) -> Path:
        """Path to the SQLite database file."""
        custom_path = os.getenv('NOVA_DB_PATH')
        if custom_path:
            return Path(custom_path).resolve()
        return self.data_dir / "nova.db"

    @property
    def log_dir(self) -> Path:
        """Directory for rotating log files."""
        custom_path = os.getenv('NOVA_LOG_DIR')
        if custom_path:
            return Path(custom_path).resolve()
        return self._root_dir / "logs"

    @property
    def dify_api_url(self) -> str:
        """Base URL of the Dify-compatible chat API."""
        return os.getenv('DIFY_API_URL', 'https://api.dify.ai/v1').rstrip('/')

    @property
    def dify_api_key(self) -> Optional[str]:
        return os.getenv('DIFY_API_KEY')

    @property
    def bluechat_api_url(self) -> str:
        """Endpoint of the bluechat research service."""
        return os.getenv('BLUECHAT_API_URL', 'http://localhost:8000/api/v1/bluechat')

    @property
    def deepseek_api_key(self) -> Optional[str]:
        return os.getenv('DEEPSEEK_API_KEY')

    @property
    def deepseek_base_url(self) -> str:
        return os.getenv('DEEPSEEK_BASE_URL', 'https://api.deepseek.com')

    @property
    def deepseek_model(self) -> str:
        return os.getenv('DEEPSEEK_MODEL', 'deepseek-chat')

    @property
    def host(self) -> str:
        return os.getenv('NOVA_HOST', '0.0.0.0')

    @property
    def port(self) -> int:
        return int(os.getenv('NOVA_PORT', '8003'))

    def ensure_directories(self):
        """Create essential directories if they don't exist."""
        self.data_dir.mkdir(exist_ok=True, parents=True)
        self.db_path.parent.mkdir(exist_ok=True, parents=True)

    def __repr__(self) -> str:
        return (
            f"NovaConfig(\n"
            f"  root_dir={self.root_dir},\n"
            f"  db_path={self.db_path},\n"
            f"  dify_api_url={self.dify_api_url},\n"
            f"  bluechat_api_url={self.bluechat_api_url}\n"
            f")"
        )


# Global config instance
# Import this in other modules: from xhsnova.config import config
config = NovaConfig()
