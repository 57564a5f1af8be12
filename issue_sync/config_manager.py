"""
Configuration Manager Module
Handles loading and accessing sync configuration from YAML files and environment variables.
"""

import os
import re
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from dotenv import load_dotenv


class ConfigManager:
    """Manages application configuration from YAML files and environment variables."""

    _instance = None
    _config: Dict = None

    def __new__(cls):
        """Singleton pattern for configuration."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        """Initialize configuration if not already loaded."""
        if self._config is None:
            self._load_configuration()

    def _load_configuration(self) -> None:
        """Load all configuration files."""
        # Load environment variables from .env file
        load_dotenv()

        self._config_dir = self._find_config_dir()
        if self._config_dir is None:
            self._config = {}
            return

        self._config = self._load_yaml_with_env(self._config_dir / 'config.yaml')

    def _find_config_dir(self) -> Optional[Path]:
        """Find the configuration directory, or None when there is none."""
        env_config_dir = os.getenv('CONFIG_DIR')
        if env_config_dir:
            return Path(env_config_dir)

        possible_paths = [
            Path(__file__).parent.parent / 'config',  # Relative to the package
            Path.cwd() / 'config',
        ]

        for path in possible_paths:
            if path.exists():
                return path

        return None

    def _load_yaml_with_env(self, file_path: Path) -> Dict:
        """
        Load YAML file with environment variable substitution.

        Supports ${VAR_NAME} and ${VAR_NAME:-default} syntax.
        """
        if not file_path.exists():
            return {}

        with open(file_path, 'r', encoding='utf-8') as f:
            content = f.read()

        content = self._substitute_env_vars(content)

        return yaml.safe_load(content) or {}

    def _substitute_env_vars(self, content: str) -> str:
        """
        Substitute environment variables in string.

        Supports:
        - ${VAR_NAME} - Required variable
        - ${VAR_NAME:-default} - Variable with default value
        """
        pattern = r'\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}'

        def replacer(match):
            var_name = match.group(1)
            default_value = match.group(2)

            value = os.getenv(var_name)
            if value is not None:
                return value
            elif default_value is not None:
                return default_value
            else:
                return match.group(0)  # Return original if not found

        return re.sub(pattern, replacer, content)

    # ========================================
    # Configuration Getters
    # ========================================

    def get_github_config(self) -> Dict:
        """Get GitHub API configuration."""
        return self._config.get('github') or {}

    def get_database_config(self) -> Dict:
        """Get database configuration."""
        return self._config.get('database') or {}

    def get_sync_config(self) -> Dict:
        """Get sync scheduling configuration."""
        return self._config.get('sync') or {}

    def get_backoff_config(self) -> Dict:
        """Get bootstrap backoff configuration."""
        return self.get_sync_config().get('backoff') or {}

    def get_logging_config(self) -> Dict:
        """Get logging configuration."""
        return self._config.get('logging') or {}

    def get_repositories(self) -> List[str]:
        """
        Get the repositories to monitor as 'owner/name' strings.

        Falls back to the single github.owner/github.repo pair.
        """
        repositories = self.get_sync_config().get('repositories') or []
        if repositories:
            return list(repositories)

        github_config = self.get_github_config()
        owner = github_config.get('owner')
        repo = github_config.get('repo')
        if owner and repo:
            return [f"{owner}/{repo}"]
        return []
