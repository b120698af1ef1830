"""
Configuration management for catalog imports.
"""

import os
import yaml
import json
from typing import Dict, Any, Optional
from dataclasses import dataclass, asdict
import logging

from .submitter import FailurePolicy

logger = logging.getLogger(__name__)


@dataclass
class ClientConfig:
    """Catalog service connection settings."""

    base_url: str = "http://localhost:5000/api"
    api_token: Optional[str] = None
    timeout: float = 30.0
    max_retries: int = 3
    retry_backoff: float = 0.5


@dataclass
class BatchingConfig:
    """Batch sizes, pacing and failure policies."""

    file_batch_size: int = 10
    voice_batch_size: int = 10
    bulk_url_batch_size: int = 50
    url_pool_size: int = 3
    batch_delay: float = 0.1
    group_delay: float = 0.2
    max_bulk_urls: int = 50
    sequential_failure_policy: str = "abort"
    concurrent_failure_policy: str = "continue"

    @property
    def sequential_policy(self) -> FailurePolicy:
        return FailurePolicy(self.sequential_failure_policy)

    @property
    def concurrent_policy(self) -> FailurePolicy:
        return FailurePolicy(self.concurrent_failure_policy)


@dataclass
class QualityConfig:
    """Quality control settings."""

    min_prompt_length: int = 50
    description_max_length: int = 500
    min_description_length: int = 20
    snippet_length: int = 150


@dataclass
class DisplayConfig:
    """Console progress settings."""

    show_progress: bool = True
    update_interval: float = 1.0


@dataclass
class ImportConfig:
    """Complete configuration for catalog imports."""

    client: ClientConfig
    batching: BatchingConfig
    quality: QualityConfig
    display: DisplayConfig

    @classmethod
    def load_from_file(cls, config_path: str) -> "ImportConfig":
        """Load configuration from YAML or JSON file."""
        if not os.path.exists(config_path):
            logger.info(f"Config file {config_path} not found, using defaults")
            return cls.default()

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                if config_path.endswith(".yaml") or config_path.endswith(".yml"):
                    data = yaml.safe_load(f)
                else:
                    data = json.load(f)

            return cls.from_dict(data or {})

        except (OSError, ValueError, TypeError, yaml.YAMLError) as e:
            logger.warning(f"Error loading config from {config_path}: {e}")
            logger.info("Using default configuration")
            return cls.default()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ImportConfig":
        """Create configuration from dictionary."""
        client = ClientConfig(**data.get("client", {}))
        batching = BatchingConfig(**data.get("batching", {}))
        quality = QualityConfig(**data.get("quality", {}))
        display = DisplayConfig(**data.get("display", {}))

        return cls(client=client, batching=batching, quality=quality, display=display)

    @classmethod
    def default(cls) -> "ImportConfig":
        """Create default configuration."""
        return cls(
            client=ClientConfig(),
            batching=BatchingConfig(),
            quality=QualityConfig(),
            display=DisplayConfig(),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "client": asdict(self.client),
            "batching": asdict(self.batching),
            "quality": asdict(self.quality),
            "display": asdict(self.display),
        }

    def save_to_file(self, config_path: str) -> bool:
        """Save configuration to file."""
        try:
            data = self.to_dict()

            with open(config_path, "w", encoding="utf-8") as f:
                if config_path.endswith(".yaml") or config_path.endswith(".yml"):
                    yaml.dump(data, f, default_flow_style=False, indent=2)
                else:
                    json.dump(data, f, indent=2, ensure_ascii=False)

            logger.info(f"Configuration saved to {config_path}")
            return True

        except OSError as e:
            logger.error(f"Error saving config to {config_path}: {e}")
            return False

    def validate(self) -> tuple[bool, list[str]]:
        """Validate configuration settings."""
        errors = []

        # Validate client
        if not self.client.base_url:
            errors.append("Base URL cannot be empty")
        if self.client.timeout <= 0:
            errors.append("Timeout must be positive")
        if self.client.max_retries < 0:
            errors.append("Max retries cannot be negative")

        # Validate batching
        for name in ("file_batch_size", "voice_batch_size", "bulk_url_batch_size"):
            if getattr(self.batching, name) <= 0:
                errors.append(f"{name} must be positive")
        if self.batching.url_pool_size <= 0:
            errors.append("URL pool size must be positive")
        if self.batching.batch_delay < 0 or self.batching.group_delay < 0:
            errors.append("Delays cannot be negative")
        if self.batching.max_bulk_urls <= 0:
            errors.append("Max bulk URLs must be positive")
        for name in ("sequential_failure_policy", "concurrent_failure_policy"):
            value = getattr(self.batching, name)
            if value not in {policy.value for policy in FailurePolicy}:
                errors.append(f"{name} must be 'abort' or 'continue', got {value!r}")

        # Validate quality
        if self.quality.min_prompt_length < 0:
            errors.append("Min prompt length cannot be negative")
        if self.quality.description_max_length <= 0:
            errors.append("Max description length must be positive")
        if self.quality.snippet_length <= 0:
            errors.append("Snippet length must be positive")

        return len(errors) == 0, errors


def load_config(config_path: Optional[str] = None) -> ImportConfig:
    """Load configuration from file or create default."""
    if config_path is None:
        # Look for config files in common locations
        possible_paths = [
            "containerhub_config.yaml",
            "containerhub_config.yml",
            "containerhub_config.json",
            "config/containerhub_config.yaml",
            os.path.expanduser("~/.containerhub_config.yaml"),
        ]

        for path in possible_paths:
            if os.path.exists(path):
                config_path = path
                break
        else:
            # No config found, use defaults
            return ImportConfig.default()

    return ImportConfig.load_from_file(config_path)
