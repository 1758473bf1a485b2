"""
Configuration management for the try-on widget.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
import yaml


GLOBAL_CONFIG_DIR = Path.home() / ".tryon_widget"
GLOBAL_CONFIG_FILE = GLOBAL_CONFIG_DIR / "config.yaml"


@dataclass
class APISettings:
    """Generation API location."""

    endpoint: str = ""
    timeout: float = 180.0

    @classmethod
    def from_dict(cls, data: dict) -> "APISettings":
        return cls(
            endpoint=data.get("endpoint", ""),
            timeout=float(data.get("timeout", 180.0)),
        )

    @classmethod
    def from_env(cls) -> "APISettings":
        """Load API settings from environment variables."""
        timeout = os.getenv("TRYON_API_TIMEOUT", "")
        return cls(
            endpoint=os.getenv("TRYON_API_ENDPOINT", ""),
            timeout=float(timeout) if timeout else 0.0,
        )

    def merge_env(self) -> "APISettings":
        """Merge with environment variables (env takes precedence)."""
        env = APISettings.from_env()
        return APISettings(
            endpoint=env.endpoint or self.endpoint,
            timeout=env.timeout or self.timeout,
        )


@dataclass
class Defaults:
    """Default widget settings."""

    mode: str = "cart"  # "cart" or "outfit"
    shop: str = ""
    version_hint: int = 1  # 1 or 2
    progress_tick_seconds: float = 1.0
    action_timeout_seconds: float = 10.0
    cancel_on_dispose: bool = False
    auto_detect_garment_types: bool = True

    @classmethod
    def from_dict(cls, data: dict) -> "Defaults":
        return cls(
            mode=data.get("mode", "cart"),
            shop=data.get("shop", ""),
            version_hint=int(data.get("version_hint", 1)),
            progress_tick_seconds=float(data.get("progress_tick_seconds", 1.0)),
            action_timeout_seconds=float(data.get("action_timeout_seconds", 10.0)),
            cancel_on_dispose=bool(data.get("cancel_on_dispose", False)),
            auto_detect_garment_types=bool(data.get("auto_detect_garment_types", True)),
        )


@dataclass
class Config:
    """Complete configuration."""

    api: APISettings = field(default_factory=APISettings)
    defaults: Defaults = field(default_factory=Defaults)

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Config":
        """Load configuration from file and environment."""
        config_path = config_path or GLOBAL_CONFIG_FILE

        # Start with defaults
        config = cls()

        # Load from file if exists
        if config_path.exists():
            with open(config_path) as f:
                data = yaml.safe_load(f) or {}
                config.api = APISettings.from_dict(data.get("api", {}))
                config.defaults = Defaults.from_dict(data.get("defaults", {}))

        # Merge environment variables (they take precedence)
        config.api = config.api.merge_env()
        config.defaults.shop = os.getenv("TRYON_SHOP", "") or config.defaults.shop

        return config

    def save(self, config_path: Optional[Path] = None) -> None:
        """Save configuration to file."""
        config_path = config_path or GLOBAL_CONFIG_FILE
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "api": {
                "endpoint": self.api.endpoint,
                "timeout": self.api.timeout,
            },
            "defaults": {
                "mode": self.defaults.mode,
                "shop": self.defaults.shop,
                "version_hint": self.defaults.version_hint,
                "progress_tick_seconds": self.defaults.progress_tick_seconds,
                "action_timeout_seconds": self.defaults.action_timeout_seconds,
                "cancel_on_dispose": self.defaults.cancel_on_dispose,
                "auto_detect_garment_types": self.defaults.auto_detect_garment_types,
            },
        }

        with open(config_path, "w") as f:
            yaml.dump(data, f, default_flow_style=False)

    def validate(self) -> list[str]:
        """Validate configuration and return list of issues."""
        issues = []

        if not self.api.endpoint:
            issues.append("API endpoint not configured (TRYON_API_ENDPOINT)")
        elif not self.api.endpoint.startswith(("http://", "https://")):
            issues.append(f"API endpoint must be an http(s) URL: {self.api.endpoint}")

        if self.defaults.mode not in ("cart", "outfit"):
            issues.append(f"Unknown default mode: {self.defaults.mode} (expected cart or outfit)")

        if self.defaults.version_hint not in (1, 2):
            issues.append(f"Version hint must be 1 or 2, got {self.defaults.version_hint}")

        if self.defaults.action_timeout_seconds <= 0:
            issues.append("Action timeout must be positive")

        return issues
