"""Configuration loader: YAML files + environment variables."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv

from threadguard.core.models import (
    ApiConfig,
    AppConfig,
    IdentityConfig,
    ProxyConfig,
    RenderConfig,
    SendConfig,
    ThemeMode,
    VerificationConfig,
)


def _find_project_root() -> Path:
    """Walk up from cwd to find a directory containing pyproject.toml."""
    cwd = Path.cwd()
    for p in [cwd, *cwd.parents]:
        if (p / "pyproject.toml").exists():
            return p
    return cwd


def load_config(config_path: Optional[str] = None) -> AppConfig:
    """Load configuration from YAML + environment variables.

    Priority: env vars > .env file > YAML defaults.
    """
    root = _find_project_root()
    load_dotenv(root / ".env")

    yaml_path = Path(config_path) if config_path else root / "config" / "default.yaml"
    yaml_data: dict = {}
    if yaml_path.exists():
        with open(yaml_path) as f:
            yaml_data = yaml.safe_load(f) or {}

    # Mail API with env overrides
    api_data = yaml_data.get("api", {})
    api = ApiConfig(
        base_url=os.getenv("THREADGUARD_API_URL", api_data.get("base_url", "http://localhost:8080")),
        session_token=os.getenv("THREADGUARD_SESSION_TOKEN", api_data.get("session_token", "")),
        timeout=float(api_data.get("timeout", 30.0)),
    )

    identity = IdentityConfig(
        address=os.getenv("THREADGUARD_IDENTITY", yaml_data.get("identity", {}).get("address", "")),
    )

    proxy_data = yaml_data.get("proxy", {})
    proxy = ProxyConfig(
        image_proxy_url=os.getenv(
            "THREADGUARD_IMAGE_PROXY_URL", proxy_data.get("image_proxy_url", "/proxy/image")
        ),
    )

    verification = VerificationConfig(
        timeout_seconds=float(yaml_data.get("verification", {}).get("timeout_seconds", 30.0)),
    )

    render_data = yaml_data.get("render", {})
    theme_str = os.getenv("THREADGUARD_THEME", render_data.get("default_theme", "light"))
    render = RenderConfig(default_theme=ThemeMode(theme_str))

    send = SendConfig(**yaml_data.get("send", {}))

    return AppConfig(
        api=api,
        identity=identity,
        proxy=proxy,
        verification=verification,
        render=render,
        send=send,
    )
