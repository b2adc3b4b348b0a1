from __future__ import annotations
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from soopchat.shared.errors import ConfigurationError
from soopchat.shared.log import get_logger

logger = get_logger(__name__)

ENV_PREFIX = "SOOPCHAT_"

USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:122.0) Gecko/20100101 Firefox/122.0"


@dataclass(frozen=True)
class ClientSettings:
    http_timeout: float = 2.0
    open_timeout: float = 5.0
    keepalive_interval: float = 60.0
    queue_size: int = 1024
    max_read_failures: int = 5
    verify_tls: bool = False
    user_agent: str = USER_AGENT
    directory_url: str = "https://live.sooplive.co.kr/afreeca/player_live_api.php?bjId={streamer_id}"
    login_url: str = "https://login.sooplive.co.kr/app/LoginAction.php"


def _coerce(name: str, raw: Any, target: Any) -> Any:
    """Convert a YAML/env value to the type of the field's default"""
    try:
        if isinstance(target, bool):
            if isinstance(raw, bool):
                return raw
            return str(raw).strip().lower() in {"1", "true", "yes", "on"}
        if isinstance(target, int):
            return int(raw)
        if isinstance(target, float):
            return float(raw)
        return str(raw)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid value for {name}: {raw!r}") from e


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}")
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    # Settings may sit at top level or under a `soopchat:` key
    section = data.get("soopchat", data)
    if not isinstance(section, dict):
        raise ConfigurationError(f"`soopchat` section of {path} must be a mapping")
    return section


def load_settings(path: Optional[Path] = None, environ: Optional[Dict[str, str]] = None) -> ClientSettings:
    """
    Build settings from defaults, then an optional YAML file, then
    SOOPCHAT_* environment variables (e.g. SOOPCHAT_KEEPALIVE_INTERVAL=30).

    The YAML path is `path` or SOOPCHAT_CONFIG when set.
    """
    env = os.environ if environ is None else environ
    settings = ClientSettings()
    known = {f.name: getattr(settings, f.name) for f in fields(ClientSettings)}

    overrides: Dict[str, Any] = {}
    config_path = path or (Path(env[f"{ENV_PREFIX}CONFIG"]) if env.get(f"{ENV_PREFIX}CONFIG") else None)
    if config_path is not None:
        for key, raw in _read_yaml(config_path).items():
            if key not in known:
                logger.warning("Ignoring unknown config key %s in %s", key, config_path)
                continue
            overrides[key] = _coerce(key, raw, known[key])
        logger.debug("Loaded settings from %s", config_path)

    for name, default in known.items():
        raw = env.get(f"{ENV_PREFIX}{name.upper()}")
        if raw is not None:
            overrides[name] = _coerce(name, raw, default)

    settings = replace(settings, **overrides)
    if settings.keepalive_interval <= 0:
        raise ConfigurationError("keepalive_interval must be positive")
    if settings.queue_size <= 0:
        raise ConfigurationError("queue_size must be positive")
    if settings.max_read_failures <= 0:
        raise ConfigurationError("max_read_failures must be positive")
    return settings
