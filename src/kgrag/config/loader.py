"""Configuration loading from files and environment.

Supports:
- TOML config files
- Environment variables (KGRAG_* prefix, KGRAG_LLM__API_KEY for nested keys)
- .env files
- Named profiles under a ``[profiles.<name>]`` table
"""

import os
import re
import tomllib
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from kgrag.config.schema import AppConfig
from kgrag.observability.logging import get_logger

logger = get_logger(__name__)

# ${VAR_NAME} or ${VAR_NAME:-default}
_ENV_REF = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")


def _expand_env_refs(value: Any) -> Any:
    """Recursively replace ${VAR} references in strings.

    Unset variables without a default are left untouched so that a missing
    credential stays visible instead of silently becoming an empty string.
    """
    if isinstance(value, dict):
        return {key: _expand_env_refs(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_expand_env_refs(item) for item in value]
    if not isinstance(value, str):
        return value

    def _replace(match: re.Match) -> str:
        name, default = match.group(1).strip(), match.group(2)
        resolved = os.getenv(name)
        if resolved is not None:
            return resolved
        if default is not None:
            return default
        logger.warning("env_var_not_found", var_name=name)
        return match.group(0)

    return _ENV_REF.sub(_replace, value)


def _read_config_file(config_path: Path, profile: Optional[str]) -> dict[str, Any]:
    with open(config_path, "rb") as f:
        data = tomllib.load(f)
    logger.info("loaded_config_file", path=str(config_path))

    profiles = data.pop("profiles", {})
    if profile:
        if profile in profiles:
            # Profile tables override top-level tables key by key
            for key, section in profiles[profile].items():
                if isinstance(section, dict) and isinstance(data.get(key), dict):
                    data[key] = {**data[key], **section}
                else:
                    data[key] = section
            logger.info("applied_profile", profile=profile)
        else:
            logger.warning("profile_not_found", profile=profile, available=sorted(profiles))

    return _expand_env_refs(data)


def load_config(
    config_path: Optional[Path] = None,
    profile: Optional[str] = None,
    env_file: Optional[Path] = None,
) -> AppConfig:
    """Load application configuration.

    Priority (highest to lowest):
    1. Init values from the config file
    2. Environment variables
    3. Defaults

    Args:
        config_path: Path to TOML config file
        profile: Config profile to apply on top of the base tables
        env_file: Path to .env file

    Returns:
        Loaded and validated configuration
    """
    if env_file and env_file.exists():
        load_dotenv(env_file)
        logger.info("loaded_env_file", path=str(env_file))

    config_data: dict[str, Any] = {}
    if config_path and config_path.exists():
        config_data = _read_config_file(config_path, profile)

    config = AppConfig(**config_data)
    logger.info(
        "config_loaded",
        embedding_provider=config.embedding.provider.value,
        llm_provider=config.llm.provider.value,
        store=config.store.store_type.value,
        default_mode=config.retrieval.default_mode,
    )
    return config


def get_default_config_path() -> Path:
    """Get the default config file path.

    Searches in order:
    1. ./kgrag.toml
    2. ~/.kgrag/config.toml
    """
    search_paths = [
        Path.cwd() / "kgrag.toml",
        Path.home() / ".kgrag" / "config.toml",
    ]

    for path in search_paths:
        if path.exists():
            return path

    return search_paths[0]
