# secufix/config.py
import os
import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path

import yaml  # For config file

CONFIG_FILENAME = "config.yaml"
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logger = logging.getLogger(__name__)

# Environment variables that take priority over config.yaml values
ENV_OVERRIDES = {
    "github_token": "GITHUB_TOKEN",
    "oss_index_user": "OSS_INDEX_USER",
    "oss_index_token": "OSS_INDEX_TOKEN",
    "ai_api_key": "GROQ_API_KEY",
    "ai_model": "SECUFIX_AI_MODEL",
}


@dataclass(frozen=True)
class ScanConfig:
    """Options for one scan invocation. Passed explicitly to every component."""
    # Behaviour
    auto_fix: bool = False
    force_update: bool = False
    backup_files: bool = True
    live_lookup: bool = True
    sweep_static_table: bool = True
    version_ordering: str = "lexicographic"  # or "semantic"
    ai_review: bool = False
    # Oracle / registry scheduling (seconds)
    max_retries: int = 3
    retry_base_delay: float = 2.0
    request_delay: float = 0.5
    oracle_timeout: float = 15.0
    registry_timeout: float = 5.0
    github_timeout: float = 30.0
    log_level: str = "INFO"
    # Extra/overriding secure versions, {ecosystem: {package: version}}
    secure_versions: dict = field(default_factory=dict)
    # Credentials
    github_token: str | None = None
    oss_index_user: str | None = None
    oss_index_token: str | None = None
    ai_api_key: str | None = None
    ai_model: str = "llama3-8b-8192"
    ai_base_url: str = "https://api.groq.com/openai/v1"

    def with_overrides(self, **overrides) -> "ScanConfig":
        """Returns a copy with the non-None overrides applied (used for CLI flags)."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def _read_yaml(path: Path) -> dict:
    if not path.is_file():
        logger.info(f"Configuration file '{path}' not found. Using defaults/environment.")
        return {}
    logger.info(f"Attempting to load configuration from '{path.resolve()}'...")
    try:
        with open(path, 'r', encoding='utf-8') as f:
            loaded_yaml = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.warning(f"Error parsing YAML configuration file '{path.resolve()}': {e}")
        return {}
    except OSError as e:
        logger.warning(f"Could not read configuration file '{path.resolve()}': {e}")
        return {}
    if loaded_yaml is None:
        return {}
    if not isinstance(loaded_yaml, dict):
        logger.warning(f"Config file '{path.resolve()}' does not contain a valid dictionary structure.")
        return {}
    return loaded_yaml


def load_config(config_path: str | os.PathLike = CONFIG_FILENAME, environ: dict | None = None) -> ScanConfig:
    """
    Builds a ScanConfig from config.yaml (if present) and environment variables.
    Environment variables win over the file for credentials and the AI model.
    """
    environ = os.environ if environ is None else environ
    raw = _read_yaml(Path(config_path))

    known = {f.name for f in fields(ScanConfig)}
    values = {}
    for key, value in raw.items():
        if key not in known:
            logger.warning(f"Ignoring unknown configuration key '{key}'.")
            continue
        values[key] = value

    if "secure_versions" in values and not isinstance(values["secure_versions"], dict):
        logger.warning("'secure_versions' in config is not a mapping, ignoring it.")
        del values["secure_versions"]

    for attr, env_name in ENV_OVERRIDES.items():
        env_value = environ.get(env_name)
        if env_value:
            values[attr] = env_value

    config = ScanConfig(**values)
    if config.version_ordering not in ("lexicographic", "semantic"):
        logger.warning(f"Unknown version_ordering '{config.version_ordering}', using 'lexicographic'.")
        config = replace(config, version_ordering="lexicographic")
    return config


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, str(level).upper(), logging.INFO), format=LOG_FORMAT)
