"""Configuration loading utilities."""

import json
import re
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import ValidationError

from relaybot.config.schema import Config, SessionConfig


class ConfigInvalid(Exception):
    """The config file exists but cannot be read or fails validation."""

    def __init__(self, path: Path, issues: list[str]):
        self.path = path
        self.issues = issues
        super().__init__(f"Invalid config at {path}: " + "; ".join(issues))


def camel_to_snake(name: str) -> str:
    """Convert camelCase to snake_case."""
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def snake_to_camel(name: str) -> str:
    """Convert snake_case to camelCase."""
    head, *rest = name.split("_")
    return head + "".join(word.capitalize() for word in rest)


def convert_keys(data: Any) -> Any:
    """Recursively convert dict keys from camelCase to snake_case."""
    if isinstance(data, dict):
        return {camel_to_snake(k): convert_keys(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_keys(item) for item in data]
    return data


def convert_to_camel(data: Any) -> Any:
    """Recursively convert dict keys from snake_case to camelCase."""
    if isinstance(data, dict):
        return {snake_to_camel(k): convert_to_camel(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_to_camel(item) for item in data]
    return data


def load_config(config_path: Path) -> Config:
    """Load config from *config_path*.

    A missing file yields defaults. An unreadable or invalid file raises
    :class:`ConfigInvalid` so the process can fail before the engine runs.
    """
    if not config_path.exists():
        logger.debug(f"No config at {config_path}, using defaults")
        return Config()

    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigInvalid(config_path, [str(e)]) from e
    if not isinstance(data, dict):
        raise ConfigInvalid(config_path, ["top-level value must be an object"])

    try:
        return Config(**convert_keys(data))
    except ValidationError as e:
        issues = [
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
            for err in e.errors()
        ]
        raise ConfigInvalid(config_path, issues) from e


def save_config(config: Config, config_path: Path) -> None:
    """Write config as camelCase JSON."""
    config_path.parent.mkdir(parents=True, exist_ok=True)
    data = convert_to_camel(config.model_dump(exclude_none=True))
    config_path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")


def resolve_session_intro(session_cfg: SessionConfig | None, config_dir: Path) -> str | None:
    """Intro text from ``session_intro_path`` if readable, else ``session_intro``."""
    if session_cfg is None:
        return None
    if session_cfg.session_intro_path:
        path = Path(session_cfg.session_intro_path).expanduser()
        if not path.is_absolute():
            path = config_dir / path
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            logger.warning(
                f"sessionIntroPath unreadable ({path}: {e}); "
                "falling back to inline sessionIntro"
            )
    return session_cfg.session_intro
