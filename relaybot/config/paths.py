"""Profile-aware path resolution.

Everything is resolved into an explicit :class:`ProfilePaths` value that is
passed to the engine; nothing here is stored in module-level state.
"""

import os
import re
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Mapping

PROFILE_RE = re.compile(r"^[a-z0-9_-]+$")
CONFIG_PATH_ENV = "RELAYBOT_CONFIG_PATH"
PROFILE_ENV = "RELAYBOT_PROFILE"

ConfigSource = Literal["flag", "env", "profile", "legacy"]


def get_home_dir() -> Path:
    """Return ~/.relaybot (not created)."""
    return Path.home() / ".relaybot"


def normalize_profile(profile: str | None) -> str | None:
    """Validate a profile name. Empty means the default profile."""
    if not profile:
        return None
    trimmed = profile.strip()
    if not PROFILE_RE.match(trimmed):
        raise ValueError(
            "Profile must match [a-z0-9_-]+ (lowercase letters, numbers, hyphens, underscores)"
        )
    return trimmed


@dataclass(frozen=True)
class ProfilePaths:
    config_path: Path
    source: ConfigSource
    profile: str | None
    config_dir: Path
    state_dir: Path
    media_dir: Path
    log_dir: Path

    @property
    def profile_label(self) -> str:
        return self.profile or "default"

    @property
    def session_store_path(self) -> Path:
        return self.state_dir / "sessions.json"

    @property
    def log_file(self) -> Path:
        return self.log_dir / "relaybot.log"

    @property
    def tag(self) -> str:
        return f"[profile={self.profile}]" if self.profile else ""


def resolve_profile_paths(
    profile: str | None = None,
    config_path: str | Path | None = None,
    home: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> ProfilePaths:
    """Resolve config and state locations.

    Config precedence: explicit path > ``RELAYBOT_CONFIG_PATH`` > named
    profile (``relaybot.<profile>.json``) > ``relaybot.json``.
    """
    env = os.environ if env is None else env
    home = home or get_home_dir()
    profile = normalize_profile(profile or env.get(PROFILE_ENV))

    source: ConfigSource
    if config_path:
        resolved = Path(config_path).expanduser().resolve()
        source = "flag"
    elif env.get(CONFIG_PATH_ENV):
        resolved = Path(env[CONFIG_PATH_ENV]).expanduser().resolve()
        source = "env"
    elif profile:
        resolved = home / f"relaybot.{profile}.json"
        source = "profile"
    else:
        resolved = home / "relaybot.json"
        source = "legacy"

    tmp_root = Path(tempfile.gettempdir()) / "relaybot"
    return ProfilePaths(
        config_path=resolved,
        source=source,
        profile=profile,
        config_dir=resolved.parent,
        state_dir=home / "state" / profile if profile else home,
        media_dir=home / "media" / profile if profile else home / "media",
        log_dir=tmp_root / profile if profile else tmp_root,
    )
