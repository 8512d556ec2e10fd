"""The per-profile runtime object handed to every engine call."""

from dataclasses import dataclass
from pathlib import Path

from relaybot.config.loader import load_config, resolve_session_intro
from relaybot.config.paths import ProfilePaths, resolve_profile_paths
from relaybot.config.schema import Config
from relaybot.media.store import MediaStore
from relaybot.session.store import resolve_store_path


@dataclass
class RelayProfile:
    """Config plus resolved locations for one profile.

    Several profiles can live in one process; the engine never reads
    ambient global state.
    """

    config: Config
    paths: ProfilePaths
    media: MediaStore | None = None

    def __post_init__(self) -> None:
        if self.media is None:
            reply = self.config.reply
            max_mb = reply.media_max_mb if reply else 5
            self.media = MediaStore(
                self.paths.media_dir,
                max_bytes=int(max_mb * 1024 * 1024),
                ttl_s=self.config.media.ttl_seconds,
            )

    @classmethod
    def load(
        cls,
        profile: str | None = None,
        config_path: str | Path | None = None,
        home: Path | None = None,
    ) -> "RelayProfile":
        """Resolve paths and load the config. Raises ConfigInvalid."""
        paths = resolve_profile_paths(profile=profile, config_path=config_path, home=home)
        return cls(config=load_config(paths.config_path), paths=paths)

    @property
    def label(self) -> str:
        return self.paths.profile_label

    @property
    def session_store_path(self) -> Path:
        session_cfg = self.config.session
        return resolve_store_path(
            session_cfg.store if session_cfg else None,
            self.paths.session_store_path,
        )

    @property
    def session_intro(self) -> str | None:
        return resolve_session_intro(self.config.session, self.paths.config_dir)
