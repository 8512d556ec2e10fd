"""Configuration schema using Pydantic."""

from typing import Literal

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LoggingConfig(BaseModel):
    """Process logging configuration."""
    level: Literal["silent", "fatal", "error", "warn", "info", "debug", "trace"] = "info"
    file: str | None = None  # Optional log file; defaults to the profile log dir


class SessionConfig(BaseModel):
    """Conversation session policy for command replies."""
    scope: Literal["per-sender", "global"] = "per-sender"
    reset_triggers: list[str] = Field(default_factory=lambda: ["/new"])
    idle_minutes: int = Field(default=60, gt=0)
    heartbeat_idle_minutes: int | None = Field(default=None, gt=0)
    store: str | None = None  # Override path for sessions.json
    session_arg_new: list[str] = Field(default_factory=lambda: ["--session-id", "{{SessionId}}"])
    session_arg_resume: list[str] = Field(default_factory=lambda: ["--resume", "{{SessionId}}"])
    session_arg_before_body: bool = True
    send_system_once: bool = False
    session_intro: str | None = None
    session_intro_path: str | None = None  # Relative to the config file's directory


class ReplyConfig(BaseModel):
    """How inbound messages are answered."""
    mode: Literal["text", "command"]
    text: str | None = None  # mode=text, may contain {{Body}}
    command: list[str] | None = None  # mode=command, argv with templates
    cwd: str | None = None
    template: str | None = None  # Rendered and prepended to the command body
    timeout_seconds: int = Field(default=600, gt=0)
    body_prefix: str | None = None
    media_url: str | None = None  # Static attachment (path or URL)
    media_required: bool = False  # Fail the turn instead of degrading to text-only
    media_max_mb: float = Field(default=5, gt=0)
    output_format: Literal["text", "json"] = "text"
    typing_interval_seconds: int = Field(default=8, gt=0)
    session: SessionConfig | None = None

    @model_validator(mode="after")
    def _require_mode_payload(self) -> "ReplyConfig":
        if self.mode == "text" and not self.text:
            raise ValueError("reply.text is required for mode=text")
        if self.mode == "command" and not self.command:
            raise ValueError("reply.command is required for mode=command")
        return self


class TranscribeAudioConfig(BaseModel):
    """Optional CLI that turns inbound audio into text (stdout)."""
    command: list[str]
    timeout_seconds: int = Field(default=45, gt=0)


class InboundConfig(BaseModel):
    """Inbound message handling."""
    allow_from: list[str] = Field(default_factory=list)
    transcribe_audio: TranscribeAudioConfig | None = None
    reply: ReplyConfig | None = None


class WebConfig(BaseModel):
    """WhatsApp Web provider configuration."""
    heartbeat_seconds: int | None = Field(default=None, gt=0)
    heartbeat_recipient: str | None = None


class DiscordConfig(BaseModel):
    """Discord provider configuration."""
    bot_token: str = ""
    allowed_users: list[str] = Field(default_factory=list)
    allowed_channels: list[str] = Field(default_factory=list)
    allowed_guilds: list[str] = Field(default_factory=list)
    mention_only: bool = True
    reply_in_thread: bool = True
    assistant_label: str | None = None
    assistant_persona: str | None = None
    heartbeat_seconds: int | None = Field(default=None, gt=0)
    heartbeat_user_id: str | None = None


class MediaConfig(BaseModel):
    """Local media cache."""
    ttl_seconds: int = Field(default=120, gt=0)


class Config(BaseSettings):
    """Root configuration for relaybot."""
    model_config = SettingsConfigDict(env_prefix="RELAYBOT_", env_nested_delimiter="__")

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    inbound: InboundConfig = Field(default_factory=InboundConfig)
    web: WebConfig = Field(default_factory=WebConfig)
    discord: DiscordConfig = Field(default_factory=DiscordConfig)
    media: MediaConfig = Field(default_factory=MediaConfig)

    @property
    def reply(self) -> ReplyConfig | None:
        return self.inbound.reply

    @property
    def session(self) -> SessionConfig | None:
        return self.inbound.reply.session if self.inbound.reply else None
