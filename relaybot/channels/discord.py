"""Discord adapter helpers (pure; the gateway client lives elsewhere)."""

import re
from dataclasses import dataclass, field

from relaybot.auto_reply.templating import MsgContext
from relaybot.auto_reply.types import ReplyPayload
from relaybot.config.schema import DiscordConfig
from relaybot.heartbeat.service import resolve_heartbeat_seconds

DISCORD_MAX_MESSAGE_LENGTH = 2000


@dataclass
class DiscordMessage:
    """A Discord message after platform normalization."""

    user_id: str
    channel_id: str
    message_id: str
    content: str
    guild_id: str | None = None
    user_tag: str = ""
    is_dm: bool = False
    is_mention: bool = False
    thread_id: str | None = None
    mention_user_ids: list[str] = field(default_factory=list)


def strip_bot_mention(content: str, bot_user_id: str) -> str:
    """Remove ``<@id>`` / ``<@!id>`` mentions of the bot and tidy whitespace."""
    cleaned = re.sub(rf"<@!?{re.escape(bot_user_id)}>", "", content)
    return re.sub(r"\s+", " ", cleaned).strip()


def chunk_message(text: str, limit: int = DISCORD_MAX_MESSAGE_LENGTH) -> list[str]:
    """Split *text* into pieces no longer than *limit*.

    Prefers newline boundaries, then spaces, then a hard cut.
    """
    if not text:
        return []
    chunks: list[str] = []
    remaining = text
    while len(remaining) > limit:
        split_at = remaining.rfind("\n", 0, limit)
        if split_at <= 0:
            split_at = remaining.rfind(" ", 0, limit)
        if split_at <= 0:
            split_at = limit
        chunks.append(remaining[:split_at].rstrip())
        remaining = remaining[split_at:].lstrip()
    if remaining:
        chunks.append(remaining)
    return chunks


def is_allowed(msg: DiscordMessage, config: DiscordConfig) -> bool:
    """Apply mention-only mode and the user/channel/guild allow-lists."""
    if not msg.is_dm and config.mention_only and not msg.is_mention:
        return False
    if config.allowed_users and msg.user_id not in config.allowed_users:
        return False
    if config.allowed_channels and msg.channel_id not in config.allowed_channels:
        return False
    if msg.guild_id and config.allowed_guilds and msg.guild_id not in config.allowed_guilds:
        return False
    return True


def to_msg_context(
    msg: DiscordMessage,
    bot_user_id: str | None = None,
    config: DiscordConfig | None = None,
) -> MsgContext:
    content = msg.content
    if bot_user_id and msg.is_mention and not msg.is_dm:
        content = strip_bot_mention(content, bot_user_id)
    return MsgContext(
        body=content,
        from_=msg.user_id,
        to=msg.channel_id,
        message_sid=msg.message_id,
        provider="discord",
        assistant_label=config.assistant_label if config else None,
        assistant_persona=config.assistant_persona if config else None,
        bot_user_id=bot_user_id,
        sender_id=msg.user_id,
        sender_name=msg.user_tag or msg.user_id,
        guild_id=msg.guild_id,
        channel_id=msg.channel_id,
        thread_id=msg.thread_id,
        message_id=msg.message_id,
        is_mentioned=msg.is_mention,
        raw_mentions=tuple(msg.mention_user_ids),
    )


def outbound_chunks(payload: ReplyPayload) -> list[tuple[str, list[str]]]:
    """(content, files) sends for a payload; files ride on the first chunk."""
    chunks = chunk_message(payload.text or "")
    files = payload.media
    if not chunks:
        return [("", files)] if files else []
    return [(chunk, files if i == 0 else []) for i, chunk in enumerate(chunks)]


def resolve_discord_heartbeat_seconds(config: DiscordConfig, override_seconds: int | None = None) -> int | None:
    return resolve_heartbeat_seconds(config.heartbeat_seconds, config.heartbeat_user_id, override_seconds)
