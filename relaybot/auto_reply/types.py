"""Reply payloads, hooks and the tagged resolution result."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable

TypingHook = Callable[[], Awaitable[None]]


@dataclass
class ReplyPayload:
    """Output of one turn: text and/or media, ready for platform delivery."""

    text: str | None = None
    media_url: str | None = None
    media_urls: list[str] = field(default_factory=list)

    @property
    def media(self) -> list[str]:
        """All attachments, single ``media_url`` first."""
        items = [self.media_url] if self.media_url else []
        return items + [u for u in self.media_urls if u and u != self.media_url]

    @property
    def has_media(self) -> bool:
        return bool(self.media)

    @property
    def is_empty(self) -> bool:
        """A payload with neither text nor media means "no reply"."""
        return not self.text and not self.has_media


@dataclass
class ReplyHooks:
    """Adapter callbacks invoked during resolution. Failures are always swallowed."""

    on_reply_start: TypingHook | None = None


class ReplyKind(str, Enum):
    delivered = "delivered"
    suppressed = "suppressed"  # heartbeat sentinel, nothing user-visible
    empty = "empty"


@dataclass
class ReplyResult:
    """Tagged result of :func:`relaybot.auto_reply.reply.resolve_reply`.

    ``session_key`` / ``session_id`` are set whenever session tracking is
    enabled, so a caller that receives ``suppressed`` can still refresh
    the session's idle clock.
    """

    kind: ReplyKind
    payload: ReplyPayload | None = None
    session_key: str | None = None
    session_id: str | None = None
    is_new_session: bool = False

    @property
    def delivered(self) -> bool:
        return self.kind == ReplyKind.delivered
