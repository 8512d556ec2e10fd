"""Message contexts and {{Placeholder}} interpolation."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from typing import Any

_PLACEHOLDER_RE = re.compile(r"{{\s*(\w+)\s*}}")


@dataclass(frozen=True)
class MsgContext:
    """Read-only view of one inbound event, as produced by a provider adapter."""

    body: str = ""
    from_: str = ""  # sender address, e.g. whatsapp:+15551234567 or a Discord user id
    to: str = ""
    message_sid: str | None = None
    media_path: str | None = None
    media_url: str | None = None
    media_type: str | None = None
    transcript: str | None = None
    provider: str | None = None  # "web" | "twilio" | "discord"
    assistant_profile: str | None = None
    assistant_label: str | None = None
    assistant_persona: str | None = None
    bot_user_id: str | None = None
    sender_id: str | None = None
    sender_name: str | None = None
    guild_id: str | None = None
    channel_id: str | None = None
    thread_id: str | None = None
    message_id: str | None = None
    is_mentioned: bool | None = None
    raw_mentions: tuple[str, ...] = field(default_factory=tuple)

    def with_body(self, body: str, transcript: str | None = None) -> "MsgContext":
        """Return a copy with a replaced body (and optionally transcript)."""
        if transcript is None:
            return replace(self, body=body)
        return replace(self, body=body, transcript=transcript)


@dataclass(frozen=True)
class TemplateContext:
    """MsgContext plus the fields derived during one resolution. Never persisted."""

    msg: MsgContext
    body: str = ""
    body_stripped: str = ""
    session_id: str = ""
    is_new_session: bool = False

    @classmethod
    def build(
        cls,
        msg: MsgContext,
        body_stripped: str | None = None,
        session_id: str = "",
        is_new_session: bool = False,
    ) -> "TemplateContext":
        return cls(
            msg=msg,
            body=msg.body,
            body_stripped=msg.body.strip() if body_stripped is None else body_stripped,
            session_id=session_id,
            is_new_session=is_new_session,
        )

    def with_body(self, body: str) -> "TemplateContext":
        """Swap the rendered Body/BodyStripped (used once prefixes are applied)."""
        return replace(self, body=body, body_stripped=body)

    def fields(self) -> dict[str, Any]:
        """Closed mapping of placeholder name -> value."""
        values = {name: getattr(self.msg, attr) for name, attr in MSG_FIELDS.items()}
        values.update(
            Body=self.body,
            BodyStripped=self.body_stripped,
            SessionId=self.session_id,
            IsNewSession=self.is_new_session,
        )
        return values


# Placeholder names follow the inbound wire format; attributes are snake_case.
MSG_FIELDS: dict[str, str] = {
    "Body": "body",
    "From": "from_",
    "To": "to",
    "MessageSid": "message_sid",
    "MediaPath": "media_path",
    "MediaUrl": "media_url",
    "MediaType": "media_type",
    "Transcript": "transcript",
    "provider": "provider",
    "assistantProfile": "assistant_profile",
    "assistantLabel": "assistant_label",
    "assistantPersona": "assistant_persona",
    "botUserId": "bot_user_id",
    "senderId": "sender_id",
    "senderName": "sender_name",
    "guildId": "guild_id",
    "channelId": "channel_id",
    "threadId": "thread_id",
    "messageId": "message_id",
    "isMentioned": "is_mentioned",
    "rawMentions": "raw_mentions",
}


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(_stringify(v) for v in value)
    return str(value)


def apply_template(template: str, ctx: TemplateContext | dict[str, Any]) -> str:
    """Replace every ``{{ Name }}`` with the matching context field.

    Unknown or null fields render as the empty string. Substitution is
    literal and single-pass: values that themselves contain placeholders
    are not expanded again.
    """
    values = ctx.fields() if isinstance(ctx, TemplateContext) else ctx
    return _PLACEHOLDER_RE.sub(lambda m: _stringify(values.get(m.group(1))), template)
