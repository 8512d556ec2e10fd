"""Auto-reply engine: templating, reply types and reserved tokens.

The resolver itself lives in :mod:`relaybot.auto_reply.reply`.
"""

from relaybot.auto_reply.templating import MsgContext, TemplateContext, apply_template
from relaybot.auto_reply.tokens import HEARTBEAT_PROMPT, HEARTBEAT_TOKEN, strip_heartbeat_token
from relaybot.auto_reply.types import ReplyHooks, ReplyKind, ReplyPayload, ReplyResult

__all__ = [
    "MsgContext",
    "TemplateContext",
    "apply_template",
    "HEARTBEAT_PROMPT",
    "HEARTBEAT_TOKEN",
    "strip_heartbeat_token",
    "ReplyHooks",
    "ReplyKind",
    "ReplyPayload",
    "ReplyResult",
]
