"""Adapter-facing inbound handling: resolve, deliver, never crash the host."""

from typing import Awaitable, Callable

from loguru import logger

from relaybot.auto_reply.reply import get_reply
from relaybot.auto_reply.templating import MsgContext
from relaybot.auto_reply.types import ReplyHooks, ReplyPayload, TypingHook
from relaybot.config.runtime import RelayProfile

DeliverCallback = Callable[[ReplyPayload], Awaitable[None]]


def is_sender_allowed(ctx: MsgContext, allow_from: list[str]) -> bool:
    """Empty allow-list admits everyone; entries are compared without ``whatsapp:``."""
    if not allow_from:
        return True
    sender = (ctx.from_ or "").strip()
    if sender.lower().startswith("whatsapp:"):
        sender = sender[len("whatsapp:"):]
    return sender in allow_from


async def handle_inbound(
    ctx: MsgContext,
    profile: RelayProfile,
    send: DeliverCallback,
    on_reply_start: TypingHook | None = None,
) -> bool:
    """Resolve a reply for *ctx* and hand it to *send*.

    Returns True when a reply was delivered. Any failure (command timeout,
    non-zero exit, mandatory media, delivery error) is logged and reported
    as False.
    """
    source = ctx.from_ or "unknown"
    if not is_sender_allowed(ctx, profile.config.inbound.allow_from):
        logger.info(f"Ignoring {source}: not in inbound.allowFrom")
        return False

    logger.info(f"Inbound {ctx.provider or 'message'} from {source} ({len(ctx.body)} chars)")

    try:
        payload = await get_reply(ctx, ReplyHooks(on_reply_start=on_reply_start), profile)
        if payload is None:
            logger.debug(f"No reply for {source}")
            return False
        await send(payload)
    except Exception as e:
        logger.error(f"Reply to {source} failed: {e}")
        return False

    logger.info(
        f"Reply sent to {source} ({len(payload.text or '')} chars, media={payload.has_media})"
    )
    return True
