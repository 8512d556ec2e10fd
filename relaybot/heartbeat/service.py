"""Heartbeat service - periodic synthetic probe through the reply resolver."""

import asyncio
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable

from loguru import logger

from relaybot.auto_reply.reply import resolve_reply
from relaybot.auto_reply.templating import MsgContext
from relaybot.auto_reply.tokens import HEARTBEAT_PROMPT
from relaybot.auto_reply.types import ReplyHooks, ReplyKind, ReplyPayload, ReplyResult, TypingHook
from relaybot.config.runtime import RelayProfile
from relaybot.session.store import refresh_session

DEFAULT_HEARTBEAT_SECONDS = 60

SendCallback = Callable[[str, ReplyPayload], Awaitable[None]]
# Takes (recipient, payload); the provider's normal delivery path
ReplyResolver = Callable[..., Awaitable[ReplyResult]]


class HeartbeatOutcome(str, Enum):
    sent = "sent"
    suppressed = "suppressed"
    empty = "empty"
    skipped = "skipped"  # previous run still in flight
    failed = "failed"
    dry_run = "dry-run"


def resolve_heartbeat_seconds(
    configured_seconds: int | None,
    recipient: str | None,
    override_seconds: int | None = None,
) -> int | None:
    """Override > configured > default (only when a recipient exists) > disabled."""
    candidate = override_seconds if override_seconds is not None else configured_seconds
    if candidate is not None and candidate > 0:
        return candidate
    if recipient:
        return DEFAULT_HEARTBEAT_SECONDS
    return None


class HeartbeatService:
    """
    Periodically pushes a probe message for a fixed recipient through the
    reply resolver.

    A reply that is only the heartbeat token is swallowed and just refreshes
    the recipient's session; anything else is delivered like a normal reply.
    At most one heartbeat runs at a time: a tick that fires while the
    previous one is still running is skipped, never queued.
    """

    def __init__(
        self,
        profile: RelayProfile,
        recipient: str,
        send: SendCallback,
        interval_s: int | None = DEFAULT_HEARTBEAT_SECONDS,
        provider: str = "web",
        resolver: ReplyResolver = resolve_reply,
        on_typing: TypingHook | None = None,
        bot_user_id: str | None = None,
        assistant_label: str | None = None,
        assistant_persona: str | None = None,
        dry_run: bool = False,
    ):
        self.profile = profile
        self.recipient = recipient
        self.send = send
        self.interval_s = interval_s
        self.provider = provider
        self.resolver = resolver
        self.on_typing = on_typing
        self.bot_user_id = bot_user_id
        self.assistant_label = assistant_label
        self.assistant_persona = assistant_persona
        self.dry_run = dry_run
        self._running = False
        self._in_flight = False
        self._task: asyncio.Task | None = None
        self._ticks: set[asyncio.Task] = set()

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def start(self) -> None:
        """Start the heartbeat service."""
        if not self.interval_s:
            logger.info("Heartbeat disabled")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Heartbeat started for {self.recipient} (every {self.interval_s}s)")

    def stop(self) -> None:
        """Stop the heartbeat service."""
        self._running = False
        if self._task:
            self._task.cancel()
            self._task = None
        for task in list(self._ticks):
            task.cancel()

    async def _run_loop(self) -> None:
        """Main heartbeat loop; each tick runs as its own task."""
        while self._running:
            try:
                await asyncio.sleep(self.interval_s)
                if self._running:
                    task = asyncio.create_task(self.tick())
                    self._ticks.add(task)
                    task.add_done_callback(self._ticks.discard)
            except asyncio.CancelledError:
                break

    async def tick(self) -> HeartbeatOutcome:
        """Run one heartbeat unless another is still in flight."""
        if self._in_flight:
            logger.warning(f"Heartbeat for {self.recipient} skipped: previous run still in flight")
            return HeartbeatOutcome.skipped

        self._in_flight = True
        try:
            return await self.run_once()
        finally:
            self._in_flight = False

    def build_context(self) -> MsgContext:
        sent_at = datetime.now(timezone.utc).isoformat()
        return MsgContext(
            body=HEARTBEAT_PROMPT,
            from_=self.recipient,
            to=self.recipient,
            message_sid=f"heartbeat-{sent_at}",
            provider=self.provider,
            assistant_profile=self.profile.label,
            assistant_label=self.assistant_label,
            assistant_persona=self.assistant_persona,
            bot_user_id=self.bot_user_id,
            sender_id=self.recipient,
            sender_name=self.recipient,
            channel_id=self.recipient,
        )

    async def run_once(self, override_body: str | None = None) -> HeartbeatOutcome:
        """Execute a single heartbeat.

        Args:
            override_body: Literal message sent instead of asking the
                resolver (operator-triggered ping). Must not be blank.

        Raises:
            ValueError: *override_body* is given but blank.
        """
        if override_body is not None and not override_body.strip():
            raise ValueError("Override body must be non-empty when provided.")

        if override_body:
            return await self._deliver(ReplyPayload(text=override_body.strip()), reason="manual-message")

        session_cfg = self.profile.config.session
        idle_minutes = session_cfg.heartbeat_idle_minutes if session_cfg else None
        logger.debug(f"Heartbeat: probing reply resolver for {self.recipient}")

        try:
            result = await self.resolver(
                self.build_context(),
                ReplyHooks(on_reply_start=self.on_typing),
                self.profile,
                idle_minutes=idle_minutes,
            )
        except Exception as e:
            logger.error(f"Heartbeat failed for {self.recipient}: {e}")
            return HeartbeatOutcome.failed

        if result.kind == ReplyKind.suppressed:
            if result.session_key:
                try:
                    refresh_session(
                        self.profile.session_store_path,
                        result.session_key,
                        result.session_id,
                        new_session=result.is_new_session,
                    )
                except Exception as e:
                    logger.error(f"Heartbeat session refresh failed for {self.recipient}: {e}")
                    return HeartbeatOutcome.failed
            logger.info("Heartbeat: OK (HEARTBEAT_OK)")
            return HeartbeatOutcome.suppressed

        if result.kind == ReplyKind.empty or result.payload is None or result.payload.is_empty:
            logger.info("Heartbeat: OK (empty reply)")
            return HeartbeatOutcome.empty

        return await self._deliver(result.payload, reason="heartbeat")

    async def _deliver(self, payload: ReplyPayload, reason: str) -> HeartbeatOutcome:
        if self.dry_run:
            logger.info(f"[dry-run] {reason} -> {self.recipient}: {(payload.text or '')[:200]}")
            return HeartbeatOutcome.dry_run
        try:
            await self.send(self.recipient, payload)
        except Exception as e:
            logger.error(f"Heartbeat delivery to {self.recipient} failed: {e}")
            return HeartbeatOutcome.failed
        logger.info(
            f"Heartbeat sent to {self.recipient} ({reason}, "
            f"{len(payload.text or '')} chars, media={payload.has_media})"
        )
        return HeartbeatOutcome.sent
