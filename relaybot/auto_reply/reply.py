"""Reply resolution: inbound message context in, reply payload out."""

import asyncio
import json
from dataclasses import replace

from loguru import logger

from relaybot.auto_reply.command import run_command
from relaybot.auto_reply.templating import MsgContext, TemplateContext, apply_template
from relaybot.auto_reply.tokens import split_media_lines, strip_heartbeat_token
from relaybot.auto_reply.transcribe import transcribe_inbound_audio
from relaybot.auto_reply.types import ReplyHooks, ReplyKind, ReplyPayload, ReplyResult, TypingHook
from relaybot.config.runtime import RelayProfile
from relaybot.config.schema import ReplyConfig, SessionConfig
from relaybot.media.store import MediaError, MediaStore
from relaybot.session.store import (
    SessionState,
    derive_session_key,
    evaluate_session,
    load_session_store,
    record_turn,
)

RESET_ACK_TEXT = "Started a new session."


async def resolve_reply(
    ctx: MsgContext,
    hooks: ReplyHooks | None,
    profile: RelayProfile,
    idle_minutes: float | None = None,
    now: int | None = None,
) -> ReplyResult:
    """Resolve one inbound message into a tagged reply result.

    Args:
        ctx: Normalized inbound message (mentions already stripped).
        hooks: Adapter callbacks; ``on_reply_start`` fires before the command runs.
        profile: Config and store locations for this profile.
        idle_minutes: Override for the session idle threshold (heartbeats).
        now: Epoch ms, for deterministic tests.

    Returns:
        ``delivered`` with a payload, ``suppressed`` for a heartbeat
        sentinel reply, or ``empty`` when there is nothing to send.

    Raises:
        CommandTimeout / CommandFailed: the responder command failed.
        MediaError: media could not be resolved and ``media_required`` is set.
    """
    reply_cfg = profile.config.reply
    if reply_cfg is None:
        logger.debug("No reply configured; ignoring inbound message")
        return ReplyResult(kind=ReplyKind.empty)
    hooks = hooks or ReplyHooks()

    ctx = await transcribe_inbound_audio(ctx, profile.config.inbound.transcribe_audio, reply_cfg.cwd)

    session_cfg = reply_cfg.session
    session = _begin_session(ctx, session_cfg, profile, idle_minutes, now)
    tctx = TemplateContext.build(
        ctx,
        body_stripped=session.body_stripped if session else ctx.body.strip(),
        session_id=session.session_id if session else "",
        is_new_session=session.is_new if session else True,
    )

    if session and session.reset_requested and not session.body_stripped:
        record_turn(profile.session_store_path, session, system_sent=False, now=now)
        return _result(ReplyKind.delivered, ReplyPayload(text=RESET_ACK_TEXT), session)

    if reply_cfg.mode == "text":
        return await _resolve_text(reply_cfg, tctx, session, profile, now)
    return await _resolve_command(reply_cfg, session_cfg, tctx, session, hooks, profile, now)


async def get_reply(
    ctx: MsgContext,
    hooks: ReplyHooks | None,
    profile: RelayProfile,
) -> ReplyPayload | None:
    """Payload to deliver, or None for "no reply" (including suppressed heartbeats)."""
    result = await resolve_reply(ctx, hooks, profile)
    if result.kind != ReplyKind.delivered or result.payload is None or result.payload.is_empty:
        return None
    return result.payload


# ── modes ───────────────────────────────────────────────────────


async def _resolve_text(
    reply_cfg: ReplyConfig,
    tctx: TemplateContext,
    session: SessionState | None,
    profile: RelayProfile,
    now: int | None,
) -> ReplyResult:
    body = _with_prefix(reply_cfg.body_prefix, tctx.body)
    payload = ReplyPayload(text=apply_template(reply_cfg.text or "", replace(tctx, body=body)))
    sources = [reply_cfg.media_url] if reply_cfg.media_url else []
    await _attach_media(payload, sources, reply_cfg, profile.media)

    if session:
        record_turn(profile.session_store_path, session, now=now)
    return _result(ReplyKind.empty if payload.is_empty else ReplyKind.delivered, payload, session)


async def _resolve_command(
    reply_cfg: ReplyConfig,
    session_cfg: SessionConfig | None,
    tctx: TemplateContext,
    session: SessionState | None,
    hooks: ReplyHooks,
    profile: RelayProfile,
    now: int | None,
) -> ReplyResult:
    intro = profile.session_intro if _should_send_intro(session_cfg, session) else None
    intro_once = bool(intro) and bool(session_cfg and session_cfg.send_system_once)

    parts = []
    if intro:
        parts.append(apply_template(intro, tctx))
    if reply_cfg.template:
        parts.append(apply_template(reply_cfg.template, tctx))
    parts.append(_with_prefix(reply_cfg.body_prefix, tctx.body_stripped))
    cmd_ctx = tctx.with_body("\n\n".join(p for p in parts if p))

    argv = _build_argv(reply_cfg, session_cfg, session, cmd_ctx)
    logger.info(f"Running reply command {argv[0]} ({len(argv)} args, new_session={cmd_ctx.is_new_session})")

    typing_task = None
    if hooks.on_reply_start:
        await _safe_typing(hooks.on_reply_start)
        typing_task = asyncio.create_task(
            _typing_loop(hooks.on_reply_start, reply_cfg.typing_interval_seconds)
        )
    try:
        result = await run_command(argv, cwd=reply_cfg.cwd, timeout_s=reply_cfg.timeout_seconds)
    finally:
        if typing_task:
            typing_task.cancel()
            try:
                await typing_task
            except asyncio.CancelledError:
                pass

    raw_text, responder_session_id = _interpret_output(result.stdout, reply_cfg.output_format)
    text, sources = split_media_lines(raw_text)
    if reply_cfg.media_url:
        sources.insert(0, reply_cfg.media_url)

    stripped = strip_heartbeat_token(text)
    if stripped.should_skip and text.strip() and not sources:
        logger.info("Reply is the heartbeat token; suppressing delivery")
        if session and responder_session_id:
            session = replace(session, session_id=responder_session_id)
        return _result(ReplyKind.suppressed, None, session)

    payload = ReplyPayload(text=stripped.text or None)
    await _attach_media(payload, sources, reply_cfg, profile.media)

    if session:
        record_turn(
            profile.session_store_path,
            session,
            session_id=responder_session_id,
            system_sent=True if intro_once else None,
            now=now,
        )
        if responder_session_id:
            session = replace(session, session_id=responder_session_id)

    return _result(ReplyKind.empty if payload.is_empty else ReplyKind.delivered, payload, session)


# ── helpers ─────────────────────────────────────────────────────


def _begin_session(
    ctx: MsgContext,
    session_cfg: SessionConfig | None,
    profile: RelayProfile,
    idle_minutes: float | None,
    now: int | None,
) -> SessionState | None:
    if session_cfg is None:
        return None
    key = derive_session_key(session_cfg.scope, ctx)
    store = load_session_store(profile.session_store_path)
    return evaluate_session(
        key,
        ctx.body,
        store,
        session_cfg.reset_triggers,
        idle_minutes or session_cfg.idle_minutes,
        now=now,
    )


def _should_send_intro(session_cfg: SessionConfig | None, session: SessionState | None) -> bool:
    if session_cfg is None or session is None:
        return False
    if session_cfg.send_system_once:
        return not session.system_sent
    return session.is_new


def _build_argv(
    reply_cfg: ReplyConfig,
    session_cfg: SessionConfig | None,
    session: SessionState | None,
    cmd_ctx: TemplateContext,
) -> list[str]:
    argv = [apply_template(part, cmd_ctx) for part in reply_cfg.command or []]
    if session is None or session_cfg is None:
        return argv

    template_args = session_cfg.session_arg_new if session.is_new else session_cfg.session_arg_resume
    session_args = [apply_template(part, cmd_ctx) for part in template_args]
    if not session_args:
        return argv
    if session_cfg.session_arg_before_body and len(argv) > 1:
        return argv[:-1] + session_args + argv[-1:]
    return argv + session_args


def _with_prefix(prefix: str | None, body: str) -> str:
    return f"{prefix}{body}" if prefix else body


def _interpret_output(stdout: str, output_format: str) -> tuple[str, str | None]:
    """Return (reply_text, responder_session_id)."""
    if output_format != "json":
        return stdout.strip(), None
    try:
        data = json.loads(stdout)
    except json.JSONDecodeError:
        logger.warning("Command output is not valid JSON; using raw text")
        return stdout.strip(), None
    if not isinstance(data, dict):
        return stdout.strip(), None

    text = data.get("result")
    if text is None:
        text = data.get("text", "")
    session_id = data.get("session_id") or data.get("sessionId")
    return str(text).strip(), str(session_id) if session_id else None


async def _attach_media(
    payload: ReplyPayload,
    sources: list[str],
    reply_cfg: ReplyConfig,
    store: MediaStore,
) -> None:
    resolved: list[str] = []
    for source in sources:
        try:
            saved = await store.save(source)
        except MediaError as e:
            if reply_cfg.media_required:
                raise
            logger.warning(f"Media {source} unavailable, replying without it: {e}")
            continue
        resolved.append(str(saved.path))

    if resolved:
        payload.media_url = resolved[0]
        payload.media_urls = resolved


async def _safe_typing(hook: TypingHook) -> None:
    try:
        await hook()
    except Exception as e:
        logger.debug(f"Typing hook failed (ignored): {e}")


async def _typing_loop(hook: TypingHook, interval_s: float) -> None:
    while True:
        await asyncio.sleep(interval_s)
        await _safe_typing(hook)


def _result(kind: ReplyKind, payload: ReplyPayload | None, session: SessionState | None) -> ReplyResult:
    return ReplyResult(
        kind=kind,
        payload=payload,
        session_key=session.key if session else None,
        session_id=session.session_id if session else None,
        is_new_session=session.is_new if session else True,
    )
