"""Optional inbound audio transcription through an external CLI."""

from loguru import logger

from relaybot.auto_reply.command import CommandError, run_command
from relaybot.auto_reply.templating import MsgContext, TemplateContext, apply_template
from relaybot.config.schema import TranscribeAudioConfig


def is_audio(ctx: MsgContext) -> bool:
    return bool(ctx.media_path and ctx.media_type and ctx.media_type.lower().startswith("audio"))


async def transcribe_inbound_audio(
    ctx: MsgContext,
    cfg: TranscribeAudioConfig | None,
    cwd: str | None = None,
) -> MsgContext:
    """Replace the body of an audio message with its transcript.

    Returns *ctx* unchanged when transcription is not configured, does not
    apply, or fails.
    """
    if cfg is None or not is_audio(ctx):
        return ctx

    tctx = TemplateContext.build(ctx)
    argv = [apply_template(part, tctx) for part in cfg.command]
    try:
        result = await run_command(argv, cwd=cwd, timeout_s=cfg.timeout_seconds)
    except CommandError as e:
        logger.warning(f"Audio transcription failed, keeping original body: {e}")
        return ctx

    transcript = result.stdout.strip()
    if not transcript:
        logger.warning("Audio transcription returned no text")
        return ctx

    logger.info(f"Transcribed audio ({len(transcript)} chars)")
    return ctx.with_body(transcript, transcript=transcript)
