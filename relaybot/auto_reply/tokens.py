"""Reserved reply tokens: the heartbeat sentinel and MEDIA: lines."""

import re
from dataclasses import dataclass

HEARTBEAT_TOKEN = "HEARTBEAT_OK"
HEARTBEAT_PROMPT = "HEARTBEAT /think:high"

_MEDIA_LINE_RE = re.compile(r"^\s*MEDIA:\s*(\S.*?)\s*$", re.IGNORECASE)


@dataclass
class StrippedReply:
    text: str
    should_skip: bool


def strip_heartbeat_token(raw: str | None) -> StrippedReply:
    """Remove the heartbeat sentinel from reply text.

    Text that is exactly the sentinel (after trimming) should be skipped.
    When the sentinel is mixed into other text it is removed and the rest kept.
    """
    if raw is None:
        return StrippedReply(text="", should_skip=True)
    trimmed = raw.strip()
    if not trimmed:
        return StrippedReply(text="", should_skip=True)
    if HEARTBEAT_TOKEN not in trimmed:
        return StrippedReply(text=trimmed, should_skip=False)
    without = re.sub(r"[ \t]{2,}", " ", trimmed.replace(HEARTBEAT_TOKEN, "")).strip()
    if not without:
        return StrippedReply(text="", should_skip=True)
    return StrippedReply(text=without, should_skip=False)


def split_media_lines(text: str) -> tuple[str, list[str]]:
    """Pull ``MEDIA: <source>`` lines out of command output.

    Returns (remaining_text, sources).
    """
    kept: list[str] = []
    sources: list[str] = []
    for line in text.splitlines():
        match = _MEDIA_LINE_RE.match(line)
        if match:
            sources.append(match.group(1).strip("`\"'"))
        else:
            kept.append(line)
    return "\n".join(kept).strip(), sources
