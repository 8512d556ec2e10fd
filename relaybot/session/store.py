"""Durable per-conversation session state.

The store is a single JSON object per profile::

    {
      "+15551234567": {
        "sessionId": "5d0f...",
        "createdAt": 1760000000000,
        "updatedAt": 1760000300000,
        "systemSent": true
      }
    }

Timestamps are epoch milliseconds. Expiry is evaluated lazily, only when a
key is touched by a new turn.
"""

import json
import os
import tempfile
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

from loguru import logger

from relaybot.auto_reply.templating import MsgContext

SessionScope = Literal["per-sender", "global"]

DEFAULT_IDLE_MINUTES = 60
DEFAULT_RESET_TRIGGERS = ["/new"]
GLOBAL_SESSION_KEY = "global"


class SessionStoreCorrupt(Exception):
    """The persisted store exists but cannot be parsed."""


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class SessionEntry:
    session_id: str
    created_at: int
    updated_at: int
    system_sent: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "systemSent": self.system_sent,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SessionEntry":
        updated_at = int(data.get("updatedAt") or 0)
        return cls(
            session_id=str(data["sessionId"]),
            created_at=int(data.get("createdAt") or updated_at),
            updated_at=updated_at,
            system_sent=bool(data.get("systemSent", False)),
        )


SessionMap = dict[str, SessionEntry]


# ── key derivation ──────────────────────────────────────────────


def derive_session_key(scope: SessionScope, ctx: MsgContext) -> str:
    """Map a message to its conversation key. Pure."""
    if scope == "global":
        return GLOBAL_SESSION_KEY
    sender = (ctx.from_ or "").strip()
    if sender.lower().startswith("whatsapp:"):
        sender = sender[len("whatsapp:"):]
    return sender or "unknown"


# ── persistence ─────────────────────────────────────────────────


def resolve_store_path(store: str | None, default: Path) -> Path:
    """Configured store override (``~`` expanded) or the profile default."""
    if store:
        return Path(store).expanduser()
    return default


def read_session_store(path: Path) -> SessionMap:
    """Strict read. Missing file is empty; anything unparseable raises."""
    if not path.exists():
        return {}
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise SessionStoreCorrupt(f"Cannot read session store {path}: {e}") from e
    if not isinstance(raw, dict):
        raise SessionStoreCorrupt(f"Session store {path} is not a JSON object")

    store: SessionMap = {}
    for key, value in raw.items():
        try:
            store[key] = SessionEntry.from_dict(value)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise SessionStoreCorrupt(f"Bad session entry {key!r} in {path}: {e}") from e
    return store


def load_session_store(path: Path) -> SessionMap:
    """Read the store, degrading to an empty mapping on any failure."""
    try:
        return read_session_store(path)
    except SessionStoreCorrupt as e:
        logger.warning(f"{e}; starting with no prior sessions")
        return {}


def save_session_store(path: Path, store: SessionMap) -> None:
    """Atomically replace the store file (temp file in the same dir + rename)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    data = {key: entry.to_dict() for key, entry in store.items()}

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


# ── reset / idle policy ─────────────────────────────────────────


def match_reset_trigger(body: str, triggers: list[str]) -> tuple[bool, str]:
    """Return (matched, remaining_body).

    A trigger matches the whole trimmed body, or a prefix followed by a space.
    """
    trimmed = body.strip()
    for trigger in triggers:
        if not trigger:
            continue
        if trimmed == trigger:
            return True, ""
        if trimmed.startswith(trigger + " "):
            return True, trimmed[len(trigger):].strip()
    return False, trimmed


def is_expired(entry: SessionEntry, idle_minutes: float, now: int) -> bool:
    return now - entry.updated_at > idle_minutes * 60_000


@dataclass
class SessionState:
    """Session view for one resolution."""

    key: str
    session_id: str
    is_new: bool
    body_stripped: str
    entry: SessionEntry | None = None  # the live entry being resumed, if any
    reset_requested: bool = False

    @property
    def system_sent(self) -> bool:
        return bool(self.entry and self.entry.system_sent)


def evaluate_session(
    key: str,
    body: str,
    store: SessionMap,
    reset_triggers: list[str],
    idle_minutes: float,
    now: int | None = None,
) -> SessionState:
    """Decide between resuming and starting a session for *key*.

    Expired or reset entries are discarded from *store* (in memory only);
    the caller persists the new entry once the turn succeeds.
    """
    now = now_ms() if now is None else now
    reset, stripped = match_reset_trigger(body, reset_triggers)
    entry = store.get(key)

    if entry is not None and (reset or is_expired(entry, idle_minutes, now)):
        reason = "reset trigger" if reset else f"idle > {idle_minutes:g}m"
        logger.info(f"Session {entry.session_id} for {key} ended ({reason})")
        store.pop(key, None)
        entry = None

    if entry is None:
        return SessionState(
            key=key,
            session_id=str(uuid.uuid4()),
            is_new=True,
            body_stripped=stripped,
            reset_requested=reset,
        )
    return SessionState(
        key=key,
        session_id=entry.session_id,
        is_new=False,
        body_stripped=stripped,
        entry=entry,
        reset_requested=reset,
    )


def record_turn(
    path: Path,
    state: SessionState,
    session_id: str | None = None,
    system_sent: bool | None = None,
    now: int | None = None,
) -> SessionEntry:
    """Persist a completed turn: refresh ``updatedAt`` and write the entry.

    Re-reads the store right before writing so that turns for other keys
    persisted in the meantime are kept.
    """
    now = now_ms() if now is None else now
    store = load_session_store(path)
    previous = state.entry
    entry = SessionEntry(
        session_id=session_id or state.session_id,
        created_at=previous.created_at if previous else now,
        updated_at=now,
        system_sent=state.system_sent if system_sent is None else system_sent,
    )
    store[state.key] = entry
    save_session_store(path, store)
    return entry


def refresh_session(
    path: Path,
    key: str,
    session_id: str | None = None,
    new_session: bool = False,
    now: int | None = None,
) -> SessionEntry | None:
    """Bump ``updatedAt`` for *key*, creating the entry when a session id is known.

    With *new_session* the stored entry (expired or reset on disk) is
    replaced by a fresh one for *session_id*.
    """
    now = now_ms() if now is None else now
    store = load_session_store(path)
    entry = store.get(key)
    if entry is None or (new_session and session_id):
        if not session_id:
            return None
        entry = SessionEntry(session_id=session_id, created_at=now, updated_at=now)
    else:
        entry.updated_at = now
        if session_id:
            entry.session_id = session_id
    store[key] = entry
    save_session_store(path, store)
    return entry


def list_sessions(path: Path) -> list[dict[str, Any]]:
    """Entries sorted by ``updatedAt`` descending, for display."""
    store = load_session_store(path)
    rows = [{"key": key, **entry.to_dict()} for key, entry in store.items()]
    return sorted(rows, key=lambda r: r["updatedAt"], reverse=True)
