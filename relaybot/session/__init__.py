"""Per-conversation session store."""

from relaybot.session.store import (
    SessionEntry,
    SessionStoreCorrupt,
    derive_session_key,
    load_session_store,
    save_session_store,
)

__all__ = [
    "SessionEntry",
    "SessionStoreCorrupt",
    "derive_session_key",
    "load_session_store",
    "save_session_store",
]
