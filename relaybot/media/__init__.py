"""Local media cache."""

from relaybot.media.store import (
    MediaError,
    MediaFetchFailed,
    MediaNotAFile,
    MediaStore,
    MediaTooLarge,
    SavedMedia,
)

__all__ = [
    "MediaError",
    "MediaFetchFailed",
    "MediaNotAFile",
    "MediaStore",
    "MediaTooLarge",
    "SavedMedia",
]
