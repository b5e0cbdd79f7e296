"""Client-side helpers: draft persistence, offline write queue and API client."""

from .drafts import DraftStore
from .http import AdmissionsClient
from .queue import OfflineQueue, QueuedWrite, ReplayResult

__all__ = ["AdmissionsClient", "DraftStore", "OfflineQueue", "QueuedWrite", "ReplayResult"]
