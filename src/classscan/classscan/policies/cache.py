from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

from ..core.constants import POLICY_CACHE_TTL_SECONDS
from .model import ResolvedPolicy

CacheKey = Tuple[Optional[int], Optional[int]]


class PolicyCache:
    """Resolved policies keyed by (course_id, faculty_id) with a short TTL.

    Owned by PolicyService; every write that can change a resolution must call
    one of the invalidate methods before returning.
    """

    def __init__(self, *, ttl_seconds: float = POLICY_CACHE_TTL_SECONDS):
        self._ttl = timedelta(seconds=ttl_seconds)
        self._entries: Dict[CacheKey, Tuple[ResolvedPolicy, datetime]] = {}
        self._lock = threading.Lock()

    def get(self, course_id: Optional[int], faculty_id: Optional[int], *, now: datetime) -> Optional[ResolvedPolicy]:
        with self._lock:
            entry = self._entries.get((course_id, faculty_id))
            if not entry:
                return None
            policy, expires_at = entry
            if expires_at <= now:
                del self._entries[(course_id, faculty_id)]
                return None
            return policy

    def put(self, course_id: Optional[int], faculty_id: Optional[int], policy: ResolvedPolicy, *, now: datetime) -> None:
        with self._lock:
            self._entries[(course_id, faculty_id)] = (policy, now + self._ttl)

    def invalidate_course(self, course_id: int) -> None:
        with self._lock:
            for key in [k for k in self._entries if k[0] == course_id]:
                del self._entries[key]

    def invalidate_faculty(self, faculty_id: int) -> None:
        with self._lock:
            for key in [k for k in self._entries if k[1] == faculty_id]:
                del self._entries[key]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
