from __future__ import annotations

from journey.core.ids import IdsService
from journey.features.storage.service import KeyValueStore

USER_ID_KEY = "user_id"
VISITOR_TYPE_KEY = "visitor_type"
LAST_VISIT_KEY = "last_visit"

VISITOR_NEW = "new"
VISITOR_RETURNING = "returning"


class IdentityService:
    """
    Owns the persistent user id and hands out per-process session ids.

    The store is expected to degrade on its own (see FallbackKeyValueStore), so the
    identifiers returned here are always usable even without working storage.
    """

    def __init__(self, *, store: KeyValueStore, ids: IdsService) -> None:
        self._store = store
        self._ids = ids

    def ensure_user_id(self) -> str:
        user_id = self._store.get(USER_ID_KEY)
        if user_id:
            return user_id
        user_id = self._ids.unique("user")
        self._store.set(USER_ID_KEY, user_id)
        return user_id

    def new_session_id(self) -> str:
        return self._ids.unique("session")

    def reset_identity(self) -> None:
        self._store.remove(USER_ID_KEY)

    # ----------------------------
    # visitor bookkeeping
    # ----------------------------
    def visitor_type(self) -> str | None:
        return self._store.get(VISITOR_TYPE_KEY)

    def set_visitor_type(self, kind: str) -> None:
        if kind not in (VISITOR_NEW, VISITOR_RETURNING):
            raise ValueError(f"Unsupported visitor type={kind!r}")
        self._store.set(VISITOR_TYPE_KEY, kind)

    def last_visit_ms(self) -> int | None:
        raw = self._store.get(LAST_VISIT_KEY)
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError:
            # unreadable timestamp counts as no previous visit
            return None

    def record_visit(self, now_ms: int) -> None:
        self._store.set(LAST_VISIT_KEY, str(int(now_ms)))
