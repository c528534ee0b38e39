"""
Client-side active family selection.

The active family is a per-session hint for which family id to send with
requests. It carries no authority: the server re-checks membership on every
request, and the selector re-validates the persisted preference against the
freshly fetched family list each time it resolves.
"""

from __future__ import annotations

import json
import os
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

import httpx

ACTIVE_FAMILY_KEY = "active-family-id"


class PreferenceStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryPreferenceStore:
    def __init__(self, initial: dict[str, str] | None = None):
        self._values: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def delete(self, key: str) -> None:
        self._values.pop(key, None)


class JsonFilePreferenceStore:
    """Key-value preferences persisted as a small JSON object on disk."""

    def __init__(self, path: str | os.PathLike[str]):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> dict[str, str]:
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError:
            # A corrupt preference file is only a lost hint.
            return {}
        return {str(k): str(v) for k, v in data.items()} if isinstance(data, dict) else {}

    def _write(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8") as handle:
            json.dump(data, handle, separators=(",", ":"))
        os.replace(tmp, self.path)

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)

    def delete(self, key: str) -> None:
        with self._lock:
            data = self._read()
            if key in data:
                del data[key]
                self._write(data)


@dataclass(frozen=True)
class FamilySummary:
    id: int
    name: str
    created_at: datetime

    @classmethod
    def from_api(cls, item: dict[str, Any]) -> "FamilySummary":
        return cls(id=int(item["id"]), name=item["name"], created_at=datetime.fromisoformat(item["created_at"]))


class ActiveFamilySelector:
    """
    Two states: unresolved (`active_family_id is None`) and resolved.

    `fetch_families` returns the caller's current families; it is the only
    network-bound step. Ordering for the default pick is by creation time,
    oldest first, whatever order the source returns.
    """

    def __init__(
        self,
        store: PreferenceStore,
        fetch_families: Callable[[], Sequence[FamilySummary]],
        key: str = ACTIVE_FAMILY_KEY,
    ):
        self._store = store
        self._fetch_families = fetch_families
        self._key = key
        self._families: list[FamilySummary] = []
        self._active_id: int | None = None

    @property
    def active_family_id(self) -> int | None:
        return self._active_id

    @property
    def is_resolved(self) -> bool:
        return self._active_id is not None

    @property
    def families(self) -> list[FamilySummary]:
        return list(self._families)

    @property
    def active_family(self) -> FamilySummary | None:
        return next((f for f in self._families if f.id == self._active_id), None)

    def _stored_id(self) -> int | None:
        raw = self._store.get(self._key)
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError:
            return None

    def start(self) -> int | None:
        families = sorted(self._fetch_families(), key=lambda f: (f.created_at, f.id))
        self._families = families
        if not families:
            self._active_id = None
            return None

        ids = {f.id for f in families}
        stored = self._stored_id()
        if stored in ids:
            self._active_id = stored
        else:
            self._active_id = families[0].id
            self._store.set(self._key, str(self._active_id))
        return self._active_id

    def switch(self, family_id: int) -> int:
        if family_id not in {f.id for f in self._families}:
            raise ValueError(f"family {family_id} is not one of the current families")
        self._active_id = family_id
        self._store.set(self._key, str(family_id))
        return family_id

    def on_family_removed(self) -> int | None:
        """Call after the active family was deleted or left."""
        return self.start()

    def clear(self) -> None:
        self._families = []
        self._active_id = None


class NoActiveFamilyError(RuntimeError):
    pass


class FamilySession:
    """
    Session-scoped API client bound to one authenticated user.

    Create it after authentication and `close()` it on sign-out. `http` is any
    `httpx.Client` pointed at the API (a `TestClient` works too); identity is
    sent with the dev/forward-auth header the API expects.
    """

    def __init__(
        self,
        http: httpx.Client,
        user_id: str,
        store: PreferenceStore,
        *,
        display_name: str | None = None,
        identity_header: str = "X-Forwarded-User",
        name_header: str = "X-Forwarded-Name",
    ):
        self._http = http
        self._headers = {identity_header: user_id}
        if display_name:
            self._headers[name_header] = display_name
        self.user_id = user_id
        self.selector = ActiveFamilySelector(store, self._fetch_families)

    def _fetch_families(self) -> list[FamilySummary]:
        resp = self._http.get("/v1/families", headers=self._headers)
        resp.raise_for_status()
        return [FamilySummary.from_api(item) for item in resp.json()["items"]]

    @property
    def active_family_id(self) -> int | None:
        return self.selector.active_family_id

    def start(self) -> int | None:
        return self.selector.start()

    def switch(self, family_id: int) -> int:
        return self.selector.switch(family_id)

    def request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send a request; `{family_id}` in `path` is filled with the active family."""
        if "{family_id}" in path:
            if self.active_family_id is None:
                raise NoActiveFamilyError("no active family selected")
            path = path.replace("{family_id}", str(self.active_family_id))
        headers = {**kwargs.pop("headers", {}), **self._headers}
        return self._http.request(method, path, headers=headers, **kwargs)

    def join(self, invite_code: str) -> httpx.Response:
        resp = self.request("POST", "/v1/invites/join", json={"invite_code": invite_code})
        if resp.is_success:
            # Keep the current selection, but pick up the new family list.
            self.selector.start()
        return resp

    def leave(self) -> httpx.Response:
        resp = self.request("POST", "/v1/families/{family_id}/leave")
        if resp.is_success:
            self.selector.on_family_removed()
        return resp

    def delete(self) -> httpx.Response:
        resp = self.request("DELETE", "/v1/families/{family_id}")
        if resp.is_success:
            self.selector.on_family_removed()
        return resp

    def close(self) -> None:
        self.selector.clear()
