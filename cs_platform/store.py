# cs_platform/store.py
# CineStream - Document store (MongoDB or local JSON files)
# Copyright (c) 2025-2026 CineStream
from __future__ import annotations

import copy
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping, Sequence

from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo import errors as mongo_errors

from .config_base import CONFIG_BASE, _read_json, _write_json_atomic
from .errors import Conflict, PersistenceFailure

from _logging import log


def _log(msg: str, level: str = "INFO") -> None:
    log(msg, level=level, module="STORE")


__all__ = [
    "DocumentStore",
    "MongoStore",
    "JsonStore",
    "UpdateResult",
    "StoreError",
    "DuplicateKeyError",
    "UNIQUE_KEYS",
    "new_id",
    "open_store",
]

Filter = Mapping[str, Any]
Sort = Sequence[tuple[str, int]]

# Collection -> unique key tuples. A missing field counts as null, so two
# movie history rows for the same user and media collide.
UNIQUE_KEYS: dict[str, list[tuple[str, ...]]] = {
    "users": [("email",)],
    "watchhistories": [("userId", "mediaId", "mediaType", "seasonNumber", "episodeNumber")],
    "watchlists": [("userId", "mediaId", "mediaType")],
    "watchlistfolders": [("userId", "name")],
    "settings": [("key",)],
    "sessions": [("tokenHash",)],
}


class StoreError(PersistenceFailure):
    default_message = "Database operation failed"


class DuplicateKeyError(Conflict):
    default_message = "Duplicate key"


@dataclass
class UpdateResult:
    matched: int = 0
    modified: int = 0
    upserted_id: str | None = None


def new_id() -> str:
    return uuid.uuid4().hex


class DocumentStore:
    """Minimal Mongo-shaped document API used by the services.

    Filters are equality maps (None matches a missing field) with the
    operators $in, $nin, $ne, $lt, $lte, $gt, $gte and $exists. Updates
    accept $set, $unset and $setOnInsert.
    """

    backend = "base"

    def find_one(self, coll: str, filt: Filter | None = None, *, sort: Sort | None = None) -> dict[str, Any] | None:
        rows = self.find(coll, filt, sort=sort, limit=1)
        return rows[0] if rows else None

    def find(
        self,
        coll: str,
        filt: Filter | None = None,
        *,
        sort: Sort | None = None,
        skip: int = 0,
        limit: int = 0,
    ) -> list[dict[str, Any]]:
        raise NotImplementedError

    def count(self, coll: str, filt: Filter | None = None) -> int:
        raise NotImplementedError

    def insert_one(self, coll: str, doc: Mapping[str, Any]) -> str:
        raise NotImplementedError

    def insert_many(self, coll: str, docs: Iterable[Mapping[str, Any]]) -> int:
        raise NotImplementedError

    def update_one(self, coll: str, filt: Filter, update: Mapping[str, Any], *, upsert: bool = False) -> UpdateResult:
        raise NotImplementedError

    def update_many(self, coll: str, filt: Filter, update: Mapping[str, Any]) -> int:
        raise NotImplementedError

    def delete_one(self, coll: str, filt: Filter) -> int:
        raise NotImplementedError

    def delete_many(self, coll: str, filt: Filter | None = None) -> int:
        raise NotImplementedError

    def ensure_indexes(self, *, visitor_ttl_days: int = 30) -> None:
        return None

    def ping(self) -> bool:
        return True

    def close(self) -> None:
        return None


# ------------------------------------------------------------
# MongoDB
# ------------------------------------------------------------
class MongoStore(DocumentStore):
    backend = "mongo"

    def __init__(self, uri: str, name: str, *, timeout_ms: int = 5000, client: MongoClient | None = None) -> None:
        self._client = client or MongoClient(uri, tz_aware=True, serverSelectionTimeoutMS=int(timeout_ms))
        self._db = self._client[name]

    @contextmanager
    def _guard(self, op: str) -> Iterator[None]:
        try:
            yield
        except mongo_errors.DuplicateKeyError as e:
            raise DuplicateKeyError(f"{op}: duplicate key") from e
        except mongo_errors.PyMongoError as e:
            raise StoreError(f"{op} failed: {e}") from e

    def find(self, coll, filt=None, *, sort=None, skip=0, limit=0):
        with self._guard(f"find {coll}"):
            cur = self._db[coll].find(dict(filt or {}))
            if sort:
                cur = cur.sort(list(sort))
            if skip:
                cur = cur.skip(int(skip))
            if limit:
                cur = cur.limit(int(limit))
            return list(cur)

    def count(self, coll, filt=None):
        with self._guard(f"count {coll}"):
            return int(self._db[coll].count_documents(dict(filt or {})))

    def insert_one(self, coll, doc):
        data = dict(doc)
        data.setdefault("_id", new_id())
        with self._guard(f"insert {coll}"):
            self._db[coll].insert_one(data)
        return str(data["_id"])

    def insert_many(self, coll, docs):
        rows = [dict(d) for d in docs]
        if not rows:
            return 0
        for r in rows:
            r.setdefault("_id", new_id())
        with self._guard(f"insert_many {coll}"):
            res = self._db[coll].insert_many(rows, ordered=False)
        return len(res.inserted_ids)

    def update_one(self, coll, filt, update, *, upsert=False):
        upd = _prepare_update(update, upsert)
        with self._guard(f"update {coll}"):
            res = self._db[coll].update_one(dict(filt), upd, upsert=upsert)
        upserted = str(res.upserted_id) if res.upserted_id is not None else None
        return UpdateResult(int(res.matched_count), int(res.modified_count), upserted)

    def update_many(self, coll, filt, update):
        with self._guard(f"update_many {coll}"):
            res = self._db[coll].update_many(dict(filt), _prepare_update(update, False))
        return int(res.modified_count)

    def delete_one(self, coll, filt):
        with self._guard(f"delete {coll}"):
            return int(self._db[coll].delete_one(dict(filt)).deleted_count)

    def delete_many(self, coll, filt=None):
        with self._guard(f"delete_many {coll}"):
            return int(self._db[coll].delete_many(dict(filt or {})).deleted_count)

    def ensure_indexes(self, *, visitor_ttl_days: int = 30) -> None:
        with self._guard("ensure_indexes"):
            for coll, keys in UNIQUE_KEYS.items():
                for fields in keys:
                    self._db[coll].create_index([(f, ASCENDING) for f in fields], unique=True)
            self._db["watchhistories"].create_index([("userId", ASCENDING), ("lastWatchedAt", DESCENDING)])
            self._db["watchlists"].create_index([("userId", ASCENDING), ("addedAt", DESCENDING)])
            self._db["sessions"].create_index([("expiresAt", ASCENDING)], expireAfterSeconds=0)
            self._db["visitor_logs"].create_index([("timestamp", DESCENDING)])
            self._db["visitor_logs"].create_index([("visitId", ASCENDING)])
            self._db["visitor_logs"].create_index(
                [("createdAt", ASCENDING)],
                expireAfterSeconds=max(1, int(visitor_ttl_days)) * 86400,
            )
        _log("Indexes ensured", level="DEBUG")

    def ping(self) -> bool:
        try:
            self._client.admin.command("ping")
            return True
        except mongo_errors.PyMongoError:
            return False

    def close(self) -> None:
        self._client.close()


# ------------------------------------------------------------
# Local JSON files (single node installs, tests)
# ------------------------------------------------------------
class JsonStore(DocumentStore):
    """One JSON file per collection under `base_dir`; memory only when base_dir is None."""

    backend = "json"

    def __init__(self, base_dir: Path | str | None = None) -> None:
        self.base_dir = Path(base_dir) if base_dir else None
        self._data: dict[str, list[dict[str, Any]]] = {}
        self._lock = threading.RLock()
        if self.base_dir is not None:
            self.base_dir.mkdir(parents=True, exist_ok=True)

    def _rows(self, coll: str) -> list[dict[str, Any]]:
        rows = self._data.get(coll)
        if rows is not None:
            return rows
        rows = []
        if self.base_dir is not None:
            p = self.base_dir / f"{coll}.json"
            if p.exists():
                try:
                    raw = _read_json(p)
                except Exception as e:
                    raise StoreError(f"Unreadable collection file {p.name}: {e}") from e
                rows = [_decode(r) for r in (raw if isinstance(raw, list) else [])]
        self._data[coll] = rows
        return rows

    def _persist(self, coll: str) -> None:
        if self.base_dir is None:
            return
        try:
            _write_json_atomic(self.base_dir / f"{coll}.json", [_encode(r) for r in self._rows(coll)])
        except OSError as e:
            raise StoreError(f"Failed to write {coll}: {e}") from e

    def _check_unique(self, coll: str, doc: Mapping[str, Any], rows: list[dict[str, Any]]) -> None:
        for fields in UNIQUE_KEYS.get(coll, []):
            want = tuple(doc.get(f) for f in fields)
            for r in rows:
                if r is doc or r.get("_id") == doc.get("_id"):
                    continue
                if tuple(r.get(f) for f in fields) == want:
                    raise DuplicateKeyError(f"{coll}: duplicate {'/'.join(fields)}")

    def find(self, coll, filt=None, *, sort=None, skip=0, limit=0):
        with self._lock:
            hits = [r for r in self._rows(coll) if _matches(r, filt)]
            if sort:
                hits = _sorted(hits, sort)
            if skip:
                hits = hits[int(skip):]
            if limit:
                hits = hits[: int(limit)]
            return copy.deepcopy(hits)

    def count(self, coll, filt=None):
        with self._lock:
            return sum(1 for r in self._rows(coll) if _matches(r, filt))

    def insert_one(self, coll, doc):
        with self._lock:
            rows = self._rows(coll)
            data = copy.deepcopy(dict(doc))
            data.setdefault("_id", new_id())
            self._check_unique(coll, data, rows)
            rows.append(data)
            self._persist(coll)
            return str(data["_id"])

    def insert_many(self, coll, docs):
        with self._lock:
            rows = self._rows(coll)
            n = 0
            for doc in docs:
                data = copy.deepcopy(dict(doc))
                data.setdefault("_id", new_id())
                self._check_unique(coll, data, rows)
                rows.append(data)
                n += 1
            if n:
                self._persist(coll)
            return n

    def update_one(self, coll, filt, update, *, upsert=False):
        with self._lock:
            rows = self._rows(coll)
            upd = _prepare_update(update, upsert)
            for idx, r in enumerate(rows):
                if not _matches(r, filt):
                    continue
                new = _apply_update(copy.deepcopy(r), upd, inserting=False)
                self._check_unique(coll, new, rows)
                changed = new != r
                if changed:
                    rows[idx] = new
                    self._persist(coll)
                return UpdateResult(1, 1 if changed else 0, None)

            if not upsert:
                return UpdateResult(0, 0, None)

            seed = {k: copy.deepcopy(v) for k, v in dict(filt).items() if not k.startswith("$") and not _is_operator(v)}
            new = _apply_update(seed, upd, inserting=True)
            new.setdefault("_id", new_id())
            self._check_unique(coll, new, rows)
            rows.append(new)
            self._persist(coll)
            return UpdateResult(0, 0, str(new["_id"]))

    def update_many(self, coll, filt, update):
        with self._lock:
            rows = self._rows(coll)
            upd = _prepare_update(update, False)
            n = 0
            for idx, r in enumerate(rows):
                if not _matches(r, filt):
                    continue
                new = _apply_update(copy.deepcopy(r), upd, inserting=False)
                if new != r:
                    self._check_unique(coll, new, rows)
                    rows[idx] = new
                    n += 1
            if n:
                self._persist(coll)
            return n

    def delete_one(self, coll, filt):
        with self._lock:
            rows = self._rows(coll)
            for idx, r in enumerate(rows):
                if _matches(r, filt):
                    del rows[idx]
                    self._persist(coll)
                    return 1
            return 0

    def delete_many(self, coll, filt=None):
        with self._lock:
            rows = self._rows(coll)
            keep = [r for r in rows if not _matches(r, filt)]
            n = len(rows) - len(keep)
            if n:
                self._data[coll] = keep
                self._persist(coll)
            return n

    def ensure_indexes(self, *, visitor_ttl_days: int = 30) -> None:
        with self._lock:
            for coll in UNIQUE_KEYS:
                self._rows(coll)


# ------------------------------------------------------------
# Query / update evaluation
# ------------------------------------------------------------
def _is_operator(v: Any) -> bool:
    return isinstance(v, dict) and bool(v) and all(str(k).startswith("$") for k in v)


def _eq(a: Any, b: Any) -> bool:
    if b is None:
        return a is None
    if isinstance(a, bool) != isinstance(b, bool):
        return False
    return a == b


def _cmp(a: Any, b: Any, op: str) -> bool:
    if a is None or b is None:
        return False
    try:
        if op == "$lt":
            return a < b
        if op == "$lte":
            return a <= b
        if op == "$gt":
            return a > b
        return a >= b
    except TypeError:
        return False


def _match_field(doc: Mapping[str, Any], key: str, cond: Any) -> bool:
    present = key in doc
    val = doc.get(key)
    if not _is_operator(cond):
        return _eq(val, cond)
    for op, arg in cond.items():
        if op == "$in":
            if not any(_eq(val, a) for a in arg):
                return False
        elif op == "$nin":
            if any(_eq(val, a) for a in arg):
                return False
        elif op == "$ne":
            if _eq(val, arg):
                return False
        elif op in ("$lt", "$lte", "$gt", "$gte"):
            if not _cmp(val, arg, op):
                return False
        elif op == "$exists":
            if bool(arg) != present:
                return False
        else:
            raise StoreError(f"Unsupported query operator {op}")
    return True


def _matches(doc: Mapping[str, Any], filt: Filter | None) -> bool:
    for key, cond in (filt or {}).items():
        if not _match_field(doc, key, cond):
            return False
    return True


def _sorted(rows: list[dict[str, Any]], sort: Sort) -> list[dict[str, Any]]:
    out = list(rows)
    for field, direction in reversed(list(sort)):
        present = [r for r in out if r.get(field) is not None]
        missing = [r for r in out if r.get(field) is None]
        try:
            present.sort(key=lambda r: r.get(field), reverse=direction < 0)
        except TypeError:
            present.sort(key=lambda r: str(r.get(field)), reverse=direction < 0)
        # nulls sort first ascending, last descending (Mongo order)
        out = missing + present if direction >= 0 else present + missing
    return out


def _prepare_update(update: Mapping[str, Any], upsert: bool) -> dict[str, Any]:
    upd: dict[str, Any] = {}
    for op in ("$set", "$unset", "$setOnInsert"):
        val = update.get(op)
        if val:
            upd[op] = dict(val)
    unknown = [k for k in update if k not in ("$set", "$unset", "$setOnInsert")]
    if unknown:
        raise StoreError(f"Unsupported update operator {unknown[0]}")
    if upsert:
        soi = upd.setdefault("$setOnInsert", {})
        soi.setdefault("_id", new_id())
    return upd


def _apply_update(doc: dict[str, Any], upd: Mapping[str, Any], *, inserting: bool) -> dict[str, Any]:
    if inserting:
        for k, v in (upd.get("$setOnInsert") or {}).items():
            doc[k] = copy.deepcopy(v)
    for k, v in (upd.get("$set") or {}).items():
        doc[k] = copy.deepcopy(v)
    for k in (upd.get("$unset") or {}):
        doc.pop(k, None)
    return doc


def _encode(v: Any) -> Any:
    if isinstance(v, datetime):
        return {"$date": v.isoformat()}
    if isinstance(v, dict):
        return {k: _encode(x) for k, x in v.items()}
    if isinstance(v, list):
        return [_encode(x) for x in v]
    return v


def _decode(v: Any) -> Any:
    if isinstance(v, dict):
        if set(v.keys()) == {"$date"}:
            try:
                return datetime.fromisoformat(str(v["$date"]))
            except ValueError:
                return None
        return {k: _decode(x) for k, x in v.items()}
    if isinstance(v, list):
        return [_decode(x) for x in v]
    return v


def open_store(cfg: Mapping[str, Any]) -> DocumentStore:
    db = dict(cfg.get("database") or {})
    backend = str(db.get("backend") or "auto").strip().lower()
    uri = str(db.get("uri") or "").strip()

    if backend == "mongo" or (backend == "auto" and uri):
        if not uri:
            raise StoreError("database.backend is mongo but no uri is configured")
        name = str(db.get("name") or "cinestream")
        _log(f"Using MongoDB database '{name}'")
        return MongoStore(uri, name, timeout_ms=int(db.get("timeout_ms") or 5000))

    base = Path(str(db.get("json_dir") or "data"))
    if not base.is_absolute():
        base = CONFIG_BASE() / base
    _log(f"Using JSON store at {base}")
    return JsonStore(base)
