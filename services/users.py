# services/users.py
# CineStream - Accounts, password hashing and login sessions
# Copyright (c) 2025-2026 CineStream
from __future__ import annotations

import base64
import hashlib
import hmac
import re
import secrets
from datetime import datetime, timedelta
from typing import Any, Callable, Mapping

from _logging import log
from cs_platform.errors import Conflict, NotFound, ValidationError
from cs_platform.store import DocumentStore, DuplicateKeyError

from .watch_history import utcnow

USERS = "users"
SESSIONS = "sessions"
ROLES = ("user", "admin")
PROVIDERS = ("credentials", "google")

# Profile images are stored inline as data URLs
MAX_IMAGE_CHARS = 5_000_000

_EMAIL_RX = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# Never returned to clients
PRIVATE_FIELDS = ("password",)


def _log(msg: str, level: str = "INFO") -> None:
    log(msg, level=level, module="USERS")


def _b64e(b: bytes) -> str:
    return base64.urlsafe_b64encode(b).decode("ascii").rstrip("=")


def _b64d(s: str) -> bytes:
    pad = "=" * ((4 - (len(s) % 4)) % 4)
    return base64.urlsafe_b64decode((s or "") + pad)


def _sha256_hex(s: str) -> str:
    return hashlib.sha256((s or "").encode("utf-8")).hexdigest()


def _pbkdf2_hash(password: str, salt: bytes, *, iterations: int) -> bytes:
    return hashlib.pbkdf2_hmac("sha256", (password or "").encode("utf-8"), salt, int(iterations))


def hash_password(password: str, *, iterations: int = 260_000) -> dict[str, Any]:
    salt = secrets.token_bytes(16)
    return {
        "algo": "pbkdf2_sha256",
        "iterations": int(iterations),
        "salt": _b64e(salt),
        "hash": _b64e(_pbkdf2_hash(password, salt, iterations=iterations)),
    }


def verify_password(password: str, record: Mapping[str, Any] | None) -> bool:
    if not isinstance(record, Mapping):
        return False
    try:
        salt = _b64d(str(record.get("salt") or ""))
        iters = int(record.get("iterations") or 260_000)
    except (TypeError, ValueError):
        return False
    want = str(record.get("hash") or "")
    if not want or not salt:
        return False
    got = _b64e(_pbkdf2_hash(password, salt, iterations=iters))
    return hmac.compare_digest(got, want)


def normalize_email(email: Any) -> str:
    e = str(email or "").strip().lower()
    if not _EMAIL_RX.match(e):
        raise ValidationError("A valid email is required")
    return e


def public_user(doc: Mapping[str, Any] | None) -> dict[str, Any] | None:
    if doc is None:
        return None
    return {k: v for k, v in doc.items() if k not in PRIVATE_FIELDS}


class UserService:
    def __init__(
        self,
        store: DocumentStore,
        *,
        clock: Callable[[], datetime] = utcnow,
        iterations: int = 260_000,
        session_ttl_days: int = 30,
    ) -> None:
        self.store = store
        self.clock = clock
        self.iterations = int(iterations)
        self.session_ttl = timedelta(days=max(1, int(session_ttl_days)))

    # accounts
    def create(
        self,
        email: Any,
        password: str | None,
        *,
        name: str | None = None,
        role: str = "user",
        provider: str = "credentials",
        image: str | None = None,
    ) -> dict[str, Any]:
        addr = normalize_email(email)
        if role not in ROLES:
            raise ValidationError(f"Unknown role {role!r}")
        if provider not in PROVIDERS:
            raise ValidationError(f"Unknown provider {provider!r}")
        if provider == "credentials" and len(password or "") < 6:
            raise ValidationError("Password must be at least 6 characters")
        if self.store.find_one(USERS, {"email": addr}):
            raise Conflict("User already exists")

        now = self.clock()
        doc: dict[str, Any] = {
            "email": addr,
            "name": (name or "").strip() or addr.split("@", 1)[0],
            "role": role,
            "provider": provider,
            "image": image,
            "createdAt": now,
            "updatedAt": now,
        }
        if password:
            doc["password"] = hash_password(password, iterations=self.iterations)
        try:
            doc["_id"] = self.store.insert_one(USERS, doc)
        except DuplicateKeyError:
            raise Conflict("User already exists") from None
        _log(f"Created {role} account {doc['_id']}")
        return doc

    def get(self, user_id: str) -> dict[str, Any] | None:
        return self.store.find_one(USERS, {"_id": str(user_id)})

    def require(self, user_id: str) -> dict[str, Any]:
        doc = self.get(user_id)
        if doc is None:
            raise NotFound("User not found")
        return doc

    def by_email(self, email: Any) -> dict[str, Any] | None:
        return self.store.find_one(USERS, {"email": str(email or "").strip().lower()})

    def authenticate(self, email: Any, password: str) -> dict[str, Any] | None:
        doc = self.by_email(email)
        if doc is None or not verify_password(password, doc.get("password")):
            return None
        return doc

    def list(self) -> list[dict[str, Any]]:
        rows = self.store.find(USERS, sort=[("createdAt", -1)])
        return [public_user(r) for r in rows]  # type: ignore[misc]

    def set_role(self, user_id: str, role: str) -> dict[str, Any]:
        if role not in ROLES:
            raise ValidationError("Invalid role")
        res = self.store.update_one(USERS, {"_id": str(user_id)}, {"$set": {"role": role, "updatedAt": self.clock()}})
        if not res.matched:
            raise NotFound("User not found")
        return self.require(user_id)

    def set_image(self, user_id: str, data_url: str) -> None:
        if len(data_url) > MAX_IMAGE_CHARS:
            raise ValidationError("Image too large", status_code=413)
        res = self.store.update_one(USERS, {"_id": str(user_id)}, {"$set": {"image": data_url, "updatedAt": self.clock()}})
        if not res.matched:
            raise NotFound("User not found")

    def delete(self, user_id: str) -> None:
        """Remove the account and everything it owns."""
        uid = str(user_id)
        if not self.store.delete_one(USERS, {"_id": uid}):
            raise NotFound("User not found")
        for coll in ("watchhistories", "watchlists", "watchlistfolders", SESSIONS):
            self.store.delete_many(coll, {"userId": uid})
        _log(f"Deleted account {uid} and its data")

    def seed_admin(self, email: str, password: str, *, name: str = "Admin") -> dict[str, Any] | None:
        if not (email or "").strip() or not password:
            return None
        existing = self.by_email(email)
        if existing is not None:
            if existing.get("role") != "admin":
                self.store.update_one(USERS, {"_id": existing["_id"]}, {"$set": {"role": "admin", "updatedAt": self.clock()}})
                _log(f"Promoted {existing['_id']} to admin")
            return self.get(existing["_id"])
        doc = self.create(email, password, name=name, role="admin")
        _log("Seeded admin account", level="SUCCESS")
        return doc

    # sessions
    def issue_session(self, user_id: str, *, ip: str = "", ua: str = "") -> tuple[str, datetime]:
        token = secrets.token_urlsafe(32)
        now = self.clock()
        exp = now + self.session_ttl
        self.store.insert_one(
            SESSIONS,
            {
                "tokenHash": _sha256_hex(token),
                "userId": str(user_id),
                "createdAt": now,
                "expiresAt": exp,
                "ip": ip,
                "ua": (ua or "")[:240],
            },
        )
        return token, exp

    def session_user(self, token: str | None) -> dict[str, Any] | None:
        t = (token or "").strip()
        if not t:
            return None
        s = self.store.find_one(SESSIONS, {"tokenHash": _sha256_hex(t)})
        if s is None:
            return None
        exp = s.get("expiresAt")
        if not isinstance(exp, datetime) or exp <= self.clock():
            self.store.delete_one(SESSIONS, {"_id": s["_id"]})
            return None
        return self.get(s.get("userId"))

    def drop_session(self, token: str | None) -> None:
        t = (token or "").strip()
        if t:
            self.store.delete_one(SESSIONS, {"tokenHash": _sha256_hex(t)})

    def prune_sessions(self) -> int:
        return self.store.delete_many(SESSIONS, {"expiresAt": {"$lt": self.clock()}})
