"""
Run Ingest Engine - Credential Store

Issues and resolves project-scoped ingestion tokens.

Token format:  ik_<64 lowercase hex chars>  (256 bits from secrets.token_hex)

Storage holds:
- token_hash: bcrypt(raw_token) with a per-token salt. Never reversible.
- lookup_key: first 16 hex chars of sha256(raw_token). A non-secret
  fingerprint used only to pick candidate rows.

Resolution strategies (Settings.CREDENTIAL_LOOKUP):
- "indexed": fetch rows whose lookup_key matches, then bcrypt-verify each.
- "scan":    bcrypt-verify every stored credential. Linear in the number of
             credentials; kept for stores populated without lookup keys.

In both modes a credential is accepted only after bcrypt.checkpw succeeds
against that credential's own hash. bcrypt is CPU-bound, so every hash and
verify call runs in a worker thread via asyncio.to_thread.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import re
import secrets
from dataclasses import dataclass
from typing import Literal

import bcrypt

from ..stores.base import CredentialRepository, StoredCredential

logger = logging.getLogger(__name__)

TOKEN_PREFIX = "ik_"
TOKEN_BYTES = 32
LOOKUP_KEY_LENGTH = 16

_TOKEN_PATTERN = re.compile(rf"^{TOKEN_PREFIX}[0-9a-f]{{{TOKEN_BYTES * 2}}}$")


@dataclass(frozen=True)
class IssuedCredential:
    """Returned exactly once, at issuance. The only place raw_token exists."""

    credential_id: str
    project_id: str
    raw_token: str
    name: str | None = None


@dataclass(frozen=True)
class ResolvedCredential:
    credential_id: str
    project_id: str


def generate_token() -> str:
    """Generate a new raw token (256 bits of entropy)."""
    return f"{TOKEN_PREFIX}{secrets.token_hex(TOKEN_BYTES)}"


def is_well_formed_token(raw_token: str) -> bool:
    """True if raw_token has the exact shape generate_token() produces."""
    return bool(_TOKEN_PATTERN.fullmatch(raw_token))


def compute_lookup_key(raw_token: str) -> str:
    """Non-secret fingerprint used to narrow candidate rows."""
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()[:LOOKUP_KEY_LENGTH]


def hash_token(raw_token: str, rounds: int = 10) -> str:
    """bcrypt hash with a fresh salt."""
    return bcrypt.hashpw(raw_token.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_token(raw_token: str, token_hash: str) -> bool:
    """Constant-time bcrypt verification of raw_token against one stored hash."""
    try:
        return bcrypt.checkpw(raw_token.encode("utf-8"), token_hash.encode("utf-8"))
    except ValueError:
        # Corrupt hash in storage; treat as non-matching and keep scanning.
        logger.warning("Stored token hash is not a valid bcrypt hash")
        return False


class CredentialStore:
    """Credential issuance and resolution over a CredentialRepository."""

    def __init__(
        self,
        repository: CredentialRepository,
        *,
        hash_rounds: int = 10,
        lookup: Literal["indexed", "scan"] = "indexed",
    ):
        self._repository = repository
        self._hash_rounds = hash_rounds
        self._lookup = lookup

    @property
    def lookup(self) -> str:
        return self._lookup

    async def issue(self, project_id: str, name: str | None = None) -> IssuedCredential:
        """
        Mint a token for project_id and persist its hash.

        The caller must have verified that the project exists.
        """
        raw_token = generate_token()
        token_hash = await asyncio.to_thread(hash_token, raw_token, self._hash_rounds)

        stored = await self._repository.add_credential(
            project_id=project_id,
            token_hash=token_hash,
            lookup_key=compute_lookup_key(raw_token),
            name=name,
        )

        logger.info(
            "Credential issued",
            extra={"credential_id": stored.id, "project_id": project_id},
        )
        return IssuedCredential(
            credential_id=stored.id,
            project_id=project_id,
            raw_token=raw_token,
            name=name,
        )

    async def resolve(self, raw_token: str | None) -> ResolvedCredential | None:
        """
        Resolve a presented token to its owning project.

        Returns None for missing, malformed, or unknown tokens. Storage
        failures propagate as StoreError.
        """
        if not raw_token or not is_well_formed_token(raw_token):
            return None

        candidates: list[StoredCredential]
        if self._lookup == "indexed":
            candidates = await self._repository.find_credentials(compute_lookup_key(raw_token))
        else:
            candidates = await self._repository.list_credentials()

        for candidate in candidates:
            matched = await asyncio.to_thread(verify_token, raw_token, candidate.token_hash)
            if matched:
                return ResolvedCredential(
                    credential_id=candidate.id,
                    project_id=candidate.project_id,
                )

        return None
