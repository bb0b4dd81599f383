"""
auth/migration.py -- Bulk migration of legacy credentials to the identity provider.

migrate_credentials() is a sequential fold over every identity. Each row ends
in exactly one outcome:

    migrated                   provider account created, row updated with
                               auth_user_id / auth_email / hashed password
    skipped(already_mapped)    row already references a provider account
    skipped(no_password)       no local credential to carry over
    skipped(hashed_password)   plaintext is unrecoverable from the hash
    failed(reason)             provider or store call failed for this row

A failed row never aborts the batch. Failures are collected as
MigrationRowError entries so an operator can re-run only that subset; rows
already migrated are skipped on the next run.

Layer rule: no imports from api/ or inventory/.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from auth.identity_provider import IdentityProvider
from auth.models import Identity
from auth.store import UserStore
from auth.vault import hash_password, is_hashed
from core.errors import UpstreamError
from core.pagination import fetch_all

logger = logging.getLogger("lotdesk.auth.migration")

MIGRATED = "migrated"
SKIPPED = "skipped"
FAILED = "failed"

SKIP_ALREADY_MAPPED = "already_mapped"
SKIP_NO_PASSWORD = "no_password"
SKIP_HASHED_PASSWORD = "hashed_password"

_LOCAL_PART_MAX = 48


@dataclass(frozen=True)
class MigrationRowError:
    """One failed row. Collected, never raised."""

    id: str
    reason: str


@dataclass(frozen=True)
class MigrationOutcome:
    identity_id: Optional[int]
    status: str  # "migrated" | "skipped" | "failed"
    reason: Optional[str] = None


@dataclass
class MigrationReport:
    """Accumulator for the fold. Counts are derived from outcomes."""

    outcomes: list[MigrationOutcome] = field(default_factory=list)

    def add(self, outcome: MigrationOutcome) -> None:
        self.outcomes.append(outcome)

    def _count(self, status: str, reason: Optional[str] = None) -> int:
        return sum(
            1 for o in self.outcomes if o.status == status and (reason is None or o.reason == reason)
        )

    @property
    def scanned(self) -> int:
        return len(self.outcomes)

    @property
    def migrated(self) -> int:
        return self._count(MIGRATED)

    @property
    def failed(self) -> int:
        return self._count(FAILED)

    @property
    def failed_users(self) -> list[MigrationRowError]:
        return [
            MigrationRowError(id=str(o.identity_id), reason=o.reason or "unknown error")
            for o in self.outcomes
            if o.status == FAILED
        ]

    def to_dict(self) -> dict:
        return {
            "scanned": self.scanned,
            "migrated": self.migrated,
            "skipped_already_mapped": self._count(SKIPPED, SKIP_ALREADY_MAPPED),
            "skipped_no_password": self._count(SKIPPED, SKIP_NO_PASSWORD),
            "skipped_hashed_password": self._count(SKIPPED, SKIP_HASHED_PASSWORD),
            "failed": self.failed,
            "failed_users": [{"id": e.id, "reason": e.reason} for e in self.failed_users],
        }


def provider_email(identity: Identity, domain: str, suffix: Optional[str] = None) -> str:
    """Build the provider login email: <local part>+<suffix>@<domain>.

    The local part is the number, else the username, lowercased and reduced
    to [a-z0-9._-], at most 48 chars. suffix defaults to the identity id and
    keeps the address unique.
    """
    ident = suffix or str(identity.id)
    base = identity.display_number or identity.username or f"user_{ident}"
    local = re.sub(r"[^a-z0-9._-]", "", base.lower())[:_LOCAL_PART_MAX] or f"user_{ident}"
    return f"{local}+{ident}@{domain}"


def _migrate_one(
    identity: Identity, users: UserStore, provider: IdentityProvider, domain: str
) -> MigrationOutcome:
    if identity.auth_user_id or (identity.auth_email or "").strip():
        return MigrationOutcome(identity.id, SKIPPED, SKIP_ALREADY_MAPPED)
    plaintext = identity.password or ""
    if not plaintext:
        return MigrationOutcome(identity.id, SKIPPED, SKIP_NO_PASSWORD)
    if is_hashed(plaintext):
        return MigrationOutcome(identity.id, SKIPPED, SKIP_HASHED_PASSWORD)

    email = provider_email(identity, domain)
    try:
        provider_id = provider.create_identity(email, plaintext)
    except UpstreamError as exc:
        return MigrationOutcome(identity.id, FAILED, exc.message)
    if not provider_id:
        return MigrationOutcome(identity.id, FAILED, "Unknown createUser error")

    try:
        users.update_identity(
            identity.id,
            auth_user_id=provider_id,
            auth_email=email,
            password=hash_password(plaintext),
        )
    except SQLAlchemyError as exc:
        return MigrationOutcome(identity.id, FAILED, str(exc.__cause__ or exc))
    return MigrationOutcome(identity.id, MIGRATED)


def migrate_credentials(
    users: UserStore, provider: IdentityProvider, domain: str, page_size: Optional[int] = None
) -> MigrationReport:
    """Run the migration over every identity, one at a time, and report per row.

    Identities are read page by page so none past the store cap is skipped.
    """
    report = MigrationReport()
    for identity in fetch_all(users.page_identities, page_size or users.max_rows):
        outcome = _migrate_one(identity, users, provider, domain)
        if outcome.status == FAILED:
            logger.warning("Credential migration failed for identity %s: %s", identity.id, outcome.reason)
        report.add(outcome)
    logger.info(
        "Credential migration finished: scanned=%d migrated=%d failed=%d",
        report.scanned,
        report.migrated,
        report.failed,
    )
    return report
