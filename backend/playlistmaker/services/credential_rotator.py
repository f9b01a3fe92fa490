"""
Search credential rotation.

Holds the ordered YouTube API keys and the active position. A key that
hits its quota (or is not enabled for the Data API) is flagged exhausted
and skipped; when every key is exhausted all flags are cleared and
rotation restarts at the first key, since upstream quotas reset on
their own schedule.

State lives for the process lifetime only. The rotator is mutated
between awaits, so each call is atomic on the event loop; concurrent
lookups may observe different active keys, which is fine.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


def mask_credential(value: str) -> str:
    """Loggable form of a secret — first 10 characters only."""
    return f"{value[:10]}..."


@dataclass(eq=False, slots=True)
class Credential:
    """One configured search key and its usage counters."""

    value: str = field(repr=False)
    index: int
    requests: int = 0
    errors: int = 0
    exhausted: bool = False
    last_used: datetime.datetime | None = None

    @property
    def label(self) -> str:
        """1-based name used in logs (api1, api2, …)."""
        return f"api{self.index + 1}"

    @property
    def masked(self) -> str:
        return mask_credential(self.value)


class CredentialRotator:
    """Selects the next usable credential from an ordered set."""

    def __init__(self, values: list[str]) -> None:
        self._credentials = [
            Credential(value=value, index=index) for index, value in enumerate(values)
        ]
        self._position = 0
        if self._credentials:
            self.select_next()

    def __len__(self) -> int:
        return len(self._credentials)

    @property
    def credentials(self) -> list[Credential]:
        return list(self._credentials)

    @property
    def active(self) -> Credential | None:
        """The credential searches should use right now."""
        if not self._credentials:
            return None
        return self._credentials[self._position]

    def select_next(self) -> Credential:
        """
        Activate the first non-exhausted credential, scanning circularly
        from the current position.

        If every credential is exhausted, clear all flags and restart
        at index 0.
        """
        if not self._credentials:
            raise RuntimeError("No search credentials configured")

        total = len(self._credentials)
        for offset in range(total):
            candidate = self._credentials[(self._position + offset) % total]
            if not candidate.exhausted:
                return self._activate(candidate)

        logger.warning("All %d search credentials exhausted — resetting", total)
        for credential in self._credentials:
            credential.exhausted = False
        return self._activate(self._credentials[0])

    def mark_exhausted(self, credential: Credential) -> None:
        """
        Flag credential as exhausted and rotate past it.

        A credential that is already flagged is left alone, so lookups
        racing on the same failing key don't double-count it.
        """
        if credential.exhausted:
            logger.warning(
                "%s already marked exhausted — ignoring duplicate report",
                credential.label,
            )
            return

        credential.exhausted = True
        credential.errors += 1
        logger.warning(
            "%s marked exhausted (errors=%d)", credential.label, credential.errors,
        )

        self._position = (credential.index + 1) % len(self._credentials)
        self.select_next()

    def stats(self) -> list[dict[str, Any]]:
        """Per-credential counters for the health endpoint."""
        return [
            {
                "key": credential.masked,
                "requests": credential.requests,
                "errors": credential.errors,
                "exhausted": credential.exhausted,
                "lastUsed": credential.last_used,
            }
            for credential in self._credentials
        ]

    # ── Internals ───────────────────────────────────────────
    def _activate(self, credential: Credential) -> Credential:
        self._position = credential.index
        credential.requests += 1
        credential.last_used = datetime.datetime.now(datetime.timezone.utc)
        logger.info(
            "Selected %s (requests=%d)", credential.label, credential.requests,
        )
        return credential
