"""One-time login codes.

``OtpCache`` is a TTL cache keyed by identifier (an email address). Entries
are removed on success, on expiry, or once the attempt budget is spent, and
``sweep()`` drops expired entries nobody came back for.
"""

import asyncio
import secrets
import time
from dataclasses import dataclass
from enum import Enum

from dietify.observability.logger import get_logger

log = get_logger("otp")


class OtpStatus(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    TOO_MANY_ATTEMPTS = "too_many_attempts"
    INVALID = "invalid"


@dataclass
class OtpEntry:
    code: str
    expires_at: float
    attempts: int = 0


@dataclass
class OtpResult:
    status: OtpStatus
    remaining_attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.status is OtpStatus.OK

    def message(self) -> str:
        if self.status is OtpStatus.OK:
            return "OTP verified successfully"
        if self.status is OtpStatus.NOT_FOUND:
            return "OTP not found. Please request a new OTP."
        if self.status is OtpStatus.EXPIRED:
            return "OTP has expired. Please request a new OTP."
        if self.status is OtpStatus.TOO_MANY_ATTEMPTS:
            return "Maximum verification attempts exceeded. Please request a new OTP."
        return f"Invalid OTP. {self.remaining_attempts} attempts remaining."


def generate_code() -> str:
    return f"{secrets.randbelow(900000) + 100000}"


class OtpCache:
    def __init__(self, ttl_seconds: int = 300, max_attempts: int = 3, clock=time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.max_attempts = max_attempts
        self._clock = clock
        self._entries: dict[str, OtpEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, identifier: str) -> bool:
        return identifier in self._entries

    def issue(self, identifier: str, code: str | None = None) -> str:
        """Store a fresh code for ``identifier``, replacing any earlier one."""
        code = code or generate_code()
        self._entries[identifier] = OtpEntry(code=code, expires_at=self._clock() + self.ttl_seconds)
        return code

    def discard(self, identifier: str):
        self._entries.pop(identifier, None)

    def verify(self, identifier: str, code: str) -> OtpResult:
        entry = self._entries.get(identifier)
        if entry is None:
            return OtpResult(OtpStatus.NOT_FOUND)
        if self._clock() > entry.expires_at:
            del self._entries[identifier]
            return OtpResult(OtpStatus.EXPIRED)
        if entry.attempts >= self.max_attempts:
            del self._entries[identifier]
            return OtpResult(OtpStatus.TOO_MANY_ATTEMPTS)
        if not secrets.compare_digest(entry.code, code):
            entry.attempts += 1
            return OtpResult(OtpStatus.INVALID, remaining_attempts=self.max_attempts - entry.attempts)
        del self._entries[identifier]
        return OtpResult(OtpStatus.OK)

    def sweep(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now > entry.expires_at]
        for key in expired:
            del self._entries[key]
        if expired:
            log.info("otp_swept", count=len(expired))
        return len(expired)

    async def run_sweeper(self, interval_seconds: float):
        """Sweep forever; cancel the task to stop."""
        while True:
            await asyncio.sleep(interval_seconds)
            self.sweep()
