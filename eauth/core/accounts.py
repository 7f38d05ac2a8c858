"""
accounts.py: Account lifecycle and the verification flow.

States only move forward: unregistered -> registered -> verified.
``AccountService`` ties the pure OTP functions, the verification policy and
an account store together. The store is passed in explicitly; nothing here
touches a global connection.
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Dict, Optional, Protocol, Tuple

from eauth.core import otp_core
from eauth.core.errors import AlreadyExists, InvalidCode, NotFound, RateLimited, ReplayedCode
from eauth.core.otp_core import TotpParameters, VerifyResult
from eauth.core.policy import VerificationPolicy

logger = logging.getLogger(__name__)

DEFAULT_ISSUER = "E-Auth"


class AccountState(StrEnum):
    UNREGISTERED = "unregistered"
    REGISTERED = "registered"
    VERIFIED = "verified"


@dataclass
class Account:
    identifier: str
    secret: str  # base-32 text, decoded on use
    state: AccountState = AccountState.REGISTERED
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_matched_step: Optional[int] = None
    verified_at: Optional[datetime] = None

    @property
    def raw_secret(self) -> bytes:
        return otp_core.decode_secret(self.secret)

    @property
    def verified(self) -> bool:
        return self.state == AccountState.VERIFIED


@dataclass(frozen=True)
class Registration:
    account: Account
    secret: bytes
    provisioning_uri: str

    @property
    def secret_b32(self) -> str:
        return self.account.secret


class AccountStore(Protocol):
    def find_by_identifier(self, identifier: str) -> Optional[Account]: ...

    def create(self, account: Account) -> None: ...

    def update(self, account: Account) -> None: ...

    def consume_step(self, identifier: str, step: int) -> bool: ...

    def log_attempt(self, identifier: str, success: bool, outcome: str, attempted_at: float) -> None: ...

    def recent_failures(self, identifier: str, since: float) -> int: ...


class CodeChannel(Protocol):
    def send(self, destination: str, message: str) -> None: ...


class AccountService:
    """Registration, verification and status lookups for TOTP accounts."""

    def __init__(
        self,
        store: AccountStore,
        params: TotpParameters = None,
        policy: VerificationPolicy = None,
        issuer: str = DEFAULT_ISSUER,
        clock=time.time,
    ):
        self._store = store
        self._params = (params or TotpParameters()).validate()
        self._policy = (policy or VerificationPolicy()).validate()
        self._issuer = issuer
        self._clock = clock
        self._locks: Dict[str, list] = {}  # identifier -> [RLock, holders]
        self._locks_guard = threading.Lock()

    @property
    def params(self) -> TotpParameters:
        return self._params

    @property
    def issuer(self) -> str:
        return self._issuer

    @contextmanager
    def _locked(self, identifier: str):
        """Hold the identifier's lock; the entry is dropped once nobody uses it."""
        with self._locks_guard:
            entry = self._locks.get(identifier)
            if entry is None:
                entry = self._locks[identifier] = [threading.RLock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[identifier]

    # --- Lookups -----------------------------------------------------------
    def get_account(self, identifier: str) -> Account:
        account = self._store.find_by_identifier(identifier)
        if account is None:
            raise NotFound(f"User '{identifier}' not found")
        return account

    def get_status(self, identifier: str) -> AccountState:
        account = self._store.find_by_identifier(identifier)
        if account is None:
            return AccountState.UNREGISTERED
        return account.state

    def provisioning_uri(self, account: Account) -> str:
        return otp_core.format_otpauth_uri(
            account.raw_secret,
            account=account.identifier,
            issuer=self._issuer,
            algorithm=self._params.algorithm,
            digits=self._params.digits,
            period=self._params.period,
        )

    # --- State machine -----------------------------------------------------
    def register(self, identifier: str) -> Registration:
        """
        Create a new account in the ``registered`` state.

        Raises:
            ValueError: empty identifier
            AlreadyExists: the identifier is taken
        """
        identifier = (identifier or "").strip()
        if not identifier:
            raise ValueError("identifier is required")

        with self._locked(identifier):
            if self._store.find_by_identifier(identifier) is not None:
                raise AlreadyExists(f"User '{identifier}' already exists")
            secret = otp_core.generate_secret(self._params.secret_bytes)
            account = Account(identifier=identifier, secret=otp_core.encode_secret(secret))
            self._store.create(account)

        logger.info("Registered account %s", identifier)
        return Registration(account, secret, self.provisioning_uri(account))

    def record_verification(self, identifier: str, success: bool) -> Account:
        """
        Apply a verification outcome.

        success moves registered -> verified (no-op when already verified);
        failure never changes the state.
        """
        with self._locked(identifier):
            account = self.get_account(identifier)
            if success and account.state != AccountState.VERIFIED:
                account.state = AccountState.VERIFIED
                account.verified_at = datetime.now(timezone.utc)
                self._store.update(account)
                logger.info("Account %s is now verified", identifier)
            return account

    # --- Verification --------------------------------------------------------
    def verify(self, identifier: str, code: str, now: float = None) -> VerifyResult:
        """
        Full verification flow for one submitted code.

        Order: account lookup, attempt limit, TOTP window check, anti-replay,
        state update. The whole sequence runs under the account's lock and
        the step is consumed through the store's conditional update.

        Raises:
            NotFound, RateLimited, InvalidCode, ReplayedCode
        """
        if now is None:
            now = self._clock()

        with self._locked(identifier):
            account = self.get_account(identifier)

            failures = self._store.recent_failures(identifier, since=self._policy.window_start(now))
            try:
                self._policy.check_rate(failures)
            except RateLimited:
                logger.warning("Rate limited verification for %s (%d recent failures)", identifier, failures)
                raise

            params = self._params
            result = otp_core.verify(
                account.raw_secret,
                code,
                now=now,
                window=params.window,
                period=params.period,
                t0=params.t0,
                digits=params.digits,
                algorithm=params.algorithm,
            )
            if not result.matched:
                self._record_failure(identifier, "invalid_code", now)
                raise InvalidCode()

            try:
                self._policy.check_replay(result.matched_step, account.last_matched_step)
                if not self._store.consume_step(identifier, result.matched_step):
                    raise ReplayedCode()
            except ReplayedCode:
                self._record_failure(identifier, "replayed_code", now)
                raise

            self.record_verification(identifier, True)
            self._store.log_attempt(identifier, True, "verified", now)

        logger.info("Verified code for %s at step %d", identifier, result.matched_step)
        return result

    def _record_failure(self, identifier: str, outcome: str, now: float) -> None:
        self._store.log_attempt(identifier, False, outcome, now)
        self.record_verification(identifier, False)
        logger.info("Failed verification for %s: %s", identifier, outcome)

    # --- Code delivery -------------------------------------------------------
    def request_code(self, identifier: str, now: float = None) -> Tuple[str, int]:
        """Current code for an account and the seconds it stays valid."""
        if now is None:
            now = self._clock()
        account = self.get_account(identifier)
        params = self._params
        return otp_core.totp(
            account.raw_secret,
            timestamp=now,
            period=params.period,
            t0=params.t0,
            digits=params.digits,
            algorithm=params.algorithm,
        )

    def send_code(self, identifier: str, channel: CodeChannel, now: float = None) -> int:
        """
        Deliver the current code out-of-band.

        DeliveryFailed from the channel propagates unchanged; the account is
        not modified either way.

        Returns:
            seconds until the delivered code leaves its time step.
        """
        code, remaining = self.request_code(identifier, now)
        channel.send(identifier, f"Your OTP is: {code}. It expires in {remaining} seconds.")
        logger.info("Sent code to %s", identifier)
        return remaining
