"""Tests for the account state machine and the verification flow."""

import threading

import pytest

from eauth.core import otp_core
from eauth.core.accounts import AccountService, AccountState
from eauth.core.errors import (
    AlreadyExists,
    ConfigurationError,
    DeliveryFailed,
    InvalidCode,
    NotFound,
    RateLimited,
    ReplayedCode,
)
from eauth.core.otp_core import TotpParameters
from eauth.core.policy import VerificationPolicy

NOW = 1_000_000  # step 33333, 10 seconds into it


def current_code(service, identifier, now=NOW):
    code, _ = service.request_code(identifier, now=now)
    return code


class RecordingChannel:
    def __init__(self):
        self.sent = []

    def send(self, destination, message):
        self.sent.append((destination, message))


class BrokenChannel:
    def send(self, destination, message):
        raise DeliveryFailed()


# --- registration / state machine ---------------------------------------------


def test_register_creates_registered_account(service):
    registration = service.register("a@x.com")

    assert registration.account.state == AccountState.REGISTERED
    assert len(registration.secret) == 20
    assert otp_core.decode_secret(registration.secret_b32) == registration.secret
    assert registration.provisioning_uri.startswith("otpauth://totp/E-Auth:a@x.com?")
    assert service.get_status("a@x.com") == AccountState.REGISTERED


def test_register_strips_identifier(service):
    assert service.register("  a@x.com ").account.identifier == "a@x.com"


def test_register_requires_identifier(service):
    with pytest.raises(ValueError):
        service.register("   ")


def test_register_twice_fails(service):
    service.register("a@x.com")
    with pytest.raises(AlreadyExists):
        service.register("a@x.com")


def test_unknown_account_is_unregistered(service):
    assert service.get_status("nobody@x.com") == AccountState.UNREGISTERED
    with pytest.raises(NotFound):
        service.get_account("nobody@x.com")


def test_state_never_regresses(service):
    service.register("a@x.com")

    account = service.record_verification("a@x.com", True)
    assert account.state == AccountState.VERIFIED
    assert account.verified_at is not None

    service.record_verification("a@x.com", False)
    assert service.get_status("a@x.com") == AccountState.VERIFIED

    service.record_verification("a@x.com", True)
    assert service.get_status("a@x.com") == AccountState.VERIFIED


def test_failure_keeps_registered_state(service):
    service.register("a@x.com")
    service.record_verification("a@x.com", False)
    assert service.get_status("a@x.com") == AccountState.REGISTERED


def test_record_verification_unknown_account(service):
    with pytest.raises(NotFound):
        service.record_verification("nobody@x.com", True)


def test_invalid_parameters_fail_at_construction(store):
    with pytest.raises(ConfigurationError):
        AccountService(store, params=TotpParameters(window=-1))
    with pytest.raises(ConfigurationError):
        AccountService(store, policy=VerificationPolicy(max_failures=0))


# --- verification ----------------------------------------------------------------


def test_verify_marks_account_verified(service, store):
    service.register("a@x.com")
    result = service.verify("a@x.com", current_code(service, "a@x.com"), now=NOW)

    assert result.matched
    assert result.matched_step == otp_core.time_step(NOW)
    assert service.get_status("a@x.com") == AccountState.VERIFIED
    assert store.find_by_identifier("a@x.com").last_matched_step == result.matched_step


def test_verify_uses_service_clock(service):
    service.register("a@x.com")
    assert service.verify("a@x.com", current_code(service, "a@x.com")).matched


def test_wrong_code_is_invalid(service, store):
    service.register("a@x.com")
    with pytest.raises(InvalidCode):
        service.verify("a@x.com", "12345", now=NOW)

    assert service.get_status("a@x.com") == AccountState.REGISTERED
    assert store.attempts("a@x.com")[-1]["outcome"] == "invalid_code"


def test_verify_unknown_account(service):
    with pytest.raises(NotFound):
        service.verify("nobody@x.com", "123456", now=NOW)


def test_lock_registry_does_not_grow_for_unknown_accounts(service):
    for i in range(50):
        with pytest.raises(NotFound):
            service.verify(f"nobody{i}@x.com", "123456", now=NOW)
    assert service._locks == {}


def test_lock_registry_is_empty_after_use(service):
    service.register("a@x.com")
    service.verify("a@x.com", current_code(service, "a@x.com", now=NOW), now=NOW)
    with pytest.raises(AlreadyExists):
        service.register("a@x.com")
    assert service._locks == {}


def test_code_from_previous_step_is_accepted(service):
    service.register("a@x.com")
    code = current_code(service, "a@x.com", now=NOW - 30)
    assert service.verify("a@x.com", code, now=NOW).matched_step == otp_core.time_step(NOW) - 1


def test_same_code_cannot_be_replayed(service):
    service.register("a@x.com")
    code = current_code(service, "a@x.com")
    service.verify("a@x.com", code, now=NOW)

    with pytest.raises(ReplayedCode):
        service.verify("a@x.com", code, now=NOW + 5)


def test_older_step_is_rejected_after_newer_one(service):
    service.register("a@x.com")
    service.verify("a@x.com", current_code(service, "a@x.com"), now=NOW)

    older = current_code(service, "a@x.com", now=NOW - 30)
    with pytest.raises(ReplayedCode):
        service.verify("a@x.com", older, now=NOW)


def test_next_step_code_is_accepted_after_success(service):
    service.register("a@x.com")
    service.verify("a@x.com", current_code(service, "a@x.com"), now=NOW)
    assert service.verify("a@x.com", current_code(service, "a@x.com", NOW + 30), now=NOW + 30).matched


def test_failed_verification_after_verified_keeps_state(service):
    service.register("a@x.com")
    service.verify("a@x.com", current_code(service, "a@x.com"), now=NOW)
    with pytest.raises(InvalidCode):
        service.verify("a@x.com", "00", now=NOW + 30)
    assert service.get_status("a@x.com") == AccountState.VERIFIED


# --- attempt limiting ------------------------------------------------------------


def test_rate_limit_blocks_even_correct_codes(service):
    service.register("a@x.com")
    for _ in range(3):
        with pytest.raises(InvalidCode):
            service.verify("a@x.com", "12345", now=NOW)

    with pytest.raises(RateLimited):
        service.verify("a@x.com", current_code(service, "a@x.com"), now=NOW)
    assert service.get_status("a@x.com") == AccountState.REGISTERED


def test_rate_limit_expires_after_interval(service):
    service.register("a@x.com")
    for _ in range(3):
        with pytest.raises(InvalidCode):
            service.verify("a@x.com", "12345", now=NOW)

    later = NOW + 61
    assert service.verify("a@x.com", current_code(service, "a@x.com", later), now=later).matched


def test_success_resets_failure_count(service):
    service.register("a@x.com")
    for _ in range(2):
        with pytest.raises(InvalidCode):
            service.verify("a@x.com", "12345", now=NOW)
    service.verify("a@x.com", current_code(service, "a@x.com"), now=NOW)

    for _ in range(2):
        with pytest.raises(InvalidCode):
            service.verify("a@x.com", "12345", now=NOW + 1)
    later = NOW + 30
    assert service.verify("a@x.com", current_code(service, "a@x.com", later), now=later).matched


def test_replays_count_as_failures(service):
    service.register("a@x.com")
    code = current_code(service, "a@x.com")
    service.verify("a@x.com", code, now=NOW)
    for _ in range(3):
        with pytest.raises(ReplayedCode):
            service.verify("a@x.com", code, now=NOW)
    with pytest.raises(RateLimited):
        service.verify("a@x.com", code, now=NOW)


def test_rate_limit_is_per_account(service):
    service.register("a@x.com")
    service.register("b@x.com")
    for _ in range(3):
        with pytest.raises(InvalidCode):
            service.verify("a@x.com", "12345", now=NOW)
    assert service.verify("b@x.com", current_code(service, "b@x.com"), now=NOW).matched


# --- concurrency -----------------------------------------------------------------


def test_concurrent_submissions_consume_step_once(service):
    service.register("a@x.com")
    code = current_code(service, "a@x.com")
    barrier = threading.Barrier(4)
    outcomes = []

    def submit():
        barrier.wait()
        try:
            service.verify("a@x.com", code, now=NOW)
            outcomes.append("ok")
        except ReplayedCode:
            outcomes.append("replayed")

    threads = [threading.Thread(target=submit) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["ok", "replayed", "replayed", "replayed"]


def test_separate_services_share_the_replay_marker(service, store):
    other = AccountService(store, policy=VerificationPolicy(max_failures=3, interval=60))
    service.register("a@x.com")
    code = current_code(service, "a@x.com")

    service.verify("a@x.com", code, now=NOW)
    with pytest.raises(ReplayedCode):
        other.verify("a@x.com", code, now=NOW)


# --- code delivery -----------------------------------------------------------------


def test_send_code_delivers_current_code(service):
    service.register("a@x.com")
    channel = RecordingChannel()

    remaining = service.send_code("a@x.com", channel, now=NOW)

    assert remaining == 20
    destination, message = channel.sent[0]
    assert destination == "a@x.com"
    assert current_code(service, "a@x.com") in message
    assert "20 seconds" in message


def test_delivery_failure_leaves_account_registered(service):
    service.register("a@x.com")
    with pytest.raises(DeliveryFailed):
        service.send_code("a@x.com", BrokenChannel(), now=NOW)
    assert service.get_status("a@x.com") == AccountState.REGISTERED


def test_send_code_unknown_account(service):
    with pytest.raises(NotFound):
        service.send_code("nobody@x.com", RecordingChannel(), now=NOW)
