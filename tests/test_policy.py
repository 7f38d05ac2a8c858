import pytest

from eauth.core.errors import ConfigurationError, RateLimited, ReplayedCode
from eauth.core.policy import VerificationPolicy


def test_defaults():
    policy = VerificationPolicy().validate()
    assert policy.max_failures == 5
    assert policy.interval == 300
    assert policy.window_start(1000) == 700


def test_check_rate():
    policy = VerificationPolicy(max_failures=2)
    policy.check_rate(0)
    policy.check_rate(1)
    with pytest.raises(RateLimited):
        policy.check_rate(2)


def test_check_replay():
    VerificationPolicy.check_replay(5, None)
    VerificationPolicy.check_replay(6, 5)
    with pytest.raises(ReplayedCode):
        VerificationPolicy.check_replay(5, 5)
    with pytest.raises(ReplayedCode):
        VerificationPolicy.check_replay(4, 5)


@pytest.mark.parametrize("kwargs", [{"max_failures": 0}, {"interval": 0}, {"max_failures": "3"}])
def test_invalid_policy(kwargs):
    with pytest.raises(ConfigurationError):
        VerificationPolicy(**kwargs).validate()
