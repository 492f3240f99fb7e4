"""Tests for session policy defaults and validation."""

import pytest

from proctor_app.core.session_policy import SessionPolicy, TimePolicy


def test_defaults():
    policy = SessionPolicy()

    assert policy.violation_threshold == 3
    assert policy.time_policy is TimePolicy.SESSION
    assert not policy.require_media
    assert not policy.require_fullscreen
    assert policy.debounce_seconds == 1.0


@pytest.mark.parametrize(
    "overrides",
    [
        {"violation_threshold": 0},
        {"debounce_seconds": -1},
        {"execution_timeout_seconds": 0},
        {"recording_max_chunks": 0},
    ],
)
def test_invalid_values_are_rejected(overrides):
    with pytest.raises(ValueError):
        SessionPolicy(**overrides)

