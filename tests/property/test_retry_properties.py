"""
Property-based tests for error classification and the retry loop.
"""

from hypothesis import given
from hypothesis import strategies as st

from scml.infrastructure.remote_store import (
    ErrorClass,
    RemoteStoreError,
    RetryConfig,
    TransientNetworkError,
    classify_error,
    execute_with_retry,
)
from scml.infrastructure.remote_store.retry import AUTHENTICATION_MARKERS


@st.composite
def mixed_case(draw, text):
    flips = draw(st.lists(st.booleans(), min_size=len(text), max_size=len(text)))
    return "".join(c.upper() if flip else c.lower() for c, flip in zip(text, flips))


@st.composite
def auth_failure_message(draw):
    marker = draw(st.sampled_from(AUTHENTICATION_MARKERS))
    prefix = draw(st.text(alphabet="abc :", max_size=10))
    return prefix + draw(mixed_case(marker))


@given(auth_failure_message())
def test_auth_markers_in_any_case_are_authentication(message):
    assert classify_error(RemoteStoreError(message)) is ErrorClass.AUTHENTICATION


@given(auth_failure_message(), st.integers(min_value=1, max_value=6))
def test_auth_failures_are_attempted_once(message, attempts):
    calls = []
    delays = []

    def operation():
        calls.append(1)
        raise RemoteStoreError(message)

    config = RetryConfig(max_attempts=attempts, sleep=delays.append)
    try:
        execute_with_retry(operation, "connect", config)
    except RemoteStoreError:
        pass

    assert len(calls) == 1
    assert delays == []


@given(
    st.integers(min_value=1, max_value=6),
    st.floats(min_value=0.0, max_value=5.0),
    st.floats(min_value=0.0, max_value=20.0),
)
def test_transient_failures_use_every_attempt(attempts, base_delay, max_delay):
    calls = []
    delays = []

    def operation():
        calls.append(1)
        raise TransientNetworkError("connection reset")

    config = RetryConfig(
        max_attempts=attempts, base_delay=base_delay, max_delay=max_delay, sleep=delays.append
    )
    try:
        execute_with_retry(operation, "read", config)
    except TransientNetworkError:
        pass

    assert len(calls) == attempts
    assert len(delays) == attempts - 1
    assert all(0.0 <= delay <= max_delay for delay in delays)
