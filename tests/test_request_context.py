import time

import pytest

from credit_oracle.core.context import RequestContext
from credit_oracle.core.exceptions import CancellationError, OracleError


def test_background_context_never_expires():
    ctx = RequestContext.background()
    assert ctx.remaining() is None
    assert ctx.is_cancelled() is False
    assert ctx.timeout_for(10.0) == 10.0
    ctx.raise_if_cancelled()


def test_explicit_cancel():
    ctx = RequestContext.background()
    ctx.cancel()
    assert ctx.is_cancelled()
    with pytest.raises(CancellationError, match="cancelled"):
        ctx.raise_if_cancelled()


def test_deadline_expiry():
    ctx = RequestContext.with_timeout(0.05)
    assert not ctx.is_cancelled()
    time.sleep(0.1)
    assert ctx.is_cancelled()
    assert ctx.remaining() == 0.0
    with pytest.raises(CancellationError, match="deadline"):
        ctx.raise_if_cancelled()


def test_timeout_for_is_shortened_by_deadline():
    ctx = RequestContext.with_timeout(2.0)
    assert ctx.timeout_for(10.0) <= 2.0
    assert ctx.timeout_for(0.5) == 0.5


def test_cancellation_error_is_an_oracle_error():
    assert issubclass(CancellationError, OracleError)
