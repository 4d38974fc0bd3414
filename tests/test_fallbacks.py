import pytest

from campaign_engine.errors import RemoteFatalError, ValidationError
from campaign_engine.services.fallbacks import (
    ErrorClass,
    Strategy,
    classify_meta_error,
    run_fallback_chain,
)
from campaign_engine.services.meta_ads import MetaAdsError


def _raiser(exc):
    def run():
        raise exc

    return run


def test_classify_invalid_parameter_code_is_retryable(meta_error):
    assert classify_meta_error(meta_error("Invalid parameter", code=100)) is ErrorClass.RETRYABLE


def test_classify_marker_text_is_retryable(meta_error):
    exc = meta_error("The instagram_actor_id is not valid for this page", code=2500)
    assert classify_meta_error(exc) is ErrorClass.RETRYABLE


def test_classify_auth_and_other_errors_are_fatal(meta_error):
    assert classify_meta_error(meta_error("Error validating access token", code=190)) is ErrorClass.FATAL
    assert classify_meta_error(MetaAdsError("Meta Graph API request failed: timeout")) is ErrorClass.FATAL
    assert classify_meta_error(ValueError("boom")) is ErrorClass.FATAL


def test_run_fallback_chain_returns_first_success(meta_error):
    outcome = run_fallback_chain(
        [
            Strategy("first", _raiser(meta_error("Invalid parameter"))),
            Strategy("second", lambda: "ok"),
            Strategy("third", lambda: pytest.fail("third strategy should not run")),
        ],
        name="Test chain",
    )

    assert outcome.value == "ok"
    assert outcome.label == "second"
    assert [a.as_dict()["label"] for a in outcome.attempts] == ["first", "second"]
    assert outcome.attempts[0].as_dict()["code"] == 100
    assert outcome.attempts[1].ok is True


def test_run_fallback_chain_stops_on_fatal_error(meta_error):
    calls = []

    def second():
        calls.append("second")
        return "never"

    with pytest.raises(RemoteFatalError) as excinfo:
        run_fallback_chain(
            [Strategy("first", _raiser(meta_error("Session has expired", code=190))), Strategy("second", second)],
            name="Test chain",
        )

    assert calls == []
    assert excinfo.value.code == 190
    assert excinfo.value.remote_message == "Session has expired"
    assert excinfo.value.details["attempts"][-1]["label"] == "first"


def test_run_fallback_chain_surfaces_last_error_when_exhausted(meta_error):
    with pytest.raises(RemoteFatalError) as excinfo:
        run_fallback_chain(
            [
                Strategy("a", _raiser(meta_error("Invalid parameter A"))),
                Strategy("b", _raiser(meta_error("Invalid parameter B", subcode=1885183))),
            ],
            name="Test chain",
        )

    assert excinfo.value.remote_message == "Invalid parameter B"
    assert excinfo.value.subcode == 1885183
    assert len(excinfo.value.details["attempts"]) == 2


def test_run_fallback_chain_lets_local_errors_propagate():
    with pytest.raises(ValidationError):
        run_fallback_chain(
            [Strategy("a", _raiser(ValidationError("missing url"))), Strategy("b", lambda: "ok")],
            name="Test chain",
        )
