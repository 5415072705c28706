import jwt
import pytest

from festfm_auth.session import is_operator, issue_session_token, verify_session_token


def test_issue_and_verify_session_token(monkeypatch):
    monkeypatch.setenv("SESSION_JWT_SECRET", "test-secret")
    token, meta = issue_session_token()
    claims = verify_session_token(token)
    assert claims["sid"] == meta["session_id"]
    assert claims["role"] == "listener"
    assert "exp" in claims
    assert not is_operator(claims)


def test_operator_role_claim():
    token, meta = issue_session_token("stage-secret", role="operator")
    assert meta["role"] == "operator"
    assert is_operator(verify_session_token(token, "stage-secret"))


def test_wrong_secret_rejected():
    token, _ = issue_session_token("stage-secret")
    with pytest.raises(jwt.InvalidTokenError):
        verify_session_token(token, "other-secret")


def test_missing_secret_raises(monkeypatch):
    monkeypatch.delenv("SESSION_JWT_SECRET", raising=False)
    with pytest.raises(ValueError):
        issue_session_token()


def test_unknown_role_raises():
    with pytest.raises(ValueError):
        issue_session_token("stage-secret", role="headliner")
