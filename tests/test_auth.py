"""Tests for bearer-token issue/verify."""
from modules.auth import GUEST, TokenService


def test_issue_and_verify_roundtrip():
    tokens = TokenService("s3cret")
    identity = tokens.verify(tokens.issue(7, "Ana"))
    assert identity.user_id == 7
    assert identity.username == "Ana"
    assert not identity.is_guest


def test_verify_rejects_garbage():
    assert TokenService("s3cret").verify("not-a-jwt") is None


def test_verify_rejects_other_secret():
    token = TokenService("one").issue(7, "Ana")
    assert TokenService("two").verify(token) is None


def test_guest_identity():
    assert GUEST.is_guest
    assert GUEST.username == "Visitante"
