"""Tests for the exception hierarchy."""

from __future__ import annotations

from unittest.mock import Mock

import pytest

from ldapscope.exceptions import ReferralError
from ldapscope.interfaces import DirContext


class IncompleteReferralError(ReferralError):
    pass


class StaticReferralError(ReferralError):
    def __init__(self, urls: list[str], context: DirContext) -> None:
        super().__init__("Referral", urls)
        self.context = context

    def get_referral_context(self) -> DirContext:
        return self.context


def test_referral_error_abstract() -> None:
    with pytest.raises(TypeError, match="get_referral_context"):
        ReferralError("Referral", ["ldap://other.example.com/"])
    with pytest.raises(TypeError, match="get_referral_context"):
        IncompleteReferralError("Referral", ["ldap://other.example.com/"])


def test_referral_error_subclass() -> None:
    context = Mock(spec=DirContext)
    error = StaticReferralError(["ldap://other.example.com/"], context)

    assert error.urls == ["ldap://other.example.com/"]
    assert str(error) == "Referral"
    assert error.get_referral_context() is context
    with pytest.raises(StaticReferralError):
        raise error
