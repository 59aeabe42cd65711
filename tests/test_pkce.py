"""Unit tests for PKCE helpers (verifier, S256 challenge, state)."""

import re

import pytest

from aws_oidc_console.auth import capabilities
from aws_oidc_console.auth.capabilities import FixedRandomSource, SystemRandomSource
from aws_oidc_console.auth.errors import CryptoUnavailableError
from aws_oidc_console.auth.pkce import (
    generate_code_challenge,
    generate_code_verifier,
    generate_pkce_params,
    generate_state,
    is_valid_code_verifier,
)

ALLOWED_CHARS_RE = re.compile(r"^[A-Za-z0-9\-._~]+$")  # RFC-7636


class TestCodeVerifier:
    def test_verifier_is_43_unreserved_chars(self):
        verifier = generate_code_verifier()
        assert len(verifier) == 43
        assert ALLOWED_CHARS_RE.match(verifier)
        assert is_valid_code_verifier(verifier)

    def test_verifiers_are_unique(self):
        assert generate_code_verifier() != generate_code_verifier()

    def test_verifier_uses_injected_random_source(self):
        random = FixedRandomSource(b"\x00" * 32)
        assert generate_code_verifier(random) == "A" * 43

    def test_missing_randomness_raises(self, monkeypatch):
        def unavailable(nbytes):
            raise NotImplementedError

        monkeypatch.setattr(capabilities.secrets, "token_bytes", unavailable)
        with pytest.raises(CryptoUnavailableError):
            generate_code_verifier(SystemRandomSource())

    @pytest.mark.parametrize(
        "verifier",
        ["", "short", "a" * 42, "a" * 129, "a" * 42 + "+", "a" * 42 + "="],
    )
    def test_invalid_verifiers_rejected(self, verifier):
        assert not is_valid_code_verifier(verifier)


class TestCodeChallenge:
    def test_rfc7636_appendix_b_vector(self):
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
        assert generate_code_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"

    def test_challenge_is_deterministic_and_url_safe(self):
        verifier = generate_code_verifier()
        challenge = generate_code_challenge(verifier)
        assert challenge == generate_code_challenge(verifier)
        assert len(challenge) == 43
        assert not set("+/=") & set(challenge)


class TestState:
    def test_state_is_base64url_of_16_bytes(self):
        state = generate_state()
        assert len(state) == 22
        assert ALLOWED_CHARS_RE.match(state)

    def test_pkce_params_are_consistent(self):
        params = generate_pkce_params(FixedRandomSource(b"\x01", b"\x02"))
        assert params.challenge == generate_code_challenge(params.verifier)
        assert params.state == "AgICAgICAgICAgICAgICAg"
        assert params.verifier != params.state
