"""PKCE (Proof Key for Code Exchange) helpers.

RFC 7636 protects public OAuth clients with a random *code verifier* kept by
the client and a *code challenge* derived from it that is sent to the
authorization endpoint. Only the S256 transformation is implemented.

This module performs no logging of verifiers, challenges or states.
"""

from __future__ import annotations

import base64
import re
from hashlib import sha256
from typing import Final

from aws_oidc_console.auth.capabilities import RandomSource, SystemRandomSource
from aws_oidc_console.auth.models import PKCEParams

_VERIFIER_BYTES: Final[int] = 32
_STATE_BYTES: Final[int] = 16
_VERIFIER_RE: Final = re.compile(r"^[A-Za-z0-9\-._~]{43,128}$")


def base64url(data: bytes) -> str:
    """Base64-URL encode *data* without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def generate_code_verifier(random: RandomSource | None = None) -> str:
    """Generate a 43 character code verifier from 32 random bytes."""
    random = random or SystemRandomSource()
    return base64url(random.token_bytes(_VERIFIER_BYTES))


def generate_code_challenge(verifier: str) -> str:
    """Compute the S256 code challenge for *verifier*."""
    return base64url(sha256(verifier.encode("ascii")).digest())


def generate_state(random: RandomSource | None = None) -> str:
    """Generate an opaque state value from 16 random bytes."""
    random = random or SystemRandomSource()
    return base64url(random.token_bytes(_STATE_BYTES))


def is_valid_code_verifier(verifier: str | None) -> bool:
    """Check length and charset of a code verifier against RFC 7636."""
    return bool(verifier) and _VERIFIER_RE.match(verifier) is not None


def generate_pkce_params(random: RandomSource | None = None) -> PKCEParams:
    """Generate a fresh verifier / challenge / state triple."""
    verifier = generate_code_verifier(random)
    return PKCEParams(
        verifier=verifier,
        challenge=generate_code_challenge(verifier),
        state=generate_state(random),
    )
