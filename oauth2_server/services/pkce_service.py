from __future__ import annotations

import base64
import hashlib
import hmac
import re
import secrets

# PKCE (RFC 7636) helpers shared by the authorize step, which records the
# challenge, and the token step, which checks the verifier against it.
#
# Two challenge methods:
#   S256 : challenge = base64url(sha256(verifier)), no padding
#   plain: challenge = verifier (only for clients that cannot hash)

SUPPORTED_METHODS = ("plain", "S256")

# 43-128 chars from the unreserved set; challenges share the same shape.
_VERIFIER_RE = re.compile(r"^[A-Za-z0-9\-._~]{43,128}$")


def is_well_formed(value: str) -> bool:
    return bool(_VERIFIER_RE.match(value))


def generate_code_verifier() -> str:
    # 32 bytes of random data gives us 43 chars after base64url encoding,
    # which is the minimum length.
    random_bytes = secrets.token_bytes(32)
    return base64.urlsafe_b64encode(random_bytes).rstrip(b"=").decode("utf-8")


def compute_code_challenge(code_verifier: str, method: str = "S256") -> str:
    if method == "plain":
        return code_verifier
    if method == "S256":
        sha256_digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
        return base64.urlsafe_b64encode(sha256_digest).rstrip(b"=").decode("utf-8")
    raise ValueError(f"unsupported code_challenge_method {method!r}")


def verify_code_challenge(code_verifier: str, expected_challenge: str, method: str) -> bool:
    """Compare challenge derived from verifier against the stored challenge.

    Uses constant-time comparison so response timing does not leak how much
    of a guessed verifier matched.
    """
    if method not in SUPPORTED_METHODS or not is_well_formed(code_verifier):
        return False
    actual_challenge = compute_code_challenge(code_verifier, method)
    return hmac.compare_digest(actual_challenge, expected_challenge)
