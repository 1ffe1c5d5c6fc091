"""Grant engine metrics using the Prometheus client library.

All metrics are defined here so the inventory lives in one place.  The
authorization server increments them at the point of dispatch.

  oauth_tokens_issued_total{grant_type, token_type}
    Counter.  token_type is "access_token", "refresh_token" or
    "auth_code".  rate() over it gives issuance per grant.

  oauth_grant_errors_total{grant_type, error_type}
    Counter.  A spike in invalid_client for one grant is usually a
    misconfigured client; a spike in invalid_request (refresh) after a
    key rotation means old refresh tokens no longer decrypt.
"""

from __future__ import annotations

from prometheus_client import Counter

TOKENS_ISSUED = Counter(
    "oauth_tokens_issued_total",
    "Tokens and authorization codes minted, by grant and token type",
    ["grant_type", "token_type"],
)

GRANT_ERRORS = Counter(
    "oauth_grant_errors_total",
    "Requests rejected by a grant, by grant and OAuth error type",
    ["grant_type", "error_type"],  # grant_type is "-" when no grant matched
)
