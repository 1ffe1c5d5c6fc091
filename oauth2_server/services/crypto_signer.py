"""Signing and encryption for everything the server hands out.

TWO KINDS OF TOKEN, TWO KINDS OF CRYPTO
-----------------------------------------
Access tokens are SIGNED (asymmetric).  A resource server holding only
the public key can check that a token came from us and has not been
altered, without calling back.  The claims are readable by anyone.

Refresh tokens and authorization codes are ENCRYPTED (symmetric,
Fernet = AES-128-CBC + HMAC-SHA256).  Only this server ever reads them,
so their contents stay private and the HMAC makes any tampering fail
decryption.  To the client they are opaque bearer strings.

Both kinds of key are loaded once when the signer is built and live as
long as the server.  Rotating the encryption key invalidates every
outstanding refresh token and auth code; rotating the signing key
invalidates every outstanding access token.
"""

from __future__ import annotations

import logging
from typing import Any

import jwt
from cryptography.exceptions import InvalidSignature
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa

from oauth2_server.core.errors import CryptoError
from oauth2_server.services import crypt_key
from oauth2_server.services.crypt_key import PrivateKey, PublicKey

logger = logging.getLogger(__name__)


def generate_encryption_key() -> str:
    return Fernet.generate_key().decode("ascii")


class CryptoSigner:
    def __init__(
        self,
        private_key: PrivateKey,
        public_key: PublicKey,
        encryption_key: str | bytes,
    ) -> None:
        self.algorithm = crypt_key.algorithm_for(public_key)
        if crypt_key.algorithm_for(private_key) != self.algorithm:
            raise CryptoError("Private and public key types do not match")
        self._private_key = private_key
        self._public_key = public_key
        try:
            self._fernet = Fernet(encryption_key)
        except (ValueError, TypeError) as e:
            raise CryptoError("Encryption key must be 32 url-safe base64-encoded bytes") from e

    @classmethod
    def from_pem(
        cls,
        private_key: str | bytes,
        encryption_key: str | bytes,
        *,
        public_key: str | bytes | None = None,
        passphrase: str | None = None,
    ) -> CryptoSigner:
        """Build from key sources (inline PEM, file:// URI or path).

        Without an explicit public key, the private key's own public half
        is used.
        """
        private = crypt_key.load_private_key(private_key, passphrase)
        public = (
            crypt_key.load_public_key(public_key)
            if public_key is not None
            else private.public_key()
        )
        return cls(private, public, encryption_key)

    @classmethod
    def ephemeral(
        cls, algorithm: str = "ES256", *, encryption_key: str | bytes | None = None
    ) -> CryptoSigner:
        """Throwaway signing key; pass `encryption_key` to keep payloads readable across restarts."""
        private = crypt_key.generate_private_key(algorithm)
        return cls(private, private.public_key(), encryption_key or generate_encryption_key())

    @property
    def public_key(self) -> PublicKey:
        return self._public_key

    # ------------------------------------------------------------------
    # Asymmetric: sign / verify raw payloads
    # ------------------------------------------------------------------

    def sign(self, payload: bytes) -> bytes:
        if isinstance(self._private_key, rsa.RSAPrivateKey):
            return self._private_key.sign(payload, padding.PKCS1v15(), hashes.SHA256())
        return self._private_key.sign(payload, ec.ECDSA(hashes.SHA256()))

    def verify(self, payload: bytes, signature: bytes) -> bool:
        try:
            if isinstance(self._public_key, rsa.RSAPublicKey):
                self._public_key.verify(signature, payload, padding.PKCS1v15(), hashes.SHA256())
            else:
                self._public_key.verify(signature, payload, ec.ECDSA(hashes.SHA256()))
        except InvalidSignature:
            return False
        return True

    # ------------------------------------------------------------------
    # Asymmetric: JWT access tokens
    # ------------------------------------------------------------------

    def encode_jwt(self, claims: dict[str, Any]) -> str:
        return jwt.encode(claims, self._private_key, algorithm=self.algorithm)

    def decode_jwt(self, token: str, *, audience: str | None = None) -> dict[str, Any]:
        """Verify signature and time claims, return the payload.

        Pins the algorithm to the key type to prevent alg:none and
        alg-switching attacks.  Audience is only checked when given.
        """
        try:
            return jwt.decode(
                token,
                self._public_key,
                algorithms=[self.algorithm],
                audience=audience,
                options={
                    "require": ["jti", "exp", "iat"],
                    "verify_aud": audience is not None,
                },
            )
        except jwt.InvalidTokenError as e:
            raise CryptoError(f"Access token could not be verified: {e}") from e

    # ------------------------------------------------------------------
    # Symmetric: opaque refresh tokens and auth codes
    # ------------------------------------------------------------------

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    def decrypt(self, token: str) -> str:
        try:
            return self._fernet.decrypt(token).decode("utf-8")
        except InvalidToken as e:
            raise CryptoError("Token was tampered with or encrypted with another key") from e
        except (ValueError, TypeError) as e:
            # Non-ASCII or non-string input never reaches Fernet's own checks.
            raise CryptoError("Token is malformed") from e
