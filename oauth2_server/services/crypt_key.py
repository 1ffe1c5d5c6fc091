"""PEM key loading for the signer.

A key source is any of:
  - an inline PEM string or bytes ("-----BEGIN ...")
  - a file:// URI
  - a plain filesystem path

Only RSA and EC P-256 keys are accepted; they map to the JWT algorithms
RS256 and ES256.  Anything else is rejected at load time rather than at
the first signature.
"""

from __future__ import annotations

import logging
from pathlib import Path

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from oauth2_server.core.errors import CryptoError

logger = logging.getLogger(__name__)

PrivateKey = rsa.RSAPrivateKey | ec.EllipticCurvePrivateKey
PublicKey = rsa.RSAPublicKey | ec.EllipticCurvePublicKey

_FILE_PREFIX = "file://"


def _read_source(source: str | bytes) -> bytes:
    if isinstance(source, bytes):
        return source
    if source.lstrip().startswith("-----BEGIN"):
        return source.encode("ascii")
    path = Path(source[len(_FILE_PREFIX):] if source.startswith(_FILE_PREFIX) else source)
    try:
        return path.read_bytes()
    except OSError as e:
        raise CryptoError(f"Key path {str(path)!r} does not exist or is not readable") from e


def algorithm_for(key: PrivateKey | PublicKey) -> str:
    if isinstance(key, rsa.RSAPrivateKey | rsa.RSAPublicKey):
        return "RS256"
    if isinstance(key, ec.EllipticCurvePrivateKey | ec.EllipticCurvePublicKey):
        if not isinstance(key.curve, ec.SECP256R1):
            raise CryptoError(f"Unsupported EC curve {key.curve.name}; use P-256")
        return "ES256"
    raise CryptoError(f"Unsupported key type {type(key).__name__}")


def load_private_key(source: str | bytes, passphrase: str | None = None) -> PrivateKey:
    pem = _read_source(source)
    password = passphrase.encode("utf-8") if passphrase else None
    try:
        key = serialization.load_pem_private_key(pem, password=password)
    except (ValueError, TypeError) as e:
        # Wrong passphrase, missing passphrase and malformed PEM all land here.
        raise CryptoError(f"Unable to load private key: {e}") from e
    algorithm_for(key)  # type: ignore[arg-type]
    return key  # type: ignore[return-value]


def load_public_key(source: str | bytes) -> PublicKey:
    pem = _read_source(source)
    try:
        key = serialization.load_pem_public_key(pem)
    except (ValueError, TypeError) as e:
        raise CryptoError(f"Unable to load public key: {e}") from e
    algorithm_for(key)  # type: ignore[arg-type]
    return key  # type: ignore[return-value]


def generate_private_key(algorithm: str = "ES256") -> PrivateKey:
    """Ephemeral key for dev and tests; tokens die with the process."""
    logger.warning("Generating an ephemeral %s signing key; do not use in production", algorithm)
    if algorithm == "ES256":
        return ec.generate_private_key(ec.SECP256R1())
    if algorithm == "RS256":
        return rsa.generate_private_key(public_exponent=65537, key_size=2048)
    raise CryptoError(f"Unsupported algorithm {algorithm!r}")


def private_key_to_pem(key: PrivateKey, passphrase: str | None = None) -> bytes:
    encryption: serialization.KeySerializationEncryption = (
        serialization.BestAvailableEncryption(passphrase.encode("utf-8"))
        if passphrase
        else serialization.NoEncryption()
    )
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=encryption,
    )


def public_key_to_pem(key: PublicKey) -> bytes:
    return key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
