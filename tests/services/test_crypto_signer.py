from __future__ import annotations

import time
from pathlib import Path

import pytest

from oauth2_server.core.errors import CryptoError
from oauth2_server.services import crypt_key
from oauth2_server.services.crypto_signer import CryptoSigner, generate_encryption_key


def _claims(**overrides: object) -> dict[str, object]:
    now = int(time.time())
    claims: dict[str, object] = {
        "aud": "foo",
        "jti": "abc123",
        "iat": now,
        "nbf": now,
        "exp": now + 3600,
        "sub": "",
        "scopes": ["foo", "bar"],
    }
    claims.update(overrides)
    return claims


def _flip_char(value: str, index: int) -> str:
    replacement = "A" if value[index] != "A" else "B"
    return value[:index] + replacement + value[index + 1 :]


# ---- asymmetric: sign / verify ----


@pytest.mark.parametrize("signer_fixture", ["signer", "rsa_signer"])
def test_sign_verify_round_trip(signer_fixture: str, request: pytest.FixtureRequest) -> None:
    signer: CryptoSigner = request.getfixturevalue(signer_fixture)
    signature = signer.sign(b"payload")
    assert signer.verify(b"payload", signature)


@pytest.mark.parametrize("signer_fixture", ["signer", "rsa_signer"])
def test_verify_fails_when_payload_byte_flipped(
    signer_fixture: str, request: pytest.FixtureRequest
) -> None:
    signer: CryptoSigner = request.getfixturevalue(signer_fixture)
    signature = signer.sign(b"payload")
    assert not signer.verify(b"paylobd", signature)


def test_verify_fails_with_another_key(signer: CryptoSigner) -> None:
    other = CryptoSigner.ephemeral("ES256")
    assert not other.verify(b"payload", signer.sign(b"payload"))


def test_algorithm_is_pinned_to_key_type(signer: CryptoSigner, rsa_signer: CryptoSigner) -> None:
    assert signer.algorithm == "ES256"
    assert rsa_signer.algorithm == "RS256"


def test_mismatched_key_types_rejected(signer: CryptoSigner, rsa_signer: CryptoSigner) -> None:
    private = crypt_key.generate_private_key("ES256")
    with pytest.raises(CryptoError, match="do not match"):
        CryptoSigner(private, rsa_signer.public_key, generate_encryption_key())


# ---- asymmetric: JWT ----


@pytest.mark.parametrize("signer_fixture", ["signer", "rsa_signer"])
def test_jwt_verifies_with_public_key(signer_fixture: str, request: pytest.FixtureRequest) -> None:
    signer: CryptoSigner = request.getfixturevalue(signer_fixture)
    token = signer.encode_jwt(_claims())
    decoded = signer.decode_jwt(token, audience="foo")
    assert decoded["jti"] == "abc123"
    assert decoded["scopes"] == ["foo", "bar"]


def test_jwt_with_flipped_signature_byte_is_rejected(signer: CryptoSigner) -> None:
    token = signer.encode_jwt(_claims())
    header, payload, signature = token.split(".")
    # Flip a character in the middle; the last char may only carry padding bits.
    tampered = ".".join([header, payload, _flip_char(signature, len(signature) // 2)])
    with pytest.raises(CryptoError):
        signer.decode_jwt(tampered)


def test_jwt_with_altered_payload_is_rejected(signer: CryptoSigner) -> None:
    token = signer.encode_jwt(_claims())
    header, payload, signature = token.split(".")
    tampered = ".".join([header, _flip_char(payload, 10), signature])
    with pytest.raises(CryptoError):
        signer.decode_jwt(tampered)


def test_jwt_from_another_key_is_rejected(signer: CryptoSigner) -> None:
    token = CryptoSigner.ephemeral("ES256").encode_jwt(_claims())
    with pytest.raises(CryptoError):
        signer.decode_jwt(token)


def test_expired_jwt_is_rejected(signer: CryptoSigner) -> None:
    now = int(time.time())
    token = signer.encode_jwt(_claims(iat=now - 7200, nbf=now - 7200, exp=now - 3600))
    with pytest.raises(CryptoError):
        signer.decode_jwt(token)


def test_jwt_audience_checked_when_given(signer: CryptoSigner) -> None:
    token = signer.encode_jwt(_claims())
    with pytest.raises(CryptoError):
        signer.decode_jwt(token, audience="someone-else")


# ---- symmetric: encrypt / decrypt ----


def test_encrypt_decrypt_round_trip(signer: CryptoSigner) -> None:
    ciphertext = signer.encrypt('{"client_id": "foo"}')
    assert "foo" not in ciphertext
    assert signer.decrypt(ciphertext) == '{"client_id": "foo"}'


def test_decrypt_detects_tampering(signer: CryptoSigner) -> None:
    ciphertext = signer.encrypt("hello")
    with pytest.raises(CryptoError):
        signer.decrypt(_flip_char(ciphertext, len(ciphertext) // 2))


def test_decrypt_with_another_key_fails(signer: CryptoSigner) -> None:
    ciphertext = CryptoSigner.ephemeral("ES256").encrypt("hello")
    with pytest.raises(CryptoError):
        signer.decrypt(ciphertext)


@pytest.mark.parametrize("garbage", ["", "not-a-token", "ümlaut"])
def test_decrypt_rejects_garbage(signer: CryptoSigner, garbage: str) -> None:
    with pytest.raises(CryptoError):
        signer.decrypt(garbage)


def test_bad_encryption_key_rejected() -> None:
    private = crypt_key.generate_private_key("ES256")
    with pytest.raises(CryptoError, match="Encryption key"):
        CryptoSigner(private, private.public_key(), "too-short")


# ---- key loading ----


def test_from_pem_inline(signer: CryptoSigner) -> None:
    private = crypt_key.generate_private_key("ES256")
    pem = crypt_key.private_key_to_pem(private).decode("ascii")
    loaded = CryptoSigner.from_pem(pem, generate_encryption_key())
    assert loaded.verify(b"payload", loaded.sign(b"payload"))


def test_from_pem_file_uri_with_passphrase(tmp_path: Path) -> None:
    private = crypt_key.generate_private_key("ES256")
    key_file = tmp_path / "private.pem"
    key_file.write_bytes(crypt_key.private_key_to_pem(private, passphrase="s3cret"))
    public_file = tmp_path / "public.pem"
    public_file.write_bytes(crypt_key.public_key_to_pem(private.public_key()))

    loaded = CryptoSigner.from_pem(
        f"file://{key_file}",
        generate_encryption_key(),
        public_key=str(public_file),
        passphrase="s3cret",
    )
    token = loaded.encode_jwt(_claims())
    assert loaded.decode_jwt(token)["aud"] == "foo"


def test_from_pem_wrong_passphrase(tmp_path: Path) -> None:
    private = crypt_key.generate_private_key("ES256")
    key_file = tmp_path / "private.pem"
    key_file.write_bytes(crypt_key.private_key_to_pem(private, passphrase="s3cret"))
    with pytest.raises(CryptoError, match="Unable to load private key"):
        CryptoSigner.from_pem(str(key_file), generate_encryption_key(), passphrase="wrong")


def test_from_pem_missing_file(tmp_path: Path) -> None:
    with pytest.raises(CryptoError, match="does not exist"):
        CryptoSigner.from_pem(f"file://{tmp_path}/nope.pem", generate_encryption_key())


def test_unsupported_curve_rejected() -> None:
    from cryptography.hazmat.primitives.asymmetric import ec

    key = ec.generate_private_key(ec.SECP384R1())
    pem = crypt_key.private_key_to_pem(key)  # type: ignore[arg-type]
    with pytest.raises(CryptoError, match="P-256"):
        crypt_key.load_private_key(pem)
