"""
Device identity for OpenClaw gateway authentication.

Each deployment owns one Ed25519 keypair, persisted on first start. The
gateway identifies the device by the sha256 of the raw public key and checks a
per-handshake signature over the claimed client identity and scopes.
"""

from __future__ import annotations

import base64
import hashlib
import json
import os
import time
from dataclasses import dataclass
from pathlib import Path

import structlog
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

logger = structlog.get_logger()

IDENTITY_FILE_VERSION = 1
DEVICE_AUTH_VERSION = "v1"


class IdentityError(RuntimeError):
    """Device identity could not be loaded or persisted."""


def b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def b64url_decode(value: str) -> bytes:
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(value + padding)


def _raw_public_bytes(public_key: Ed25519PublicKey | str | bytes) -> bytes:
    if isinstance(public_key, Ed25519PublicKey):
        return public_key.public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
    if isinstance(public_key, str):
        public_key = public_key.encode("utf-8")
    if public_key.lstrip().startswith(b"-----BEGIN"):
        loaded = serialization.load_pem_public_key(public_key.strip())
        if not isinstance(loaded, Ed25519PublicKey):
            raise IdentityError("public key is not an Ed25519 key")
        return _raw_public_bytes(loaded)
    if len(public_key) != 32:
        raise IdentityError(f"raw Ed25519 public key must be 32 bytes, got {len(public_key)}")
    return public_key


def fingerprint(public_key: Ed25519PublicKey | str | bytes) -> str:
    """Hash the raw public-key point, ignoring PEM/SPKI wrapping and whitespace."""
    return hashlib.sha256(_raw_public_bytes(public_key)).hexdigest()


def build_device_auth_payload(
    *,
    device_id: str,
    client_id: str,
    client_mode: str,
    role: str,
    scopes: list[str],
    signed_at_ms: int,
    token: str | None,
) -> str:
    """Canonical string signed during the handshake.

    Binds the signature to the connection's claimed identity, role and scopes.
    """
    parts = [
        DEVICE_AUTH_VERSION,
        device_id,
        client_id,
        client_mode,
        role,
        ",".join(scopes),
        str(signed_at_ms),
        token or "",
    ]
    return "|".join(parts)


def verify_signature(public_key_b64url: str, payload: str, signature: str) -> bool:
    """Check a URL-safe base64 signature against a raw URL-safe base64 public key."""
    try:
        public_key = Ed25519PublicKey.from_public_bytes(b64url_decode(public_key_b64url))
        public_key.verify(b64url_decode(signature), payload.encode("utf-8"))
    except (InvalidSignature, ValueError):
        return False
    return True


@dataclass(frozen=True)
class DeviceIdentity:
    device_id: str
    public_key: Ed25519PublicKey
    private_key: Ed25519PrivateKey

    @property
    def public_key_b64url(self) -> str:
        return b64url_encode(_raw_public_bytes(self.public_key))

    @property
    def public_key_pem(self) -> str:
        return self.public_key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        ).decode("utf-8")

    @property
    def private_key_pem(self) -> str:
        return self.private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ).decode("utf-8")

    def sign(self, payload: str) -> str:
        """Sign the UTF-8 payload; returns URL-safe base64 without padding."""
        return b64url_encode(self.private_key.sign(payload.encode("utf-8")))

    @classmethod
    def generate(cls) -> DeviceIdentity:
        private_key = Ed25519PrivateKey.generate()
        public_key = private_key.public_key()
        return cls(device_id=fingerprint(public_key), public_key=public_key, private_key=private_key)


def _from_stored(data: object) -> DeviceIdentity | None:
    if not isinstance(data, dict):
        return None
    device_id = data.get("deviceId")
    public_pem = data.get("publicKeyPem")
    private_pem = data.get("privateKeyPem")
    if not all(isinstance(value, str) and value.strip() for value in (device_id, public_pem, private_pem)):
        return None

    public_key = serialization.load_pem_public_key(public_pem.encode("utf-8"))
    private_key = serialization.load_pem_private_key(private_pem.encode("utf-8"), password=None)
    if not isinstance(public_key, Ed25519PublicKey) or not isinstance(private_key, Ed25519PrivateKey):
        return None

    derived_id = fingerprint(public_key)
    if derived_id != device_id:
        logger.warning("identity.device_id_mismatch", stored=device_id[:16], derived=derived_id[:16])
    return DeviceIdentity(device_id=derived_id, public_key=public_key, private_key=private_key)


def _persist(identity: DeviceIdentity, path: Path) -> None:
    stored = {
        "version": IDENTITY_FILE_VERSION,
        "deviceId": identity.device_id,
        "publicKeyPem": identity.public_key_pem,
        "privateKeyPem": identity.private_key_pem,
        "createdAtMs": int(time.time() * 1000),
    }
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(f"{json.dumps(stored, indent=2)}\n")
        path.chmod(0o600)
    except OSError as exc:
        raise IdentityError(f"Could not persist device identity to {path}: {exc}") from exc


def load_or_create(path: str | Path) -> DeviceIdentity:
    """Load the persisted device identity, generating and saving one if absent or invalid."""
    path = Path(path).expanduser()

    if path.exists():
        try:
            identity = _from_stored(json.loads(path.read_text("utf-8")))
        except (OSError, ValueError, TypeError, UnsupportedAlgorithm) as exc:
            logger.warning("identity.load_failed", path=str(path), error=str(exc))
            identity = None
        if identity is not None:
            logger.debug("identity.loaded", device_id=identity.device_id[:16])
            return identity

    identity = DeviceIdentity.generate()
    _persist(identity, path)
    logger.info("identity.created", path=str(path), device_id=identity.device_id[:16])
    return identity
