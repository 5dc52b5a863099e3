"""HMAC verification of GitHub webhook payloads."""

import hashlib
import hmac

from ghapp.errors import MalformedSignature

SUPPORTED_ALGORITHMS = {
    "sha1": hashlib.sha1,
    "sha256": hashlib.sha256,
}

_HEADER_NAMES = {
    "sha1": "X-Hub-Signature",
    "sha256": "X-Hub-Signature-256",
}


def parse_signature(value: str) -> tuple[str, bytes]:
    """Split ``"<alg>=<hex>"`` into the algorithm name and raw digest bytes."""
    method, sep, digest = value.strip().partition("=")
    if not sep or method not in SUPPORTED_ALGORITHMS:
        raise MalformedSignature("Signature must look like 'sha1=<hex>' or 'sha256=<hex>'")
    if any(ch.isspace() for ch in digest):
        raise MalformedSignature("Signature digest is not valid hex")
    try:
        return method, bytes.fromhex(digest)
    except ValueError:
        raise MalformedSignature("Signature digest is not valid hex") from None


def sign(payload: bytes, secret: bytes | str, algorithm: str = "sha256") -> str:
    if isinstance(secret, str):
        secret = secret.encode()
    digest = hmac.new(secret, payload, SUPPORTED_ALGORITHMS[algorithm]).hexdigest()
    return f"{algorithm}={digest}"


def verify_signature(
    payload: bytes,
    signature: str,
    secret: bytes | str,
    algorithm: str = "sha256",
) -> bool:
    """
    Check *signature* against the HMAC of the raw request body.

    Returns False on a digest mismatch (including a length mismatch).
    Raises MalformedSignature when the header can't be parsed or names an
    algorithm other than *algorithm*.
    """
    method, provided = parse_signature(signature)
    if method != algorithm:
        raise MalformedSignature(f"Expected a {algorithm} signature, got {method}")

    if isinstance(secret, str):
        secret = secret.encode()
    expected = hmac.new(secret, payload, SUPPORTED_ALGORITHMS[algorithm]).digest()
    if len(expected) != len(provided):
        return False
    return hmac.compare_digest(expected, provided)


class SignatureVerifier:
    """Binds a webhook secret and digest algorithm for repeated verification."""

    def __init__(self, secret: bytes | str, algorithm: str = "sha256"):
        if algorithm not in SUPPORTED_ALGORITHMS:
            raise ValueError(f"Unsupported signature algorithm: {algorithm}")
        self._secret = secret.encode() if isinstance(secret, str) else bytes(secret)
        self.algorithm = algorithm

    @property
    def header_name(self) -> str:
        return _HEADER_NAMES[self.algorithm]

    def verify(self, payload: bytes, signature: str) -> bool:
        return verify_signature(payload, signature, self._secret, self.algorithm)

    def __repr__(self) -> str:
        return f"SignatureVerifier(algorithm={self.algorithm!r})"
