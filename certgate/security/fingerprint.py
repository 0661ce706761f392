"""
Certificate fingerprint helpers.
"""
import re
from typing import Dict, Optional, Union

from cryptography import x509
from cryptography.hazmat.primitives import hashes

from .models import HashAlgorithm, PeerCertificate

_SEPARATORS = re.compile(r"[\s:]")
_HEX = re.compile(r"[0-9A-F]+")

_DIGESTS = {
    HashAlgorithm.SHA1: hashes.SHA1,
    HashAlgorithm.SHA256: hashes.SHA256,
}


def canonical_fingerprint(value: Optional[str]) -> str:
    """
    Normalize a fingerprint to uppercase, colon-separated hex ("AA:BB:...").

    Returns an empty string for anything that is not an even-length hex
    string; the empty fingerprint never matches an allow-list entry.
    """
    if not isinstance(value, str):
        return ""
    digits = _SEPARATORS.sub("", value).upper()
    if not digits or len(digits) % 2 or not _HEX.fullmatch(digits):
        return ""
    return ":".join(digits[i:i + 2] for i in range(0, len(digits), 2))


def compute_fingerprints(cert: x509.Certificate) -> Dict[HashAlgorithm, str]:
    """Digest the certificate's DER encoding with every supported algorithm."""
    return {
        algorithm: canonical_fingerprint(cert.fingerprint(digest()).hex())
        for algorithm, digest in _DIGESTS.items()
    }


def select_fingerprint(cert: PeerCertificate,
                       hash_algorithm: Union[HashAlgorithm, str, None] = None) -> str:
    """
    Pick the fingerprint compared against the allow-list.

    SHA-256 when asked for it, SHA-1 otherwise. A digest missing from the
    certificate yields "" so the lookup denies instead of raising.
    """
    if not isinstance(hash_algorithm, HashAlgorithm):
        hash_algorithm = HashAlgorithm.parse(hash_algorithm)
    return canonical_fingerprint(cert.fingerprints.get(hash_algorithm))
