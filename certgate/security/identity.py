"""
Identity records for admitted requests.
"""
from typing import Any, MutableMapping, Optional

from flask import g, has_request_context, request

from .models import HashAlgorithm, Identity, PeerCertificate

IDENTITY_ENVIRON_KEY = 'certgate.identity'


def build_identity(cert: PeerCertificate, fingerprint: str,
                   hash_algorithm: HashAlgorithm) -> Identity:
    """Copy the verified certificate's fields into an Identity."""
    return Identity(
        subject=cert.subject,
        issuer=cert.issuer,
        serial_number=cert.serial_number,
        fingerprint=fingerprint,
        hash_algorithm=hash_algorithm,
        not_before=cert.not_before,
        not_after=cert.not_after,
        authenticated=True,
    )


def attach_identity(environ: MutableMapping[str, Any], identity: Identity):
    """Attach the identity to a request environ; at most once per request."""
    if environ.get(IDENTITY_ENVIRON_KEY) is not None:
        raise RuntimeError("An identity is already attached to this request")
    environ[IDENTITY_ENVIRON_KEY] = identity


def current_identity() -> Optional[Identity]:
    """Identity of the client making the current Flask request, if admitted."""
    if not has_request_context():
        return None
    identity = getattr(g, 'identity', None)
    if identity is None:
        identity = request.environ.get(IDENTITY_ENVIRON_KEY)
    if identity is None or not identity.authenticated:
        return None
    return identity
