"""
Security package for mTLS client certificate authentication.
"""
from .models import (
    AllowListDocument,
    AllowListEntry,
    AuthenticationResult,
    AuthFailure,
    AuthorizationDecision,
    CertificateBundle,
    DistinguishedName,
    HashAlgorithm,
    Identity,
    PeerCertificate,
    TrustSignal,
    ValidityStatus,
)
from .allowlist import AllowListStore
from .authenticator import CertificateAuthenticator
from .fingerprint import canonical_fingerprint, select_fingerprint
from .identity import build_identity, current_identity
from .temporal import check_validity
from .security_service import SecurityService
from .auth_middleware import MTLSAuthMiddleware, setup_mtls_authentication, require_authentication

__all__ = [
    'AllowListDocument',
    'AllowListEntry',
    'AuthenticationResult',
    'AuthFailure',
    'AuthorizationDecision',
    'CertificateBundle',
    'DistinguishedName',
    'HashAlgorithm',
    'Identity',
    'PeerCertificate',
    'TrustSignal',
    'ValidityStatus',
    'AllowListStore',
    'CertificateAuthenticator',
    'canonical_fingerprint',
    'select_fingerprint',
    'build_identity',
    'current_identity',
    'check_validity',
    'SecurityService',
    'MTLSAuthMiddleware',
    'setup_mtls_authentication',
    'require_authentication'
]
