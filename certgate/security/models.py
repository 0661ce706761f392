"""
Security models for mTLS certificate authentication.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple


class HashAlgorithm(Enum):
    """Digest used to fingerprint client certificates."""
    SHA1 = "sha1"
    SHA256 = "sha256"

    @classmethod
    def parse(cls, value: Optional[str]) -> 'HashAlgorithm':
        """Return SHA256 for "sha256" (any case), SHA1 for anything else."""
        if isinstance(value, str) and value.strip().lower() == cls.SHA256.value:
            return cls.SHA256
        return cls.SHA1

    @property
    def label(self) -> str:
        return self.value.upper()


class ValidityStatus(Enum):
    """Result of checking a certificate's validity window."""
    VALID = "valid"
    NOT_YET_VALID = "not_yet_valid"
    EXPIRED = "expired"


class AuthFailure(Enum):
    """Reasons a request can be refused, with the HTTP status for each."""
    NO_CERTIFICATE = ("no_certificate", 401)
    NOT_YET_VALID = ("not_yet_valid", 401)
    EXPIRED = ("expired", 401)
    NOT_WHITELISTED = ("not_whitelisted", 403)
    INTERNAL_FAULT = ("internal_fault", 500)

    def __init__(self, code: str, status_code: int):
        self.code = code
        self.status_code = status_code

    @property
    def is_temporal(self) -> bool:
        return self in (AuthFailure.NOT_YET_VALID, AuthFailure.EXPIRED)


@dataclass(frozen=True)
class DistinguishedName:
    """The handful of distinguished-name attributes the gateway consumes."""
    common_name: Optional[str] = None
    organization: Optional[str] = None
    organizational_unit: Optional[str] = None
    country: Optional[str] = None
    state: Optional[str] = None
    locality: Optional[str] = None
    # every attribute in the parsed name, including ones without a field above
    attribute_count: int = 0

    _SHORT_NAMES = (
        ('CN', 'common_name'),
        ('O', 'organization'),
        ('OU', 'organizational_unit'),
        ('C', 'country'),
        ('ST', 'state'),
        ('L', 'locality'),
    )

    def is_empty(self) -> bool:
        if self.attribute_count:
            return False
        return not any(getattr(self, attr) for _, attr in self._SHORT_NAMES)

    def to_dict(self) -> Dict[str, str]:
        """Render as a short-name map, e.g. {'CN': 'client', 'O': 'Demo'}."""
        return {
            short: getattr(self, attr)
            for short, attr in self._SHORT_NAMES
            if getattr(self, attr)
        }

    def __str__(self):
        return ", ".join(f"{key}={value}" for key, value in self.to_dict().items())


@dataclass(frozen=True)
class PeerCertificate:
    """Parsed client certificate as presented during the handshake."""
    subject: DistinguishedName
    issuer: DistinguishedName
    serial_number: str
    not_before: datetime
    not_after: datetime
    fingerprints: Mapping[HashAlgorithm, str] = field(default_factory=dict)


@dataclass(frozen=True)
class TrustSignal:
    """Whether the transport layer chained the certificate to a trust anchor."""
    authorized: bool
    authorization_error: Optional[str] = None


@dataclass(frozen=True)
class AllowListEntry:
    """One trusted fingerprint in the allow-list document."""
    fingerprint: str
    description: str = ""
    enabled: bool = False
    subject: Optional[str] = None
    organization: Optional[str] = None
    added_date: Optional[str] = None


@dataclass(frozen=True)
class AllowListDocument:
    """Complete allow-list as loaded from disk."""
    entries: Tuple[AllowListEntry, ...] = ()
    enabled: bool = False
    hash_algorithm: HashAlgorithm = HashAlgorithm.SHA1

    @classmethod
    def disabled(cls) -> 'AllowListDocument':
        """Fallback used when the document is missing or malformed."""
        return cls(entries=(), enabled=False, hash_algorithm=HashAlgorithm.SHA1)


@dataclass(frozen=True)
class AuthorizationDecision:
    """Admit/deny outcome with a loggable reason."""
    allowed: bool
    reason: str


@dataclass(frozen=True)
class Identity:
    """Verified client identity attached to an admitted request."""
    subject: DistinguishedName
    issuer: DistinguishedName
    serial_number: str
    fingerprint: str
    hash_algorithm: HashAlgorithm
    not_before: datetime
    not_after: datetime
    authenticated: bool = True

    @property
    def client_id(self) -> str:
        """Subject common name, or the serial number when there is none."""
        return self.subject.common_name or self.serial_number

    def to_dict(self) -> Dict[str, Any]:
        return {
            'subject': self.subject.to_dict(),
            'issuer': self.issuer.to_dict(),
            'serial_number': self.serial_number,
            'fingerprint': self.fingerprint,
            'hash_algorithm': self.hash_algorithm.value,
            'valid_from': self.not_before.isoformat(),
            'valid_to': self.not_after.isoformat(),
            'authenticated': self.authenticated,
        }


@dataclass
class AuthenticationResult:
    """Result of client certificate authentication."""
    decision: AuthorizationDecision
    identity: Optional[Identity] = None
    failure: Optional[AuthFailure] = None

    @property
    def is_authenticated(self) -> bool:
        return (
            self.decision.allowed
            and self.identity is not None
            and self.identity.authenticated
        )

    @property
    def reason(self) -> str:
        return self.decision.reason


@dataclass
class CertificateBundle:
    """Certificates needed to serve HTTPS with client authentication."""
    server_cert: str
    server_key: str
    ca_cert: str
