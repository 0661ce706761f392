"""
Admission decisions for client certificates.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from .allowlist import AllowListStore
from .fingerprint import select_fingerprint
from .identity import build_identity
from .models import (
    AuthenticationResult,
    AuthFailure,
    AuthorizationDecision,
    PeerCertificate,
    TrustSignal,
    ValidityStatus,
)
from .temporal import check_validity

CERTIFICATE_REQUIRED = "certificate required"
INTERNAL_ERROR = "internal error during certificate validation"


class CertificateAuthenticator:
    """
    Decides whether a peer certificate is admitted.

    Checks run in a fixed order and the first failure wins:
    certificate presence, validity window, transport trust, allow-list.
    A failed trust chain is only logged unless ``enforce_chain_trust`` is
    set, leaving the allow-list as the single admission authority.
    """

    def __init__(self, allowlist_store: AllowListStore, enforce_chain_trust: bool = False):
        self.allowlist_store = allowlist_store
        self.enforce_chain_trust = enforce_chain_trust
        self.logger = logging.getLogger(__name__)

    def authenticate(self, peer: Optional[PeerCertificate],
                     trust: Optional[TrustSignal] = None,
                     now: Optional[datetime] = None) -> AuthenticationResult:
        """
        Run every admission check against a peer certificate.

        Args:
            peer: Certificate presented by the client, or None
            trust: Chain verification outcome from the transport layer
            now: Evaluation time, defaults to the current UTC time

        Returns:
            AuthenticationResult carrying an Identity only when admitted
        """
        try:
            return self._evaluate(peer, trust, now or datetime.now(timezone.utc))
        except Exception as e:
            self.logger.error(f"Unexpected error during certificate validation: {e}",
                              exc_info=True)
            return self._deny(AuthFailure.INTERNAL_FAULT, INTERNAL_ERROR)

    def _evaluate(self, peer: Optional[PeerCertificate], trust: Optional[TrustSignal],
                  now: datetime) -> AuthenticationResult:
        if peer is None or peer.subject is None or peer.subject.is_empty():
            self.logger.warning("No client certificate provided")
            return self._deny(AuthFailure.NO_CERTIFICATE, CERTIFICATE_REQUIRED)

        status = check_validity(peer, now)
        if status is ValidityStatus.NOT_YET_VALID:
            self.logger.warning(
                f"Client certificate not yet valid: {peer.subject} "
                f"(valid from {peer.not_before.isoformat()})"
            )
            return self._deny(
                AuthFailure.NOT_YET_VALID,
                f"certificate not yet valid (valid from {peer.not_before.isoformat()})"
            )
        if status is ValidityStatus.EXPIRED:
            self.logger.warning(
                f"Client certificate expired: {peer.subject} "
                f"(valid until {peer.not_after.isoformat()})"
            )
            return self._deny(
                AuthFailure.EXPIRED,
                f"certificate expired (valid until {peer.not_after.isoformat()})"
            )

        if trust is not None and not trust.authorized:
            error = trust.authorization_error or "certificate not trusted"
            self.logger.warning(
                f"Client certificate not authorized by TLS layer: {peer.subject} ({error})"
            )
            if self.enforce_chain_trust:
                return self._deny(AuthFailure.NOT_WHITELISTED,
                                  f"certificate not trusted: {error}")

        # One snapshot so a concurrent reload cannot mix algorithms
        document = self.allowlist_store.document
        hash_algorithm = document.hash_algorithm
        fingerprint = select_fingerprint(peer, hash_algorithm)
        decision = self.allowlist_store.check(fingerprint, document)
        if not decision.allowed:
            self.logger.warning(
                f"Certificate not in whitelist: {peer.subject} ({decision.reason})"
            )
            return AuthenticationResult(decision=decision, failure=AuthFailure.NOT_WHITELISTED)

        identity = build_identity(peer, fingerprint, hash_algorithm)
        self.logger.info(
            f"Client certificate validation successful: {peer.subject}",
            extra={'extra_data': {
                'issuer': str(peer.issuer),
                'serial_number': peer.serial_number,
                'fingerprint': fingerprint,
                'whitelist_reason': decision.reason,
            }}
        )
        return AuthenticationResult(decision=decision, identity=identity)

    @classmethod
    def internal_fault(cls) -> AuthenticationResult:
        """Generic denial for faults raised outside the checks themselves."""
        return cls._deny(AuthFailure.INTERNAL_FAULT, INTERNAL_ERROR)

    @staticmethod
    def _deny(failure: AuthFailure, reason: str) -> AuthenticationResult:
        return AuthenticationResult(
            decision=AuthorizationDecision(allowed=False, reason=reason),
            failure=failure,
        )
