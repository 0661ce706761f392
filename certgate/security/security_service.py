"""
Security service for mTLS certificate handling.
"""
import ssl
import os
import logging
from typing import Optional, Union
from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.x509.oid import NameOID

from .fingerprint import compute_fingerprints
from .models import CertificateBundle, DistinguishedName, PeerCertificate, TrustSignal


_NAME_ATTRIBUTES = {
    NameOID.COMMON_NAME: 'common_name',
    NameOID.ORGANIZATION_NAME: 'organization',
    NameOID.ORGANIZATIONAL_UNIT_NAME: 'organizational_unit',
    NameOID.COUNTRY_NAME: 'country',
    NameOID.STATE_OR_PROVINCE_NAME: 'state',
    NameOID.LOCALITY_NAME: 'locality',
}

MTLS_CIPHERS = "ECDHE+AESGCM:ECDHE+CHACHA20:DHE+AESGCM:DHE+CHACHA20:!aNULL:!MD5:!DSS"


class SecurityService:
    """Server TLS setup plus parsing and CA checks of client certificates."""

    def __init__(self, config):
        self.config = config
        self.logger = logging.getLogger(__name__)
        self._certificate_bundle: Optional[CertificateBundle] = None
        self._ca_certificate: Optional[x509.Certificate] = None

    def load_certificates(self) -> CertificateBundle:
        """
        Read the server certificate, key and CA into a CertificateBundle.

        With mTLS disabled nothing is read and the bundle is empty; TLS is
        then terminated elsewhere. Missing or empty files raise.
        """
        if not getattr(self.config, 'enable_mtls', False):
            self.logger.info("mTLS disabled; server certificates not loaded")
            self._certificate_bundle = CertificateBundle(server_cert="", server_key="", ca_cert="")
            return self._certificate_bundle

        try:
            bundle = CertificateBundle(
                server_cert=self._read_pem(self.config.server_cert_path),
                server_key=self._read_pem(self.config.server_key_path),
                ca_cert=self._read_pem(self.config.ca_cert_path)
            )
            self._ca_certificate = x509.load_pem_x509_certificate(bundle.ca_cert.encode())
        except (OSError, ValueError) as e:
            self.logger.error(f"Failed to load certificates: {e}")
            raise

        self._certificate_bundle = bundle
        self.logger.info(f"Loaded server certificate and trust anchor {self.config.ca_cert_path}")
        return bundle

    def _read_pem(self, file_path: str) -> str:
        if not os.path.exists(file_path):
            raise FileNotFoundError(f"Certificate file not found: {file_path}")
        with open(file_path, 'r') as f:
            content = f.read()
        if not content.strip():
            raise ValueError(f"Certificate file is empty: {file_path}")
        return content

    def parse_peer_certificate(self, cert_data: Union[str, bytes]) -> PeerCertificate:
        """
        Parse a client certificate handed over by the transport layer.

        Args:
            cert_data: PEM text or DER bytes

        Returns:
            PeerCertificate with both SHA-1 and SHA-256 fingerprints

        Raises:
            ValueError: If the data is not a certificate
        """
        cert = self._load_x509(cert_data)
        return self._to_peer_certificate(cert)

    def _load_x509(self, cert_data: Union[str, bytes]) -> x509.Certificate:
        if isinstance(cert_data, str):
            return x509.load_pem_x509_certificate(cert_data.encode())
        if cert_data.lstrip().startswith(b'-----BEGIN'):
            return x509.load_pem_x509_certificate(cert_data)
        return x509.load_der_x509_certificate(cert_data)

    def _to_peer_certificate(self, cert: x509.Certificate) -> PeerCertificate:
        """Extract the fields the gateway needs from a certificate."""
        return PeerCertificate(
            subject=self._distinguished_name(cert.subject),
            issuer=self._distinguished_name(cert.issuer),
            serial_number=format(cert.serial_number, 'X'),
            not_before=cert.not_valid_before_utc,
            not_after=cert.not_valid_after_utc,
            fingerprints=compute_fingerprints(cert)
        )

    def _distinguished_name(self, name: x509.Name) -> DistinguishedName:
        values = {}
        for oid, field_name in _NAME_ATTRIBUTES.items():
            attributes = name.get_attributes_for_oid(oid)
            if attributes:
                values[field_name] = str(attributes[0].value)
        return DistinguishedName(attribute_count=len(name), **values)

    def verify_against_ca(self, cert_data: Union[str, bytes]) -> TrustSignal:
        """
        Check that a client certificate was issued and signed by the configured CA.

        Used when the transport layer does not report its own verification
        result. Never raises; failures become an unauthorized TrustSignal.
        """
        ca_cert = self._get_ca_certificate()
        if ca_cert is None:
            return TrustSignal(authorized=False, authorization_error="no trust anchor configured")

        try:
            cert = self._load_x509(cert_data)
            cert.verify_directly_issued_by(ca_cert)
            return TrustSignal(authorized=True)
        except ValueError as e:
            # Issuer name mismatch
            self.logger.debug(f"Certificate not issued by trusted CA: {e}")
            return TrustSignal(authorized=False, authorization_error="certificate not issued by trusted CA")
        except (InvalidSignature, TypeError) as e:
            self.logger.debug(f"Signature verification failed: {e}")
            return TrustSignal(authorized=False, authorization_error="certificate signature verification failed")

    def _get_ca_certificate(self) -> Optional[x509.Certificate]:
        """CA certificate from the loaded bundle, or read from ca_cert_path."""
        if self._ca_certificate is not None:
            return self._ca_certificate

        ca_path = getattr(self.config, 'ca_cert_path', None)
        if not ca_path or not os.path.exists(ca_path):
            return None

        try:
            with open(ca_path, 'rb') as f:
                self._ca_certificate = x509.load_pem_x509_certificate(f.read())
        except (OSError, ValueError) as e:
            self.logger.error(f"Failed to load CA certificate {ca_path}: {e}")
            return None
        return self._ca_certificate

    @staticmethod
    def trust_signal_from_verify(verify_status: Optional[str]) -> Optional[TrustSignal]:
        """
        Interpret an SSL_CLIENT_VERIFY value (Apache/nginx convention).

        Returns None when the transport did not report a status.
        """
        if verify_status is None:
            return None

        status = verify_status.strip()
        if status.upper() == 'SUCCESS':
            return TrustSignal(authorized=True)
        if status.upper().startswith('FAILED'):
            _, _, error = status.partition(':')
            return TrustSignal(authorized=False, authorization_error=error.strip() or "verification failed")
        return TrustSignal(authorized=False, authorization_error="no client certificate verified")

    def setup_mtls_context(self) -> ssl.SSLContext:
        """
        Server-side TLS context that asks every client for a certificate.

        The handshake verifies clients against ca_cert_path. With
        client_cert_required off the certificate is optional and its absence
        is left to the authentication layer to reject.
        """
        if not self._certificate_bundle:
            raise ValueError("Certificate bundle not loaded. Call load_certificates() first.")

        context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
        context.minimum_version = ssl.TLSVersion.TLSv1_2
        context.set_ciphers(MTLS_CIPHERS)
        context.load_cert_chain(certfile=self.config.server_cert_path, keyfile=self.config.server_key_path)
        context.load_verify_locations(cafile=self.config.ca_cert_path)
        context.verify_mode = ssl.CERT_REQUIRED if self.config.client_cert_required else ssl.CERT_OPTIONAL

        mode = "required" if self.config.client_cert_required else "optional"
        self.logger.info(f"TLS context ready, client certificates {mode}")
        return context
