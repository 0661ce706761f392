"""
Client certificate authentication for the Flask app.

MTLSAuthMiddleware runs at the WSGI layer and records its decision in the
environ; the before_request hook turns a rejection into a JSON response.
"""
import logging
import urllib.parse
from functools import wraps
from typing import Optional

from flask import request, g, jsonify

from .authenticator import CertificateAuthenticator
from .identity import attach_identity, current_identity
from .models import AuthenticationResult, AuthFailure, TrustSignal
from .security_service import SecurityService

# Endpoints reachable without a client certificate
PUBLIC_ENDPOINTS = frozenset({'health_check'})

_ERROR_TITLES = {
    AuthFailure.NO_CERTIFICATE: 'Client certificate validation failed',
    AuthFailure.NOT_YET_VALID: 'Client certificate validation failed',
    AuthFailure.EXPIRED: 'Client certificate validation failed',
    AuthFailure.NOT_WHITELISTED: 'Certificate not authorized',
    AuthFailure.INTERNAL_FAULT: 'Internal server error during certificate validation',
}


class MTLSAuthMiddleware:
    """WSGI middleware that authenticates every request by its client certificate."""

    def __init__(self, app, security_service: SecurityService,
                 authenticator: CertificateAuthenticator, config):
        self.app = app
        self.security_service = security_service
        self.authenticator = authenticator
        self.config = config
        self.logger = logging.getLogger(__name__)

        self.wsgi_app = app.wsgi_app
        app.wsgi_app = self

    def __call__(self, environ, start_response):
        client_cert_pem = self._extract_client_certificate(environ)
        result = self._authenticate(environ, client_cert_pem)

        environ['mtls.client_cert'] = client_cert_pem
        environ['mtls.result'] = result
        environ['mtls.authenticated'] = result.is_authenticated

        if result.is_authenticated:
            attach_identity(environ, result.identity)
            self.logger.info(
                f"Client authenticated: {result.identity.client_id}",
                extra={'extra_data': {'remote_addr': environ.get('REMOTE_ADDR')}}
            )
        else:
            self.logger.warning(
                f"Client authentication failed: {result.reason}",
                extra={'extra_data': {
                    'remote_addr': environ.get('REMOTE_ADDR'),
                    'failure': result.failure.code if result.failure else None,
                }}
            )

        return self.wsgi_app(environ, start_response)

    def _authenticate(self, environ, client_cert_pem: Optional[str]) -> AuthenticationResult:
        if not client_cert_pem:
            return self.authenticator.authenticate(None)

        try:
            peer = self.security_service.parse_peer_certificate(client_cert_pem)
            trust = self._extract_trust_signal(environ, client_cert_pem)
        except Exception as e:
            self.logger.error(f"Failed to parse client certificate: {e}")
            return self.authenticator.internal_fault()

        return self.authenticator.authenticate(peer, trust)

    def _proxy_headers_trusted(self) -> bool:
        return bool(getattr(self.config, 'trust_proxy_headers', False))

    def _extract_client_certificate(self, environ) -> Optional[str]:
        """PEM of the client certificate, or None when the request carries none."""
        # Werkzeug's TLS server, Apache mod_ssl, nginx + uwsgi
        client_cert = environ.get('SSL_CLIENT_CERT')
        if client_cert:
            return client_cert

        # Request headers are client controlled unless a proxy overwrites them
        if not self._proxy_headers_trusted():
            return None

        # HTTP_SSL_CLIENT_CERT (some reverse proxies)
        client_cert = environ.get('HTTP_SSL_CLIENT_CERT')
        if client_cert:
            return urllib.parse.unquote(client_cert)

        # X-SSL-CERT header (nginx with proxy_set_header)
        client_cert = environ.get('HTTP_X_SSL_CERT')
        if client_cert:
            cert_content = client_cert.strip()
            if cert_content.startswith('-----BEGIN CERTIFICATE-----'):
                body = cert_content.replace('-----BEGIN CERTIFICATE-----', '')
                body = body.replace('-----END CERTIFICATE-----', '')
            else:
                body = cert_content
            body = '\n'.join(body.split())
            return f"-----BEGIN CERTIFICATE-----\n{body}\n-----END CERTIFICATE-----"

        return None

    def _extract_trust_signal(self, environ, client_cert_pem: str) -> TrustSignal:
        """Chain verification result reported by the transport, or our own CA check."""
        verify_status = environ.get('SSL_CLIENT_VERIFY')
        if verify_status is None and self._proxy_headers_trusted():
            verify_status = environ.get('HTTP_X_SSL_CLIENT_VERIFY')

        trust = SecurityService.trust_signal_from_verify(verify_status)
        if trust is None:
            trust = self.security_service.verify_against_ca(client_cert_pem)
        return trust


def _rejection_response(result: Optional[AuthenticationResult]):
    failure = result.failure if result and result.failure else AuthFailure.NO_CERTIFICATE
    details = result.reason if result else "certificate required"
    if failure is AuthFailure.INTERNAL_FAULT:
        details = 'Please contact administrator'
    return jsonify({
        'error': _ERROR_TITLES[failure],
        'details': details
    }), failure.status_code


def setup_mtls_authentication(app, security_service: SecurityService,
                              authenticator: CertificateAuthenticator, config):
    """Install the middleware and the gate that rejects unauthenticated requests."""
    MTLSAuthMiddleware(app, security_service, authenticator, config)

    @app.before_request
    def authenticate_request():
        """Reject the request unless the middleware admitted its certificate."""
        if request.endpoint in PUBLIC_ENDPOINTS:
            g.identity = None
            g.client_id = 'anonymous'
            return

        result = request.environ.get('mtls.result')
        if result is None or not result.is_authenticated:
            return _rejection_response(result)

        g.identity = result.identity
        g.client_id = result.identity.client_id

    return app


def require_authentication(f):
    """Refuse the view unless the request carries an admitted identity."""

    @wraps(f)
    def wrapper(*args, **kwargs):
        if current_identity() is None:
            return jsonify({
                'error': 'Authentication required',
                'message': 'A whitelisted client certificate is required'
            }), 401
        return f(*args, **kwargs)
    return wrapper
