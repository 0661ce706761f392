"""
Flask application guarded by mTLS client certificate authentication.
"""
from flask import Flask, jsonify, g
import logging
import ssl
from typing import Optional
from datetime import datetime

from .security import AllowListStore, CertificateAuthenticator, SecurityService
from .security.auth_middleware import setup_mtls_authentication, require_authentication
from .security.identity import current_identity
from .services.config_service import ConfigService
from .services.logging_service import LoggingService

SECURITY_HEADERS = {
    'Strict-Transport-Security': 'max-age=31536000; includeSubDomains',
    'Content-Security-Policy': "default-src 'none'; frame-ancestors 'none'",
    'X-Content-Type-Options': 'nosniff',
    'X-Frame-Options': 'DENY',
    'Referrer-Policy': 'no-referrer',
    'Cache-Control': 'no-store',
}

# status -> (error, message)
ERROR_BODIES = {
    404: ('Not found', 'No such endpoint'),
    405: ('Method not allowed', 'This endpoint does not accept that method'),
    500: ('Internal server error', 'Please contact administrator'),
}


class SecureFlaskApp:
    """
    The gateway's Flask application.

    Every route except /health sits behind client certificate
    authentication; handlers read the caller through current_identity().
    """

    def __init__(self, config_service: ConfigService,
                 logging_service: Optional[LoggingService] = None,
                 allowlist_store: Optional[AllowListStore] = None):
        self.app = Flask(__name__)
        self.config_service = config_service
        self.config = config_service.get_config()
        self.logging_service = logging_service
        self.logger = logging.getLogger(__name__)

        self.security_service = SecurityService(self.config)
        self.security_service.load_certificates()

        self.allowlist_store = allowlist_store or AllowListStore(self.config.allowlist_path)
        self.allowlist_store.load()
        self.authenticator = CertificateAuthenticator(
            self.allowlist_store,
            enforce_chain_trust=self.config.enforce_chain_trust
        )

        setup_mtls_authentication(self.app, self.security_service, self.authenticator, self.config)

        self._setup_routes()
        self._setup_error_handlers()
        self._setup_security_headers()

    def _setup_routes(self):
        app = self.app

        @app.route('/health', methods=['GET'])
        def health_check():
            report = {
                'status': 'healthy',
                'service': 'certgate',
                'mtls_enabled': self.config.enable_mtls,
                'whitelist': self.allowlist_store.get_status(),
                'timestamp': datetime.now().isoformat()
            }
            if self.logging_service:
                report['logging'] = self.logging_service.get_health_status()
            return jsonify(report)

        @app.route('/api/hello', methods=['GET'])
        @require_authentication
        def hello():
            identity = current_identity()
            return jsonify({
                'message': 'Hello! Certificate authentication successful.',
                'certificate': {
                    'subject': identity.subject.to_dict(),
                    'issuer': identity.issuer.to_dict(),
                    'fingerprint': identity.fingerprint,
                    'valid_from': identity.not_before.isoformat(),
                    'valid_to': identity.not_after.isoformat()
                },
                'timestamp': datetime.now().isoformat()
            })

        @app.route('/api/certificate', methods=['GET'])
        @require_authentication
        def certificate_details():
            """Everything the gateway knows about the caller's certificate."""
            identity = current_identity()
            self.logger.info(
                f"Certificate details requested by {g.client_id}",
                extra={'extra_data': identity.to_dict()}
            )
            return jsonify({'client_id': g.client_id, 'certificate': identity.to_dict()})

        @app.route('/api/whitelist/reload', methods=['POST'])
        @require_authentication
        def reload_whitelist():
            """Re-read the whitelist; a broken document leaves it disabled."""
            self.logger.info(f"Whitelist reload requested by {g.client_id}")
            self.allowlist_store.reload()
            status = self.allowlist_store.get_status()
            return jsonify({
                'reloaded': status['last_error'] is None,
                'whitelist': status,
                'client_id': g.client_id
            })

    def _setup_error_handlers(self):
        def make_handler(status, error, message):
            def handler(exc):
                if status >= 500:
                    self.logger.error(f"Internal server error: {exc}")
                return jsonify({'error': error, 'message': message}), status
            return handler

        for status, (error, message) in ERROR_BODIES.items():
            self.app.register_error_handler(status, make_handler(status, error, message))

    def _setup_security_headers(self):

        @self.app.after_request
        def add_security_headers(response):
            response.headers.update(SECURITY_HEADERS)
            response.headers.pop('Server', None)
            return response

    def create_ssl_context(self) -> ssl.SSLContext:
        return self.security_service.setup_mtls_context()

    def run(self, host: str = '0.0.0.0', port: Optional[int] = None, debug: bool = False):
        """
        Serve the application.

        With mTLS enabled Werkzeug terminates TLS itself and requests a
        client certificate. Otherwise plain HTTP is served and certificates
        must be forwarded by a TLS-terminating proxy.
        """
        port = port if port is not None else self.config.api_port
        options = {'host': host, 'port': port, 'debug': debug}

        if self.config.enable_mtls:
            options['ssl_context'] = self.create_ssl_context()
            self.logger.info(f"Starting mTLS server on https://{host}:{port}")
        else:
            self.logger.warning(
                f"Serving plain HTTP on http://{host}:{port}; "
                "client certificates must be forwarded by a proxy"
            )

        self.app.run(**options)

    def get_app(self) -> Flask:
        return self.app
