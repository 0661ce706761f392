"""
Command line entry point for the certificate authentication gateway.

SIGHUP re-reads the whitelist; SIGINT and SIGTERM stop the server.
"""

import argparse
import os
import sys
import signal
import logging
import threading
from typing import Optional
from datetime import datetime

from .security import AllowListStore, SecurityService, select_fingerprint
from .security.models import HashAlgorithm
from .services.config_service import ConfigService
from .services.logging_service import LoggingService
from .app import SecureFlaskApp

# First existing file wins; the first entry is where a default config is written.
CONFIG_SEARCH_PATHS = (
    "config/certgate.properties",
    "certgate.properties",
    os.path.expanduser("~/.certgate/config.properties"),
    "/etc/certgate/config.properties",
)


class CertGatewayApplication:
    """Wires configuration, logging, the whitelist and the Flask app together."""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or self._get_default_config_path()
        self.logger = logging.getLogger(__name__)
        self.config_service = None
        self.config = None
        self.logging_service = None
        self.allowlist_store = None
        self.flask_app = None

        self._stopped = threading.Event()
        self._is_running = False
        self._started_at = None

    def _get_default_config_path(self) -> str:
        return next((path for path in CONFIG_SEARCH_PATHS if os.path.exists(path)),
                    CONFIG_SEARCH_PATHS[0])

    def _setup_signal_handlers(self):
        def stop(signum, frame):
            self.logger.info(f"{signal.Signals(signum).name} received, stopping gateway")
            self.shutdown()
            raise SystemExit(0)

        def reload(signum, frame):
            self.logger.info("SIGHUP received, re-reading whitelist")
            self.reload_whitelist()

        signal.signal(signal.SIGINT, stop)
        signal.signal(signal.SIGTERM, stop)
        if hasattr(signal, 'SIGHUP'):
            signal.signal(signal.SIGHUP, reload)

    def load_configuration(self) -> bool:
        """
        Read the properties file and start file logging.

        A missing file is replaced by the default template and reported as
        failure so the operator can review it before the first start.
        """
        self.config_service = ConfigService()

        if not os.path.exists(self.config_path):
            self.config_service.create_default_config_file(self.config_path)
            self.logger.warning(
                f"No configuration at {self.config_path}; wrote a default one. "
                "Review it and start the gateway again."
            )
            return False

        try:
            self.config = self.config_service.load_config(self.config_path)
        except (OSError, ValueError) as e:
            self.logger.error(f"Failed to load configuration: {e}")
            return False

        self.logging_service = LoggingService(self.config)
        self.logger.info(f"Using configuration {self.config_path}")
        return True

    def initialize(self) -> bool:
        if not self.load_configuration():
            return False

        try:
            self.allowlist_store = AllowListStore(self.config.allowlist_path)
            self.flask_app = SecureFlaskApp(
                self.config_service,
                logging_service=self.logging_service,
                allowlist_store=self.allowlist_store
            )
        except (OSError, ValueError) as e:
            self.logger.error(f"Failed to initialize application: {e}")
            return False

        self._setup_signal_handlers()
        self._is_running = True
        self._started_at = datetime.now()
        self.logger.info("Certificate gateway ready")
        return True

    def reload_whitelist(self):
        """Re-read the whitelist document in place; no-op before initialize()."""
        if self.allowlist_store is None:
            return

        self.allowlist_store.reload()
        status = self.allowlist_store.get_status()
        if status['last_error']:
            self.logger.warning(f"Whitelist reload fell back to disabled: {status['last_error']}")
            return
        self.logger.info(
            f"Whitelist reloaded: enabled={status['enabled']}, "
            f"{status['enabled_entry_count']} enabled entries"
        )

    def run(self, host: str = '0.0.0.0', port: Optional[int] = None, debug: bool = False):
        """Serve until interrupted. ``port`` defaults to the configured api_port."""
        if not self._is_running:
            self.logger.error("Application not initialized. Call initialize() first.")
            return

        self.logger.info(
            f"mTLS enabled: {self.config.enable_mtls}, "
            f"chain trust enforced: {self.config.enforce_chain_trust}"
        )
        try:
            self.flask_app.run(host=host, port=port, debug=debug)
        except KeyboardInterrupt:
            self.logger.info("Interrupted from keyboard")
        finally:
            self.shutdown()

    def shutdown(self):
        if not self._is_running:
            return
        self._stopped.set()
        self._is_running = False
        self.logger.info("Certificate gateway stopped")

    def is_running(self) -> bool:
        return self._is_running

    def get_status(self) -> dict:
        config = self.config
        status = {
            'running': self._is_running,
            'config_path': self.config_path,
            'mtls_enabled': bool(config and config.enable_mtls),
            'enforce_chain_trust': bool(config and config.enforce_chain_trust),
            'allowlist_path': config.allowlist_path if config else None,
            'started_at': self._started_at.isoformat() if self._started_at else None
        }
        if self.allowlist_store:
            status['whitelist'] = self.allowlist_store.get_status()
        return status


def describe_certificate(cert_path: str, allowlist_path: str) -> str:
    """
    Report a certificate's fingerprints and the whitelist decision for it.

    Args:
        cert_path: PEM or DER certificate file
        allowlist_path: Whitelist document to check against

    Returns:
        Multi-line human readable report
    """
    with open(cert_path, 'rb') as f:
        peer = SecurityService(config=None).parse_peer_certificate(f.read())

    store = AllowListStore(allowlist_path)
    document = store.load()
    decision = store.check(select_fingerprint(peer, document.hash_algorithm), document)
    verdict = 'allowed' if decision.allowed else 'denied'

    return "\n".join([
        f"Subject: {peer.subject}",
        f"Issuer: {peer.issuer}",
        f"Serial: {peer.serial_number}",
        f"Valid from: {peer.not_before.isoformat()}",
        f"Valid to: {peer.not_after.isoformat()}",
        f"SHA1 fingerprint: {peer.fingerprints.get(HashAlgorithm.SHA1, '')}",
        f"SHA256 fingerprint: {peer.fingerprints.get(HashAlgorithm.SHA256, '')}",
        f"Whitelist ({document.hash_algorithm.label}): {verdict} - {decision.reason}",
    ])


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='certgate',
        description='mTLS client certificate authentication gateway'
    )
    parser.add_argument('--config', '-c', help='Properties file (searched for when omitted)')
    parser.add_argument('--host', default='0.0.0.0', help='Address to listen on (default: 0.0.0.0)')
    parser.add_argument('--port', type=int, help='Port to listen on (default: api_port from the config)')
    parser.add_argument('--debug', action='store_true', help='Run Flask in debug mode')
    parser.add_argument('--check-config', action='store_true',
                        help='Validate the configuration, print a summary and exit')
    parser.add_argument('--fingerprint', metavar='CERT_FILE',
                        help='Show the fingerprints of CERT_FILE and whether the whitelist admits it')
    return parser


def _print_configuration(app: CertGatewayApplication):
    status = app.get_status()
    print("Configuration check passed")
    print(f"Config path: {status['config_path']}")
    print(f"mTLS enabled: {status['mtls_enabled']}")
    print(f"Enforce chain trust: {status['enforce_chain_trust']}")
    print(f"Whitelist path: {status['allowlist_path']}")


def main():
    args = _build_parser().parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format=LoggingService.CONSOLE_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)]
    )

    app = CertGatewayApplication(config_path=args.config)

    if args.check_config or args.fingerprint:
        if not app.load_configuration():
            print("Configuration check failed")
            sys.exit(1)

        if args.fingerprint:
            try:
                print(describe_certificate(args.fingerprint, app.config.allowlist_path))
            except (OSError, ValueError) as e:
                print(f"Cannot read certificate {args.fingerprint}: {e}")
                sys.exit(1)
        else:
            _print_configuration(app)
        sys.exit(0)

    if not app.initialize():
        print("Failed to initialize application")
        sys.exit(1)

    try:
        app.run(host=args.host, port=args.port, debug=args.debug)
    except KeyboardInterrupt:
        print("\nShutdown requested by user")
    except Exception as e:
        print(f"Application error: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
