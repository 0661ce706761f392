"""
Loading and validation of the gateway's properties file.
"""
import configparser
import logging
import os
from typing import Any, Dict, Iterator, Optional

from ..models.config import Config, ConfigValidationError, ConfigValidationResult

# (section, field, type). Every field may be spelled "section.field" or, in
# [DEFAULT], as the bare field name.
_SETTINGS = (
    ("security", "enable_mtls", bool),
    ("security", "server_cert_path", str),
    ("security", "server_key_path", str),
    ("security", "ca_cert_path", str),
    ("security", "client_cert_required", bool),
    ("security", "api_port", int),
    ("auth", "allowlist_path", str),
    ("auth", "enforce_chain_trust", bool),
    ("auth", "trust_proxy_headers", bool),
    ("app", "log_level", str),
    ("app", "log_file_path", str),
)

_TRUE_WORDS = frozenset({"true", "yes", "1", "on", "enabled"})

DEFAULT_CONFIG_TEMPLATE = """# Certificate gateway configuration file

[security]
enable_mtls = true
server_cert_path = certs/server.crt
server_key_path = certs/server.key
ca_cert_path = certs/ca.crt
client_cert_required = true
api_port = 8443

[auth]
# A missing or malformed whitelist disables the whitelist (every valid certificate is admitted)
allowlist_path = config/whitelist.json
# Deny certificates the TLS layer could not chain to the CA instead of only logging them
enforce_chain_trust = false
# Read SSL_CLIENT_CERT / X-SSL-CERT headers set by a reverse proxy
trust_proxy_headers = false

[app]
log_level = INFO
log_file_path = logs/certgate.log
"""


def _key_map():
    keys = {}
    for section, name, kind in _SETTINGS:
        keys[f"{section}.{name}"] = (name, kind)
        keys[name] = (name, kind)
    return keys


class ConfigService:
    """Reads a properties file into a validated Config."""

    CONFIG_MAPPING = _key_map()

    def __init__(self, config_path: Optional[str] = None):
        self.logger = logging.getLogger(__name__)
        self._config: Optional[Config] = None
        if config_path:
            self.load_config(config_path)

    def get_config(self) -> Config:
        """Config from the last successful load_config(); ValueError before that."""
        if self._config is None:
            raise ValueError("No configuration loaded. Call load_config() first.")
        return self._config

    def load_config(self, config_path: str) -> Config:
        """
        Parse, convert and validate a properties file.

        Args:
            config_path: Path to the properties file

        Returns:
            The validated Config, also kept for get_config()

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the file cannot be parsed, a value has the wrong
                type, or validation reports errors. Warnings are only logged.
        """
        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        config = self._create_config_from_data(self._load_config_file(config_path))

        result = self.validate_config(config)
        if result.has_errors():
            raise ValueError(f"Configuration validation failed:\n{result.get_error_summary()}")
        if result.has_warnings():
            self.logger.warning(f"Configuration loaded with warnings:\n{result.get_error_summary()}")

        self._config = config
        return config

    def _load_config_file(self, config_path: str) -> Dict[str, str]:
        """Flatten the file to {"section.key": value}, plus bare keys from [DEFAULT]."""
        parser = configparser.ConfigParser()
        try:
            parser.read(config_path, encoding='utf-8')
        except configparser.Error as e:
            raise ValueError(f"Cannot parse configuration file {config_path}: {e}") from e

        flat = {
            f"{section}.{key}": value
            for section in parser.sections()
            for key, value in parser.items(section)
        }
        for key, value in parser.defaults().items():
            flat.setdefault(key, value)
        return flat

    def _create_config_from_data(self, config_data: Dict[str, Any]) -> Config:
        kwargs = {}
        for key, raw_value in config_data.items():
            if key not in self.CONFIG_MAPPING:
                continue
            field_name, kind = self.CONFIG_MAPPING[key]
            try:
                kwargs[field_name] = self._convert(raw_value, kind)
            except (TypeError, ValueError) as e:
                raise ValueError(f"Invalid value for {key}: {raw_value!r} ({e})") from e
        return Config(**kwargs)

    def _convert(self, raw_value: Any, kind: type) -> Any:
        if kind is bool:
            return self._parse_bool(raw_value)
        if kind is int:
            return int(raw_value)
        return str(raw_value).strip()

    def _parse_bool(self, value: Any) -> bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.strip().lower() in _TRUE_WORDS
        return bool(value)

    def validate_config(self, config: Config) -> ConfigValidationResult:
        """
        Check what Config cannot check about itself: files on disk and
        settings that only make sense together.
        """
        issues = list(self._check_tls_files(config))
        issues.extend(self._check_authentication(config))
        issues.extend(self._check_log_directory(config))

        return ConfigValidationResult(
            is_valid=not any(issue.severity == "error" for issue in issues),
            errors=issues
        )

    def _check_tls_files(self, config: Config) -> Iterator[ConfigValidationError]:
        if not config.enable_mtls:
            if not config.trust_proxy_headers:
                yield ConfigValidationError(
                    "enable_mtls",
                    "mTLS is disabled and proxy headers are not trusted; "
                    "only servers that set SSL_CLIENT_CERT can authenticate clients",
                    "warning"
                )
            return

        for field_name in ("server_cert_path", "server_key_path", "ca_cert_path"):
            path = getattr(config, field_name)
            if not path:
                yield ConfigValidationError(field_name, f"{field_name} is required when mTLS is enabled")
            elif not os.path.exists(path):
                yield ConfigValidationError(field_name, f"Certificate file not found: {path}")

    def _check_authentication(self, config: Config) -> Iterator[ConfigValidationError]:
        if not os.path.exists(config.allowlist_path):
            yield ConfigValidationError(
                "allowlist_path",
                f"Whitelist file not found: {config.allowlist_path}; "
                "the whitelist will be disabled and every valid certificate admitted",
                "warning"
            )

        if config.enforce_chain_trust and not config.ca_cert_path:
            yield ConfigValidationError(
                "ca_cert_path",
                "ca_cert_path is required when enforce_chain_trust is enabled"
            )

    def _check_log_directory(self, config: Config) -> Iterator[ConfigValidationError]:
        log_dir = os.path.dirname(config.log_file_path or "")
        if log_dir and not os.path.isdir(log_dir):
            yield ConfigValidationError(
                "log_file_path",
                f"Log directory does not exist and will be created: {log_dir}",
                "warning"
            )

    def create_default_config_file(self, config_path: str) -> None:
        """Write DEFAULT_CONFIG_TEMPLATE to config_path, creating its directory."""
        config_dir = os.path.dirname(config_path)
        if config_dir:
            os.makedirs(config_dir, exist_ok=True)

        with open(config_path, 'w', encoding='utf-8') as f:
            f.write(DEFAULT_CONFIG_TEMPLATE)

        self.logger.info(f"Created default configuration file: {config_path}")
