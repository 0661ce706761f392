"""
Configuration data models for the certificate authentication gateway.
"""
from dataclasses import dataclass, field
from typing import List

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_BOOLEAN_FIELDS = (
    "enable_mtls",
    "client_cert_required",
    "enforce_chain_trust",
    "trust_proxy_headers",
)


@dataclass
class Config:
    """Gateway settings as read from certgate.properties."""

    # [security] TLS termination
    enable_mtls: bool = True
    server_cert_path: str = "certs/server.crt"
    server_key_path: str = "certs/server.key"
    ca_cert_path: str = "certs/ca.crt"
    client_cert_required: bool = True
    api_port: int = 8443

    # [auth] admission policy
    allowlist_path: str = "config/whitelist.json"
    enforce_chain_trust: bool = False
    trust_proxy_headers: bool = False

    # [app]
    log_level: str = "INFO"
    log_file_path: str = "logs/certgate.log"

    def __post_init__(self):
        self._validate_types()

    def _validate_types(self):
        """Reject values no deployment could mean; file checks live in ConfigService."""
        port = self.api_port
        if isinstance(port, bool) or not isinstance(port, int) or not 1 <= port <= 65535:
            raise ValueError(f"api_port must be an integer between 1 and 65535, got {port!r}")

        for name in _BOOLEAN_FIELDS:
            if not isinstance(getattr(self, name), bool):
                raise ValueError(f"{name} must be a boolean, got {getattr(self, name)!r}")

        if not self.allowlist_path:
            raise ValueError("allowlist_path must not be empty")

        if self.log_level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of: {', '.join(LOG_LEVELS)}")


@dataclass
class ConfigValidationError:
    """A single problem found while validating a Config."""
    field: str
    message: str
    severity: str = "error"  # or "warning"

    def __str__(self):
        return f"{self.severity.upper()}: {self.field} - {self.message}"


@dataclass
class ConfigValidationResult:
    """
    Outcome of ConfigService.validate_config().

    Issues may be passed in either list; they are re-sorted by severity.
    """
    is_valid: bool
    errors: List[ConfigValidationError] = field(default_factory=list)
    warnings: List[ConfigValidationError] = field(default_factory=list)

    def __post_init__(self):
        issues = self.errors + self.warnings
        self.errors = [issue for issue in issues if issue.severity == "error"]
        self.warnings = [issue for issue in issues if issue.severity == "warning"]

    def has_errors(self) -> bool:
        return bool(self.errors)

    def has_warnings(self) -> bool:
        return bool(self.warnings)

    def get_error_summary(self) -> str:
        """Multi-line report of every issue, errors first."""
        if not self.errors and not self.warnings:
            return "Configuration is valid"

        sections = []
        for title, issues in (("Configuration Errors:", self.errors),
                              ("Configuration Warnings:", self.warnings)):
            if issues:
                sections.append(title)
                sections.extend(f"  - {issue}" for issue in issues)
        return "\n".join(sections)
