"""
Reloadable allow-list of trusted client certificate fingerprints.
"""
import json
import logging
import threading
from datetime import datetime
from typing import Any, Dict, Optional

from .fingerprint import canonical_fingerprint
from .models import (
    AllowListDocument,
    AllowListEntry,
    AuthorizationDecision,
    HashAlgorithm,
)


class AllowListStore:
    """
    Holds the single authoritative copy of the allow-list document.

    The document is loaded lazily on first use and replaced wholesale on
    reload. Readers always see either the old or the new document. A missing
    or malformed file installs a disabled allow-list, which admits every
    certificate that passes the other checks.
    """

    def __init__(self, path: str):
        self.path = path
        self.logger = logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._document: Optional[AllowListDocument] = None
        self._loaded_at: Optional[datetime] = None
        self._last_error: Optional[str] = None

    @property
    def document(self) -> AllowListDocument:
        """Current document, loading it first if nothing is installed yet."""
        document, _, _ = self._snapshot()
        if document is None:
            document = self.load()
        return document

    @property
    def hash_algorithm(self) -> HashAlgorithm:
        return self.document.hash_algorithm

    @property
    def last_error(self) -> Optional[str]:
        return self._snapshot()[2]

    def load(self) -> AllowListDocument:
        """
        Read the backing document and install it.

        Never raises: read and parse failures install
        ``AllowListDocument.disabled()`` and are recorded in ``last_error``.

        Returns:
            The document that was installed
        """
        error = None
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                raw = json.load(f)
            document = self._parse_document(raw)
        except FileNotFoundError:
            error = f"Whitelist configuration file not found: {self.path}"
            self.logger.warning(error)
            document = AllowListDocument.disabled()
        except (OSError, ValueError, RecursionError) as e:
            # json.JSONDecodeError is a ValueError; deeply nested arrays exhaust the recursion limit
            error = f"Failed to load whitelist configuration: {e}"
            self.logger.error(error)
            document = AllowListDocument.disabled()

        self._install(document, error)

        if error is None:
            self.logger.info(
                f"Whitelist configuration loaded from {self.path}",
                extra={'extra_data': {
                    'enabled': document.enabled,
                    'hash_algorithm': document.hash_algorithm.value,
                    'certificate_count': len(document.entries),
                }}
            )
        return document

    def reload(self) -> AllowListDocument:
        """Re-read the document. Same semantics as ``load()``."""
        self.logger.info(f"Reloading whitelist configuration from {self.path}")
        return self.load()

    def check(self, fingerprint: str,
              document: Optional[AllowListDocument] = None) -> AuthorizationDecision:
        """
        Decide whether a fingerprint is admitted by the allow-list.

        Args:
            fingerprint: Fingerprint selected with the document's hash algorithm
            document: Snapshot to check against, defaults to the installed one

        Returns:
            AuthorizationDecision; a disabled document admits everything
        """
        if document is None:
            document = self.document

        if not document.enabled:
            return AuthorizationDecision(allowed=True, reason="disabled")

        wanted = canonical_fingerprint(fingerprint)
        if wanted:
            for entry in document.entries:
                if entry.enabled and entry.fingerprint == wanted:
                    return AuthorizationDecision(
                        allowed=True,
                        reason=entry.description or "No description"
                    )

        return AuthorizationDecision(
            allowed=False,
            reason=(
                f"fingerprint not found "
                f"(using {document.hash_algorithm.label}: {fingerprint})"
            )
        )

    def get_status(self) -> Dict[str, Any]:
        """Summary of the installed document, for health and reload responses."""
        document, loaded_at, last_error = self._snapshot()
        if document is None:
            self.load()
            document, loaded_at, last_error = self._snapshot()
        return {
            'path': self.path,
            'enabled': document.enabled,
            'hash_algorithm': document.hash_algorithm.value,
            'entry_count': len(document.entries),
            'enabled_entry_count': sum(1 for e in document.entries if e.enabled),
            'loaded_at': loaded_at.isoformat() if loaded_at else None,
            'last_error': last_error,
        }

    def _snapshot(self):
        """(document, loaded_at, last_error) from a single install."""
        with self._lock:
            return self._document, self._loaded_at, self._last_error

    def _install(self, document: AllowListDocument, error: Optional[str]):
        with self._lock:
            self._document = document
            self._loaded_at = datetime.now()
            self._last_error = error

    def _parse_document(self, raw: Any) -> AllowListDocument:
        """Build a document from decoded JSON, raising ValueError if malformed."""
        if not isinstance(raw, dict):
            raise ValueError("whitelist document must be a JSON object")

        raw_entries = raw.get('whitelistedCertificates', [])
        if not isinstance(raw_entries, list):
            raise ValueError("whitelistedCertificates must be a list")

        entries = tuple(
            self._parse_entry(index, item) for index, item in enumerate(raw_entries)
        )

        raw_algorithm = raw.get('hashAlgorithm')
        hash_algorithm = HashAlgorithm.parse(raw_algorithm)
        if raw_algorithm is not None and (
                not isinstance(raw_algorithm, str)
                or raw_algorithm.strip().lower() != hash_algorithm.value):
            self.logger.warning(
                f"Unrecognized hashAlgorithm {raw_algorithm!r}, using sha1"
            )

        return AllowListDocument(
            entries=entries,
            enabled=raw.get('whitelistEnabled') is True,
            hash_algorithm=hash_algorithm,
        )

    def _parse_entry(self, index: int, item: Any) -> AllowListEntry:
        if not isinstance(item, dict):
            raise ValueError(f"whitelist entry {index} must be an object")

        fingerprint = item.get('fingerprint')
        if not isinstance(fingerprint, str):
            raise ValueError(f"whitelist entry {index} has no fingerprint")

        canonical = canonical_fingerprint(fingerprint)
        if not canonical:
            self.logger.warning(
                f"Whitelist entry {index} has an invalid fingerprint and will never match"
            )

        return AllowListEntry(
            fingerprint=canonical,
            description=str(item.get('description') or ""),
            enabled=item.get('enabled') is True,
            subject=item.get('subject'),
            organization=item.get('organization'),
            added_date=item.get('addedDate'),
        )
