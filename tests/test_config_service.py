"""
Unit tests for ConfigService and Config models.
"""
import unittest
import tempfile
import os
import shutil

from certgate.models.config import Config, ConfigValidationError, ConfigValidationResult
from certgate.services.config_service import ConfigService


class TestConfig(unittest.TestCase):

    def test_defaults_require_client_certificates(self):
        config = Config()

        self.assertTrue(config.enable_mtls)
        self.assertTrue(config.client_cert_required)
        self.assertEqual(
            (config.server_cert_path, config.server_key_path, config.ca_cert_path),
            ("certs/server.crt", "certs/server.key", "certs/ca.crt")
        )
        self.assertEqual(config.api_port, 8443)
        self.assertEqual(config.allowlist_path, "config/whitelist.json")
        self.assertFalse(config.enforce_chain_trust)
        self.assertFalse(config.trust_proxy_headers)
        self.assertEqual((config.log_level, config.log_file_path), ("INFO", "logs/certgate.log"))

    def test_rejects_impossible_values(self):
        cases = [
            ({'api_port': 0}, "api_port must be an integer between 1 and 65535"),
            ({'api_port': 70000}, "api_port must be an integer between 1 and 65535"),
            ({'api_port': True}, "api_port must be an integer between 1 and 65535"),
            ({'enforce_chain_trust': "yes"}, "enforce_chain_trust must be a boolean"),
            ({'trust_proxy_headers': 1}, "trust_proxy_headers must be a boolean"),
            ({'allowlist_path': ""}, "allowlist_path must not be empty"),
            ({'log_level': "VERBOSE"}, "log_level must be one of"),
        ]
        for kwargs, message in cases:
            with self.subTest(**kwargs):
                with self.assertRaises(ValueError) as cm:
                    Config(**kwargs)
                self.assertIn(message, str(cm.exception))

    def test_proxy_deployment_values(self):
        config = Config(
            enable_mtls=False,
            api_port=8080,
            allowlist_path="/etc/certgate/whitelist.json",
            trust_proxy_headers=True,
            log_level="DEBUG"
        )

        self.assertFalse(config.enable_mtls)
        self.assertTrue(config.trust_proxy_headers)
        self.assertEqual(config.api_port, 8080)
        self.assertEqual(config.allowlist_path, "/etc/certgate/whitelist.json")


class TestConfigValidationResult(unittest.TestCase):

    def setUp(self):
        self.missing_ca = ConfigValidationError("ca_cert_path", "Certificate file not found: ca.crt")
        self.missing_whitelist = ConfigValidationError(
            "allowlist_path", "Whitelist file not found", "warning"
        )

    def test_issue_formatting(self):
        self.assertEqual(self.missing_ca.severity, "error")
        self.assertEqual(str(self.missing_ca), "ERROR: ca_cert_path - Certificate file not found: ca.crt")
        self.assertEqual(str(self.missing_whitelist), "WARNING: allowlist_path - Whitelist file not found")

    def test_issues_sorted_by_severity(self):
        result = ConfigValidationResult(is_valid=False, errors=[self.missing_whitelist, self.missing_ca])

        self.assertEqual(result.errors, [self.missing_ca])
        self.assertEqual(result.warnings, [self.missing_whitelist])
        self.assertTrue(result.has_errors())
        self.assertTrue(result.has_warnings())

    def test_summary_lists_errors_before_warnings(self):
        result = ConfigValidationResult(is_valid=False, errors=[self.missing_whitelist, self.missing_ca])

        lines = result.get_error_summary().splitlines()

        self.assertEqual(lines, [
            "Configuration Errors:",
            "  - ERROR: ca_cert_path - Certificate file not found: ca.crt",
            "Configuration Warnings:",
            "  - WARNING: allowlist_path - Whitelist file not found",
        ])

    def test_clean_result(self):
        result = ConfigValidationResult(is_valid=True)

        self.assertFalse(result.has_errors() or result.has_warnings())
        self.assertEqual(result.get_error_summary(), "Configuration is valid")


class TestConfigService(unittest.TestCase):

    def setUp(self):
        """Set up test fixtures."""
        self.config_service = ConfigService()
        self.temp_dir = tempfile.mkdtemp()
        self.whitelist_path = os.path.join(self.temp_dir, "whitelist.json")
        with open(self.whitelist_path, 'w') as f:
            f.write('{"whitelistEnabled": false, "whitelistedCertificates": []}')

    def tearDown(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write(self, name, content):
        config_path = os.path.join(self.temp_dir, name)
        with open(config_path, 'w') as f:
            f.write(content)
        return config_path

    def _touch_certificates(self):
        paths = {}
        for name in ("server.crt", "server.key", "ca.crt"):
            path = os.path.join(self.temp_dir, name)
            open(path, 'w').close()
            paths[name] = path
        return paths

    def test_get_config_before_load(self):
        with self.assertRaises(ValueError):
            self.config_service.get_config()

    def test_load_config_file_not_found(self):
        non_existent_path = os.path.join(self.temp_dir, "nonexistent.properties")

        with self.assertRaises(FileNotFoundError) as cm:
            self.config_service.load_config(non_existent_path)

        self.assertIn("Configuration file not found", str(cm.exception))

    def test_load_valid_config(self):
        certs = self._touch_certificates()
        config_path = self._write("test.properties", f"""[security]
enable_mtls = true
server_cert_path = {certs['server.crt']}
server_key_path = {certs['server.key']}
ca_cert_path = {certs['ca.crt']}
client_cert_required = false
api_port = 9443

[auth]
allowlist_path = {self.whitelist_path}
enforce_chain_trust = yes
trust_proxy_headers = off

[app]
log_level = DEBUG
log_file_path = {os.path.join(self.temp_dir, 'certgate.log')}
""")

        config = self.config_service.load_config(config_path)

        self.assertTrue(config.enable_mtls)
        self.assertEqual(config.server_cert_path, certs['server.crt'])
        self.assertFalse(config.client_cert_required)
        self.assertEqual(config.api_port, 9443)
        self.assertEqual(config.allowlist_path, self.whitelist_path)
        self.assertTrue(config.enforce_chain_trust)
        self.assertFalse(config.trust_proxy_headers)
        self.assertEqual(config.log_level, "DEBUG")
        self.assertIs(self.config_service.get_config(), config)

    def test_load_config_with_validation_errors(self):
        config_path = self._write("invalid.properties", """[security]
enable_mtls = true
server_cert_path = /nonexistent/server.crt
""")

        with self.assertRaises(ValueError) as cm:
            self.config_service.load_config(config_path)

        error_message = str(cm.exception)
        self.assertIn("Configuration validation failed", error_message)
        self.assertIn("server_cert_path", error_message)

    def test_load_config_with_invalid_value(self):
        config_path = self._write("bad_port.properties", """[security]
enable_mtls = false
api_port = not-a-port
""")

        with self.assertRaises(ValueError) as cm:
            self.config_service.load_config(config_path)

        self.assertIn("security.api_port", str(cm.exception))

    def test_load_config_with_syntax_error(self):
        config_path = self._write("broken.properties", "enable_mtls = false\n")

        with self.assertRaises(ValueError):
            self.config_service.load_config(config_path)

    def test_parse_bool_values(self):
        for word in ("true", "True", "TRUE", "yes", "1", "on", "enabled", " on ", True):
            with self.subTest(word=word):
                self.assertIs(self.config_service._parse_bool(word), True)
        for word in ("false", "False", "no", "0", "off", "disabled", "", False):
            with self.subTest(word=word):
                self.assertIs(self.config_service._parse_bool(word), False)

    def test_validate_config_mtls_missing_certs(self):
        config = Config(
            enable_mtls=True,
            server_cert_path="nonexistent.crt",
            server_key_path="nonexistent.key",
            ca_cert_path="nonexistent.ca",
            allowlist_path=self.whitelist_path
        )

        result = self.config_service.validate_config(config)

        self.assertFalse(result.is_valid)
        error_fields = [error.field for error in result.errors]
        self.assertIn("server_cert_path", error_fields)
        self.assertIn("server_key_path", error_fields)
        self.assertIn("ca_cert_path", error_fields)

    def test_validate_config_chain_trust_needs_ca(self):
        config = Config(
            enable_mtls=False,
            trust_proxy_headers=True,
            enforce_chain_trust=True,
            ca_cert_path="",
            allowlist_path=self.whitelist_path
        )

        result = self.config_service.validate_config(config)

        self.assertFalse(result.is_valid)
        self.assertEqual([error.field for error in result.errors], ["ca_cert_path"])

    def test_validate_config_missing_whitelist_is_a_warning(self):
        """A missing whitelist disables it rather than failing startup."""
        config = Config(
            enable_mtls=False,
            trust_proxy_headers=True,
            allowlist_path=os.path.join(self.temp_dir, "missing.json"),
            log_file_path=os.path.join(self.temp_dir, "certgate.log")
        )

        result = self.config_service.validate_config(config)

        self.assertTrue(result.is_valid)
        warning_fields = [warning.field for warning in result.warnings]
        self.assertEqual(warning_fields, ["allowlist_path"])
        self.assertIn("disabled", result.warnings[0].message)

    def test_validate_config_warnings(self):
        config = Config(
            enable_mtls=False,
            allowlist_path=self.whitelist_path,
            log_file_path=os.path.join(self.temp_dir, "missing", "certgate.log")
        )

        result = self.config_service.validate_config(config)

        self.assertTrue(result.is_valid)
        self.assertTrue(result.has_warnings())
        warning_fields = [warning.field for warning in result.warnings]
        self.assertIn("enable_mtls", warning_fields)
        self.assertIn("log_file_path", warning_fields)

    def test_create_default_config_file(self):
        config_path = os.path.join(self.temp_dir, "config", "certgate.properties")

        self.config_service.create_default_config_file(config_path)

        self.assertTrue(os.path.exists(config_path))

        with open(config_path, 'r') as f:
            content = f.read()

        self.assertIn("[security]", content)
        self.assertIn("[auth]", content)
        self.assertIn("[app]", content)
        self.assertIn("allowlist_path", content)
        self.assertIn("enforce_chain_trust = false", content)

        data = self.config_service._load_config_file(config_path)
        config = self.config_service._create_config_from_data(data)
        self.assertEqual(config, Config())

    def test_config_with_alternative_key_formats(self):
        config_path = self._write("alt_format.properties", f"""[DEFAULT]
enable_mtls = false
trust_proxy_headers = true
allowlist_path = {self.whitelist_path}
log_level = DEBUG

[auth]
enforce_chain_trust = true
""")

        config = self.config_service.load_config(config_path)

        self.assertFalse(config.enable_mtls)
        self.assertTrue(config.trust_proxy_headers)
        self.assertEqual(config.allowlist_path, self.whitelist_path)
        self.assertTrue(config.enforce_chain_trust)
        self.assertEqual(config.log_level, "DEBUG")


if __name__ == '__main__':
    unittest.main()
