"""
Tests for ScalerSettings.
"""

from __future__ import annotations

import pytest

from deployment_scaler.config.settings import ScalerSettings
from deployment_scaler.validation import ConfigurationError


class TestFromEnv:

    def test_defaults(self):
        settings = ScalerSettings.from_env({})

        assert settings.host == "0.0.0.0"
        assert settings.port == 8443
        assert settings.store_backend == "kubernetes"
        assert settings.resync_period_seconds == 600
        assert settings.sync_timeout_seconds == 30
        assert settings.write_timeout_seconds == 10
        assert settings.shutdown_grace_seconds == 5
        assert settings.tls_enabled is False
        assert settings.tls_ca_file == "certs/ca-cert.pem"

    def test_overrides(self):
        settings = ScalerSettings.from_env({
            "SERVER_HOST": "127.0.0.1",
            "SERVER_PORT": "9090",
            "STORE_BACKEND": "Memory",
            "KUBECONFIG": "/tmp/kubeconfig",
            "RESYNC_PERIOD_SECONDS": "60",
            "WRITE_TIMEOUT_SECONDS": "2.5",
            "TLS_ENABLED": "yes",
        })

        assert settings.host == "127.0.0.1"
        assert settings.port == 9090
        assert settings.store_backend == "memory"
        assert settings.kubeconfig == "/tmp/kubeconfig"
        assert settings.resync_period_seconds == 60
        assert settings.write_timeout_seconds == 2.5
        assert settings.tls_enabled is True

    def test_empty_ca_disables_client_auth(self):
        settings = ScalerSettings.from_env({"TLS_CA_FILE": ""})
        assert settings.tls_ca_file is None

    def test_non_numeric_port(self):
        with pytest.raises(ConfigurationError, match="SERVER_PORT"):
            ScalerSettings.from_env({"SERVER_PORT": "http"})


class TestValidate:

    def test_defaults_are_valid(self):
        assert ScalerSettings().validate() == []

    def test_reports_every_problem(self):
        settings = ScalerSettings(port=0, store_backend="etcd", write_timeout_seconds=0)
        problems = settings.validate()

        assert len(problems) == 3
        assert any("SERVER_PORT" in p for p in problems)
        assert any("STORE_BACKEND" in p for p in problems)
        assert any("WRITE_TIMEOUT_SECONDS" in p for p in problems)

    def test_tls_files_must_exist(self, tmp_path):
        cert = tmp_path / "server-cert.pem"
        cert.write_text("cert")
        settings = ScalerSettings(
            tls_enabled=True,
            tls_cert_file=str(cert),
            tls_key_file=str(tmp_path / "missing-key.pem"),
            tls_ca_file=None,
        )

        problems = settings.validate()

        assert problems == [f"TLS_KEY_FILE not found: {tmp_path / 'missing-key.pem'}"]

    def test_require_valid_raises(self):
        with pytest.raises(ConfigurationError):
            ScalerSettings(resync_period_seconds=-1).require_valid()

    def test_to_dict(self):
        assert ScalerSettings().to_dict()["port"] == 8443
