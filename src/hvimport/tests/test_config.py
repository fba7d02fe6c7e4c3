"""Tests for configuration loading."""

import pytest
from pydantic import ValidationError as PydanticValidationError

from hvimport.config import AppConfig, HyperVConfig, ImportOptions


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ("HYPERV_HOST", "HYPERV_USERNAME", "HYPERV_PASSWORD", "HYPERV_TRANSPORT",
                "HYPERV_PORT", "HYPERV_SSL"):
        monkeypatch.delenv(var, raising=False)


class TestHyperVConfig:
    def test_password_from_env(self, monkeypatch):
        monkeypatch.setenv("HYPERV_PASSWORD", "s3cret")
        config = HyperVConfig(host="hv01", username="LAB\\admin")
        assert config.password.get_secret_value() == "s3cret"

    def test_explicit_password_wins(self, monkeypatch):
        monkeypatch.setenv("HYPERV_PASSWORD", "from-env")
        config = HyperVConfig(password="inline")
        assert config.password.get_secret_value() == "inline"

    def test_password_required(self):
        with pytest.raises(PydanticValidationError, match="password is required"):
            HyperVConfig(host="hv01")

    def test_kerberos_needs_no_password(self):
        config = HyperVConfig(host="hv01", transport="kerberos")
        assert config.password is None

    def test_invalid_transport(self):
        with pytest.raises(PydanticValidationError):
            HyperVConfig(password="x", transport="telnet")

    def test_read_timeout_must_exceed_operation_timeout(self):
        with pytest.raises(PydanticValidationError, match="read_timeout"):
            HyperVConfig(password="x", operation_timeout=60, read_timeout=60)

    def test_password_not_in_repr(self):
        assert "hunter2" not in repr(HyperVConfig(password="hunter2"))

    @pytest.mark.parametrize("host", ["localhost", "LOCALHOST", "127.0.0.1", "::1", "."])
    def test_loopback_is_local(self, host):
        assert HyperVConfig(host=host, transport="kerberos").is_local

    def test_own_hostname_is_local(self):
        import socket
        name = socket.gethostname()
        assert HyperVConfig(host=name, transport="kerberos").is_local
        assert HyperVConfig(host=name.upper(), transport="kerberos").is_local

    def test_remote_host_is_not_local(self):
        assert not HyperVConfig(host="hv-remote-01.lab.invalid", transport="kerberos").is_local


class TestImportOptions:
    def test_defaults(self):
        opts = ImportOptions()
        assert opts.max_workers == 1
        assert opts.poll_interval == 1.0
        assert not opts.enforce_network_match
        assert not opts.simulate
        assert opts.descriptor_name == "config.xml"
        assert opts.config_dir_name == "Virtual Machines"

    @pytest.mark.parametrize("field,value", [("max_workers", 0), ("max_workers", 17), ("poll_interval", 0)])
    def test_bounds(self, field, value):
        with pytest.raises(PydanticValidationError):
            ImportOptions(**{field: value})

    def test_from_yaml_reads_only_import_section(self, tmp_path):
        path = tmp_path / "hvimport.yaml"
        path.write_text(
            "hyperv:\n"
            "  host: hv01\n"
            "  transport: ntlm\n"
            "import:\n"
            "  descriptor_name: settings.xml\n"
        )
        assert ImportOptions.from_yaml(path).descriptor_name == "settings.xml"

    def test_from_yaml_without_import_section(self, tmp_path):
        path = tmp_path / "hvimport.yaml"
        path.write_text("hyperv:\n  host: hv01\n")
        assert ImportOptions.from_yaml(path) == ImportOptions()


class TestAppConfig:
    def test_from_yaml(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HYPERV_PASSWORD", "s3cret")
        path = tmp_path / "hvimport.yaml"
        path.write_text(
            "hyperv:\n"
            "  host: hv01.lab.local\n"
            "  username: LAB\\admin\n"
            "  port: 5986\n"
            "  ssl: true\n"
            "import:\n"
            "  max_workers: 4\n"
            "  enforce_network_match: true\n"
        )
        config = AppConfig.from_yaml(path)
        assert config.hyperv.host == "hv01.lab.local"
        assert config.hyperv.ssl
        assert config.hyperv.password.get_secret_value() == "s3cret"
        assert config.options.max_workers == 4
        assert config.options.enforce_network_match

    def test_from_yaml_without_import_section(self, tmp_path):
        path = tmp_path / "hvimport.yaml"
        path.write_text("hyperv:\n  host: hv01\n  transport: kerberos\n")
        assert AppConfig.from_yaml(path).options == ImportOptions()

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("HYPERV_HOST", "hv02")
        monkeypatch.setenv("HYPERV_USERNAME", "admin")
        monkeypatch.setenv("HYPERV_PASSWORD", "pw")
        monkeypatch.setenv("HYPERV_PORT", "5986")
        monkeypatch.setenv("HYPERV_SSL", "true")
        config = AppConfig.from_env_and_args()
        assert config.hyperv.host == "hv02"
        assert config.hyperv.port == 5986
        assert config.hyperv.ssl

    def test_overrides_merge(self, monkeypatch):
        monkeypatch.setenv("HYPERV_PASSWORD", "pw")
        config = AppConfig.from_env_and_args(hyperv={"host": "hv03"}, **{"import": {"max_workers": 2}})
        assert config.hyperv.host == "hv03"
        assert config.hyperv.transport == "ntlm"
        assert config.options.max_workers == 2

    def test_with_options_ignores_none(self):
        config = AppConfig(hyperv=HyperVConfig(transport="kerberos"))
        assert config.with_options(max_workers=None) is config

        updated = config.with_options(max_workers=3, simulate=True, poll_interval=None)
        assert updated.options.max_workers == 3
        assert updated.options.simulate
        assert updated.options.poll_interval == 1.0
        assert config.options.max_workers == 1
