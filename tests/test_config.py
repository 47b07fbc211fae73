"""Config tests for localmem.

Tests critical configuration pathways:
- Defaults are sensible
- Environment variable override mechanism works
- Non-loopback hosts are refused
"""

from pathlib import Path

import pytest

from localmem.backend.config import DEFAULT_PORT, BackendConfig, get_config, reset_config


class TestConfigDefaults:
    """Test that config has expected default values."""

    def test_host_default(self, tmp_path: Path):
        assert BackendConfig(data_dir=tmp_path).host == "127.0.0.1"

    def test_port_default(self, tmp_path: Path):
        assert BackendConfig(data_dir=tmp_path).port == DEFAULT_PORT == 19877

    def test_body_limit_default(self, tmp_path: Path):
        config = BackendConfig(data_dir=tmp_path)
        assert config.max_body_mb == 10
        assert config.max_body_bytes == 10 * 1024 * 1024

    def test_content_limit_default(self, tmp_path: Path):
        assert BackendConfig(data_dir=tmp_path).max_content_chars == 100_000

    def test_file_locations(self, tmp_path: Path):
        config = BackendConfig(data_dir=tmp_path)
        assert config.snapshot_path == tmp_path / "memories.json"
        assert config.token_path == tmp_path / "auth_token"


class TestConfigEnvironmentOverrides:
    """Test that environment variables override defaults."""

    def test_port_override(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("LOCALMEM_PORT", "20000")
        assert BackendConfig(data_dir=tmp_path).port == 20000

    def test_data_dir_override(self, monkeypatch, tmp_path: Path):
        target = tmp_path / "custom"
        monkeypatch.setenv("LOCALMEM_DATA_DIR", str(target))

        config = BackendConfig()
        assert config.data_dir == target
        assert target.is_dir()

    def test_body_limit_override(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("LOCALMEM_MAX_BODY_MB", "2")
        assert BackendConfig(data_dir=tmp_path).max_body_bytes == 2 * 1024 * 1024

    def test_localhost_name_allowed(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("LOCALMEM_HOST", "localhost")
        assert BackendConfig(data_dir=tmp_path).host == "localhost"


class TestConfigValidation:
    """Test that invalid settings are refused."""

    @pytest.mark.parametrize("host", ["0.0.0.0", "192.168.1.10", "example.com"])
    def test_non_loopback_host_refused(self, host, tmp_path: Path):
        with pytest.raises(ValueError, match="loopback"):
            BackendConfig(host=host, data_dir=tmp_path)

    def test_non_positive_body_limit_refused(self, tmp_path: Path):
        with pytest.raises(ValueError):
            BackendConfig(data_dir=tmp_path, max_body_mb=0)

    def test_string_data_dir_is_expanded(self, tmp_path: Path):
        config = BackendConfig(data_dir=str(tmp_path / "as-string"))
        assert isinstance(config.data_dir, Path)
        assert config.data_dir.is_dir()


class TestGlobalConfig:
    """Test the global config accessor."""

    def test_get_config_is_cached(self):
        assert get_config() is get_config()

    def test_reset_config(self, monkeypatch, tmp_path: Path):
        first = get_config()
        monkeypatch.setenv("LOCALMEM_DATA_DIR", str(tmp_path / "other"))
        reset_config()

        second = get_config()
        assert second is not first
        assert second.data_dir == tmp_path / "other"
