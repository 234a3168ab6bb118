"""Tests for configuration functionality."""

import logging

import pytest

from typo.config import (
    Config,
    ConfigError,
    FrontEndConfig,
    LoggingConfig,
    TagsConfig,
    load_config,
    save_config,
)


class TestFrontEndConfig:
    """Tests for FrontEndConfig."""

    def test_default_values(self):
        """Should have empty defaults."""
        config = FrontEndConfig()
        assert config.cfg == []
        assert config.search_paths == []
        assert config.sysroot is None

    def test_validate_cfg_specs(self):
        """Should reject malformed cfg specs."""
        config = FrontEndConfig(cfg=["ok", "not ok"])
        with pytest.raises(ConfigError, match="invalid --cfg argument"):
            config.validate()

    def test_validate_empty_search_path(self):
        """Should reject empty search path entries."""
        config = FrontEndConfig(search_paths=[""])
        with pytest.raises(ConfigError, match="search_paths"):
            config.validate()

    def test_missing_sysroot_only_warns(self, tmp_path):
        """Should warn but not fail for a missing sysroot."""
        config = FrontEndConfig(sysroot=str(tmp_path / "missing"))
        config.validate()  # Should not raise


class TestTagsConfig:
    """Tests for TagsConfig."""

    def test_default_values(self):
        """Should default to the typo program name, no append."""
        config = TagsConfig()
        assert config.program_name == "typo"
        assert not config.append

    def test_validate_empty_program_name(self):
        """Should reject an empty program name."""
        with pytest.raises(ConfigError, match="program_name"):
            TagsConfig(program_name="").validate()

    def test_validate_program_name_with_tab(self):
        """Should reject program names that would break the header line."""
        with pytest.raises(ConfigError, match="program_name"):
            TagsConfig(program_name="a\tb").validate()


class TestLoggingConfig:
    """Tests for LoggingConfig."""

    def test_level_number(self):
        """Should map level names onto logging levels."""
        assert LoggingConfig(level="debug").level_number == logging.DEBUG
        assert LoggingConfig().level_number == logging.WARNING

    def test_validate_unknown_level(self):
        """Should reject unknown level names."""
        with pytest.raises(ConfigError, match="level"):
            LoggingConfig(level="LOUD").validate()


class TestConfig:
    """Tests for main Config class."""

    def test_default_values(self):
        """Should have sensible defaults."""
        config = Config()
        assert config.tags.program_name == "typo"
        assert config.logging.level == "WARNING"

    def test_validate(self):
        """Should validate all nested configs."""
        config = Config()
        config.validate()  # Should not raise


class TestLoadConfig:
    """Tests for load_config function."""

    def test_load_defaults(self, tmp_path):
        """Should load defaults when no config file."""
        config = load_config(search_dir=tmp_path)
        assert config.frontend.cfg == []
        assert config.tags.program_name == "typo"

    def test_load_from_working_directory(self, isolated_cwd):
        """Should pick up .typo.yaml from the working directory."""
        (isolated_cwd / ".typo.yaml").write_text("tags:\n  program_name: from-cwd\n")
        config = load_config()
        assert config.tags.program_name == "from-cwd"

    def test_load_from_file(self, tmp_path):
        """Should load from YAML file."""
        config_path = tmp_path / "typo.yaml"
        config_path.write_text("""
frontend:
  cfg:
    - unix
    - feature="serde"
  search_paths: [target/debug/deps]
tags:
  program_name: mytags
  append: true
logging:
  level: info
  json: true
""")
        config = load_config(config_path=config_path)
        assert config.frontend.cfg == ["unix", 'feature="serde"']
        assert config.frontend.search_paths == ["target/debug/deps"]
        assert config.tags.program_name == "mytags"
        assert config.tags.append
        assert config.logging.level == "info"
        assert config.logging.json

    def test_single_string_cfg(self, tmp_path):
        """Should accept a single cfg spec given as a string."""
        config_path = tmp_path / "typo.yaml"
        config_path.write_text("frontend:\n  cfg: test\n")
        assert load_config(config_path=config_path).frontend.cfg == ["test"]

    def test_malformed_file_falls_back_to_defaults(self, tmp_path):
        """Should warn and use defaults when the file cannot be read."""
        config_path = tmp_path / "typo.yaml"
        config_path.write_text("frontend: [not, a, mapping]\n")
        config = load_config(config_path=config_path)
        assert config.frontend.cfg == []

    def test_invalid_yaml_falls_back_to_defaults(self, tmp_path):
        """Should warn and use defaults on YAML syntax errors."""
        config_path = tmp_path / "typo.yaml"
        config_path.write_text("tags: [unclosed\n")
        config = load_config(config_path=config_path)
        assert config.tags.program_name == "typo"

    def test_invalid_values_raise(self, tmp_path):
        """Should reject well-formed files with invalid values."""
        config_path = tmp_path / "typo.yaml"
        config_path.write_text("frontend:\n  cfg: ['bad spec']\n")
        with pytest.raises(ConfigError):
            load_config(config_path=config_path)

    def test_env_override_sysroot(self, tmp_path, monkeypatch):
        """Environment variables should override config file."""
        config_path = tmp_path / "typo.yaml"
        config_path.write_text("frontend:\n  sysroot: /from/file\n")
        monkeypatch.setenv("TYPO_SYSROOT", str(tmp_path))
        config = load_config(config_path=config_path)
        assert config.frontend.sysroot == str(tmp_path)

    def test_env_adds_cfg(self, tmp_path, monkeypatch):
        """TYPO_CFG should add comma-separated specs."""
        config_path = tmp_path / "typo.yaml"
        config_path.write_text("frontend:\n  cfg: [a]\n")
        monkeypatch.setenv("TYPO_CFG", 'b, feature="c"')
        config = load_config(config_path=config_path)
        assert config.frontend.cfg == ["a", "b", 'feature="c"']

    def test_env_program_name_and_level(self, tmp_path, monkeypatch):
        """Environment variables should override tags and logging."""
        monkeypatch.setenv("TYPO_PROGRAM_NAME", "envtags")
        monkeypatch.setenv("TYPO_LOG_LEVEL", "debug")
        config = load_config(search_dir=tmp_path)
        assert config.tags.program_name == "envtags"
        assert config.logging.level == "DEBUG"

    def test_env_invalid_level_ignored(self, tmp_path, monkeypatch):
        """Should ignore an unknown TYPO_LOG_LEVEL."""
        monkeypatch.setenv("TYPO_LOG_LEVEL", "chatty")
        config = load_config(search_dir=tmp_path)
        assert config.logging.level == "WARNING"


class TestSaveConfig:
    """Tests for save_config function."""

    def test_save_and_load_roundtrip(self, tmp_path):
        """Config should survive save/load roundtrip."""
        config = Config(
            frontend=FrontEndConfig(cfg=["unix", 'feature="x"'], search_paths=["deps"]),
            tags=TagsConfig(program_name="custom", append=True),
            logging=LoggingConfig(level="INFO", json=True),
        )
        config_path = tmp_path / "nested" / "typo.yaml"

        save_config(config, config_path)
        loaded = load_config(config_path=config_path)

        assert loaded.frontend.cfg == ["unix", 'feature="x"']
        assert loaded.frontend.search_paths == ["deps"]
        assert loaded.tags.program_name == "custom"
        assert loaded.tags.append
        assert loaded.logging.level == "INFO"
        assert loaded.logging.json
