"""Configuration loading tests."""

import pytest

from wpcheck.config import VerifierConfig, find_config, load_config
from wpcheck.errors import ConfigError


class TestVerifierConfig:

    def test_defaults(self):
        config = VerifierConfig()
        assert config.timeout_ms == 10000
        assert config.assert_mode == "inline"
        assert config.format == "text"
        assert config.export_dir == "graphs"
        assert not config.include_unannotated

    def test_worker_count(self):
        assert VerifierConfig(workers=3).worker_count() == 3
        assert 1 <= VerifierConfig(workers=0).worker_count() <= 8

    @pytest.mark.parametrize("kwargs", [
        {"assert_mode": "sideways"},
        {"format": "xml"},
        {"timeout_ms": 0},
        {"workers": -1},
    ])
    def test_invalid_values(self, kwargs):
        with pytest.raises(ConfigError):
            VerifierConfig(**kwargs)

    def test_merged_ignores_none(self):
        config = VerifierConfig(timeout_ms=500).merged(timeout_ms=None, workers=2)
        assert config.timeout_ms == 500
        assert config.workers == 2


class TestLoadConfig:

    def test_no_file_gives_defaults(self, tmp_path):
        assert load_config(start_dir=str(tmp_path)) == VerifierConfig()

    def test_yaml(self, tmp_path):
        path = tmp_path / ".wpcheckrc.yml"
        path.write_text("timeout_ms: 2500\nassert_mode: cut\n")
        config = load_config(str(path))
        assert config.timeout_ms == 2500
        assert config.assert_mode == "cut"

    def test_json(self, tmp_path):
        path = tmp_path / ".wpcheckrc.json"
        path.write_text('{"workers": 2, "format": "json"}')
        config = load_config(str(path))
        assert config.workers == 2
        assert config.format == "json"

    def test_found_in_parent(self, tmp_path):
        (tmp_path / ".wpcheckrc.yml").write_text("workers: 5\n")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_config(str(nested)) == str(tmp_path / ".wpcheckrc.yml")
        assert load_config(start_dir=str(nested)).workers == 5

    def test_yml_preferred_over_json(self, tmp_path):
        (tmp_path / ".wpcheckrc.json").write_text('{"workers": 1}')
        (tmp_path / ".wpcheckrc.yml").write_text("workers: 2\n")
        assert load_config(start_dir=str(tmp_path)).workers == 2

    def test_unknown_keys_ignored(self, tmp_path):
        path = tmp_path / ".wpcheckrc.yml"
        path.write_text("colour: blue\nworkers: 1\n")
        assert load_config(str(path)).workers == 1

    def test_empty_file(self, tmp_path):
        path = tmp_path / ".wpcheckrc.yml"
        path.write_text("")
        assert load_config(str(path)) == VerifierConfig()

    def test_broken_yaml(self, tmp_path):
        path = tmp_path / ".wpcheckrc.yml"
        path.write_text("workers: [1, 2\n")
        with pytest.raises(ConfigError):
            load_config(str(path))

    def test_broken_json(self, tmp_path):
        path = tmp_path / ".wpcheckrc.json"
        path.write_text("{workers: }")
        with pytest.raises(ConfigError) as exc:
            load_config(str(path))
        assert exc.value.location.line == 1

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / ".wpcheckrc.yml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError):
            load_config(str(path))

    def test_bad_value_type(self, tmp_path):
        path = tmp_path / ".wpcheckrc.yml"
        path.write_text("timeout_ms: soon\n")
        with pytest.raises(ConfigError):
            load_config(str(path))

    @pytest.mark.parametrize("text", [
        '{"include_unannotated": "false"}',
        '{"include_unannotated": 0}',
        '{"workers": true}',
    ])
    def test_no_truthiness_coercion(self, tmp_path, text):
        path = tmp_path / ".wpcheckrc.json"
        path.write_text(text)
        with pytest.raises(ConfigError):
            load_config(str(path))

    def test_bool_flag(self, tmp_path):
        path = tmp_path / ".wpcheckrc.yml"
        path.write_text("include_unannotated: true\n")
        assert load_config(str(path)).include_unannotated is True

    def test_invalid_assert_mode(self, tmp_path):
        path = tmp_path / ".wpcheckrc.yml"
        path.write_text("assert_mode: sideways\n")
        with pytest.raises(ConfigError):
            load_config(str(path))
