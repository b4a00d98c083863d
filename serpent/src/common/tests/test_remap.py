"""
Tests for common/remap.py - Remap.toml loading and detection.
"""

import pytest

from serpent.src.common.exceptions import RemapError
from serpent.src.common.remap import RemapConfig, detect_remap_file, load_remap

REMAP_TOML = """
[dependencies]
rand = "0.8"

[hints.price]
S = "f64[:]"
return = "f64[:]"

[hints.pricing.price]
S = "f32[:]"

[remaps]
foo = "bar"
"""


def write(path, text):
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadRemap:
    """Tests for load_remap()."""

    def test_dependencies_and_hints(self, tmp_path):
        """Test dependencies and flattened hint tables are read."""
        config = load_remap(write(tmp_path / "Remap.toml", REMAP_TOML))

        assert config.dependencies == {"rand": "0.8"}
        assert config.hints["price"] == {"S": "f64[:]", "return": "f64[:]"}
        assert config.hints["pricing.price"] == {"S": "f32[:]"}
        assert "pricing" not in config.hints
        assert config.remaps == {"remaps": {"foo": "bar"}}
        assert config.path == tmp_path / "Remap.toml"

    def test_qualified_hints_win(self, tmp_path):
        """Test module-qualified hints take precedence over bare names."""
        config = load_remap(write(tmp_path / "Remap.toml", REMAP_TOML))

        assert config.hints_for("pricing", "price") == {"S": "f32[:]"}
        assert config.hints_for("other", "price")["S"] == "f64[:]"
        assert config.hints_for(None, "price")["S"] == "f64[:]"
        assert config.hints_for(None, "missing") == {}

    def test_empty_file(self, tmp_path):
        """Test an empty file gives an empty configuration."""
        config = load_remap(write(tmp_path / "Remap.toml", ""))
        assert config.dependencies == {}
        assert config.hints == {}

    def test_dependency_must_be_string(self, tmp_path):
        """Test table-valued dependencies are rejected."""
        path = write(tmp_path / "Remap.toml", '[dependencies]\nrand = { version = "0.8" }\n')
        with pytest.raises(RemapError, match="not of expected format"):
            load_remap(path)

    def test_hint_must_be_string(self, tmp_path):
        """Test non-string hints are rejected."""
        path = write(tmp_path / "Remap.toml", "[hints.f]\nx = 3\n")
        with pytest.raises(RemapError, match="should be a string"):
            load_remap(path)

    def test_malformed_toml(self, tmp_path):
        """Test TOML syntax errors become RemapError."""
        path = write(tmp_path / "Remap.toml", "[dependencies\n")
        with pytest.raises(RemapError, match="TOML deserialization error"):
            load_remap(path)

    def test_missing_file(self, tmp_path):
        """Test a missing file is reported as RemapError."""
        with pytest.raises(RemapError, match="not found"):
            load_remap(tmp_path / "nope.toml")


class TestDetectRemapFile:
    """Tests for detect_remap_file()."""

    def test_file_target_looks_beside_it(self, tmp_path):
        """Test a file target finds Remap.toml in its directory."""
        remap = write(tmp_path / "Remap.toml", "")
        script = write(tmp_path / "prog.py", "x = 1\n")
        assert detect_remap_file(script) == remap

    def test_module_target_falls_back_to_parent(self, tmp_path):
        """Test a module directory also looks in its parent."""
        remap = write(tmp_path / "Remap.toml", "")
        package = tmp_path / "pkg"
        package.mkdir()
        assert detect_remap_file(package) == remap

    def test_module_target_prefers_own_directory(self, tmp_path):
        """Test the module's own Remap.toml wins over the parent's."""
        write(tmp_path / "Remap.toml", "")
        package = tmp_path / "pkg"
        package.mkdir()
        own = write(package / "Remap.toml", "")
        assert detect_remap_file(package) == own

    def test_nothing_found(self, tmp_path):
        """Test None is returned when no file exists."""
        script = write(tmp_path / "prog.py", "x = 1\n")
        assert detect_remap_file(script) is None


def test_default_config_is_empty():
    """Test a default RemapConfig has no hints."""
    assert RemapConfig().hints_for("m", "f") == {}
