"""YAML 读写工具单元测试"""

from __future__ import annotations

import os

import pytest

from sealbuild.core.exceptions import ConfigError
from sealbuild.utils.yaml_io import atomic_write, dump_yaml, load_yaml, save_yaml


class TestYamlIo:
    def test_missing_file_is_empty(self, tmp_path) -> None:
        assert load_yaml(tmp_path / "none.yml") == {}

    def test_empty_file_is_empty(self, tmp_path) -> None:
        p = tmp_path / "empty.yml"
        p.write_text("# 只有注释\n")
        assert load_yaml(p) == {}

    def test_non_mapping_rejected(self, tmp_path) -> None:
        p = tmp_path / "list.yml"
        p.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="顶层必须是映射"):
            load_yaml(p)

    def test_syntax_error_has_line(self, tmp_path) -> None:
        p = tmp_path / "bad.yml"
        p.write_text("name: keycloak\nsource: [1, 2\n")
        with pytest.raises(ConfigError, match=r"bad\.yml:\d+"):
            load_yaml(p)

    def test_save_keeps_key_order(self, tmp_path) -> None:
        p = tmp_path / "pkg.yml"
        save_yaml(p, {"name": "keycloak", "version": "1", "src": "/x"})
        assert p.read_text().splitlines()[0] == "name: keycloak"
        assert list(load_yaml(p)) == ["name", "version", "src"]

    def test_multiline_block_style(self) -> None:
        text = dump_yaml({"phases": {"install": "mkdir -p $out\ncp -r . $out\n"}})
        assert "install: |" in text

    def test_tuples_as_lists(self, tmp_path) -> None:
        p = tmp_path / "pkg.yml"
        save_yaml(p, {"runtime_dependencies": ("jre_headless", "which")})
        assert load_yaml(p) == {"runtime_dependencies": ["jre_headless", "which"]}


class TestAtomicWrite:
    def test_preserves_mode(self, tmp_path) -> None:
        p = tmp_path / "run.sh"
        p.write_text("old")
        os.chmod(p, 0o755)
        atomic_write(p, b"new")
        assert p.read_bytes() == b"new"
        assert p.stat().st_mode & 0o777 == 0o755

    def test_no_temp_files_left(self, tmp_path) -> None:
        atomic_write(tmp_path / "a.txt", "x")
        assert [f.name for f in tmp_path.iterdir()] == ["a.txt"]
