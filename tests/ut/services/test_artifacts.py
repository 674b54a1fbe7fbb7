"""构建产物定位与 API 文档校验单元测试"""

from __future__ import annotations

import pytest

from sealbuild.core.exceptions import AmbiguousArtifactError, ArtifactNotFoundError, ValidationError
from sealbuild.services.build.artifacts import (
    locate_artifact,
    locate_schema_documents,
    validate_schema_document,
)


class TestLocateArtifact:
    def test_unique(self, tmp_path) -> None:
        (tmp_path / "quarkus/dist/target").mkdir(parents=True)
        dist = tmp_path / "quarkus/dist/target/keycloak-999.0.0-SNAPSHOT.tar.gz"
        dist.write_bytes(b"x")
        assert locate_artifact(tmp_path, "quarkus/dist/target/keycloak-*.tar.gz") == dist

    def test_directories_ignored(self, tmp_path) -> None:
        (tmp_path / "target/keycloak-1.tar.gz").mkdir(parents=True)
        with pytest.raises(ArtifactNotFoundError):
            locate_artifact(tmp_path, "target/keycloak-*.tar.gz")

    def test_ambiguous_lists_matches(self, tmp_path) -> None:
        (tmp_path / "target").mkdir()
        for name in ("keycloak-1.tar.gz", "keycloak-2.tar.gz"):
            (tmp_path / "target" / name).write_bytes(b"x")
        with pytest.raises(AmbiguousArtifactError) as exc:
            locate_artifact(tmp_path, "target/keycloak-*.tar.gz")
        assert exc.value.matches == ["target/keycloak-1.tar.gz", "target/keycloak-2.tar.gz"]


class TestSchemaDocuments:
    @pytest.mark.parametrize("name,body", [
        ("openapi.json", '{"openapi": "3.0.3"}'),
        ("openapi.yaml", "openapi: 3.0.3\ninfo:\n  title: Keycloak\n"),
        ("swagger.json", '{"swagger": "2.0"}'),
    ])
    def test_valid(self, tmp_path, name, body) -> None:
        p = tmp_path / name
        p.write_text(body)
        validate_schema_document(p)

    @pytest.mark.parametrize("name,body,message", [
        ("openapi.json", "{broken", "无法解析"),
        ("openapi.yaml", "- a\n- b\n", "openapi/swagger"),
        ("openapi.json", '{"info": {}}', "openapi/swagger"),
    ])
    def test_invalid(self, tmp_path, name, body, message) -> None:
        p = tmp_path / name
        p.write_text(body)
        with pytest.raises(ValidationError, match=message):
            validate_schema_document(p)

    def test_none_found(self, tmp_path) -> None:
        with pytest.raises(ArtifactNotFoundError, match="API 描述文档"):
            locate_schema_documents(tmp_path, "services/target/**/openapi.*")
