"""源码准备阶段单元测试"""

from __future__ import annotations

import base64
import hashlib
import shutil
from pathlib import Path

import pytest

from sealbuild.core.declaration import PatchSpec, PipelineDeclaration, SourceSpec
from sealbuild.core.exceptions import (
    PatchApplyError,
    SourceIntegrityError,
    ValidationError,
)
from sealbuild.core.hashing import file_sha256, nar_hash
from sealbuild.services.source import GitSource, SourcePreparer
from sealbuild.services.source.patches import PatchApplier
from sealbuild.utils.archive import unpack_tar
from sealbuild.utils.shell import CommandResult

needs_git = pytest.mark.skipif(shutil.which("git") is None, reason="需要 git")

POM = "<project><properties><node.version>v18</node.version></properties></project>\n"

P1 = """--- a/a.txt
+++ b/a.txt
@@ -1 +1 @@
-one
+two
"""

P2 = """--- a/a.txt
+++ b/a.txt
@@ -1 +1 @@
-two
+three
"""


def _source_tar(tmp_path: Path, make_tar) -> tuple[Path, str]:
    archive = make_tar(tmp_path / "src.tar.gz", {
        "pom.xml": POM, "a.txt": "one\n", "mvnw.sh": "#!/bin/sh\n",
    }, root="keycloak-02d64d95")
    probe = tmp_path / "probe"
    unpack_tar(archive, probe)
    return archive, nar_hash(probe)


def _decl(archive: Path, src_hash: str, **source_extra) -> PipelineDeclaration:
    source = {"url": str(archive), "hash": src_hash, **source_extra}
    return PipelineDeclaration.from_dict({
        "name": "keycloak", "version": "1", "source": source,
        "toolchain": {"node": "v20.15.0"},
    })


def _patch(tmp_path: Path, name: str, body: str) -> dict:
    p = tmp_path / name
    p.write_text(body)
    return {"url": str(p), "hash": file_sha256(p)}


class TestTarPreparation:
    def test_prepare(self, tmp_path, make_tar) -> None:
        archive, src_hash = _source_tar(tmp_path, make_tar)
        decl = _decl(
            archive, src_hash,
            links={"node/node": "/usr/bin/node"},
            post_patch="echo done > marker.txt",
        )
        ws = tmp_path / "ws"
        prepared = SourcePreparer(workspace_root=str(ws), git="git").prepare(decl)

        tree = prepared.path
        assert prepared.content_hash == src_hash
        assert tree == ws / f"source-{decl.source_key()}"
        assert b"<node.version>v20.15.0</node.version>" in (tree / "pom.xml").read_bytes()
        assert (tree / "node/node").is_symlink()
        assert str((tree / "node/node").readlink()) == "/usr/bin/node"
        assert (tree / "marker.txt").read_text().strip() == "done"
        assert [p.name for p in ws.iterdir()] == [tree.name]

    def test_integrity_failure_leaves_nothing(self, tmp_path, make_tar) -> None:
        archive, _ = _source_tar(tmp_path, make_tar)
        decl = _decl(archive, "sha256-" + "A" * 43 + "=")
        ws = tmp_path / "ws"
        with pytest.raises(SourceIntegrityError) as exc:
            SourcePreparer(workspace_root=str(ws)).prepare(decl)
        assert exc.value.actual.startswith("sha256-")
        assert list(ws.iterdir()) == []

    def test_missing_local_archive(self, tmp_path) -> None:
        decl = _decl(tmp_path / "none.tar.gz", "sha256-x")
        with pytest.raises(ValidationError, match="不存在"):
            SourcePreparer(workspace_root=str(tmp_path / "ws")).prepare(decl)

    def test_post_patch_failure(self, tmp_path, make_tar) -> None:
        archive, src_hash = _source_tar(tmp_path, make_tar)
        decl = _decl(archive, src_hash, post_patch="exit 3")
        with pytest.raises(PatchApplyError, match="rc=3"):
            SourcePreparer(workspace_root=str(tmp_path / "ws")).prepare(decl)

    def test_link_outside_tree_rejected(self, tmp_path, make_tar) -> None:
        archive, src_hash = _source_tar(tmp_path, make_tar)
        decl = _decl(archive, src_hash, links={"../escape": "/bin/sh"})
        with pytest.raises(ValidationError, match="越出"):
            SourcePreparer(workspace_root=str(tmp_path / "ws")).prepare(decl)


@needs_git
class TestPatchOrdering:
    def test_declared_order_applies(self, tmp_path, make_tar) -> None:
        archive, src_hash = _source_tar(tmp_path, make_tar)
        patches = [_patch(tmp_path, "1.patch", P1), _patch(tmp_path, "2.patch", P2)]
        decl = _decl(archive, src_hash, patches=patches)
        prepared = SourcePreparer(workspace_root=str(tmp_path / "ws")).prepare(decl)
        assert (prepared.path / "a.txt").read_text() == "three\n"
        # 内容哈希是打补丁前的哈希
        assert prepared.content_hash == src_hash

    def test_reversed_order_fails(self, tmp_path, make_tar) -> None:
        archive, src_hash = _source_tar(tmp_path, make_tar)
        patches = [_patch(tmp_path, "2.patch", P2), _patch(tmp_path, "1.patch", P1)]
        decl = _decl(archive, src_hash, patches=patches)
        ws = tmp_path / "ws"
        with pytest.raises(PatchApplyError, match="#1 2.patch"):
            SourcePreparer(workspace_root=str(ws)).prepare(decl)
        assert list(ws.iterdir()) == []

    def test_patch_hash_mismatch(self, tmp_path, make_tar) -> None:
        archive, src_hash = _source_tar(tmp_path, make_tar)
        bad = _patch(tmp_path, "1.patch", P1)
        bad["hash"] = file_sha256(archive)
        decl = _decl(archive, src_hash, patches=[bad])
        with pytest.raises(SourceIntegrityError, match="补丁内容哈希不符"):
            SourcePreparer(workspace_root=str(tmp_path / "ws")).prepare(decl)


class TestPatchHash:
    MAIL = (
        "From 7d6dd411b33b30d90428e474b6f0e4a671c87b58 Mon Sep 17 00:00:00 2001\n"
        "From: Dev <dev@example.com>\n"
        "Subject: [PATCH] bump a\n\n"
        "---\n"
        + P1
        + "-- \n2.45.2\n"
    )

    def test_hash_covers_raw_bytes(self, tmp_path) -> None:
        p = tmp_path / "fix.patch"
        p.write_text(self.MAIL)
        raw = "sha256-" + base64.b64encode(hashlib.sha256(self.MAIL.encode()).digest()).decode()
        applier = PatchApplier(tmp_path / "dl")
        assert applier.fetch(PatchSpec(url=str(p), hash=raw), 1) == p

    def test_unpinned_reports_actual(self, tmp_path) -> None:
        p = tmp_path / "fix.patch"
        p.write_text(self.MAIL)
        with pytest.raises(SourceIntegrityError, match="未声明") as exc:
            PatchApplier(tmp_path / "dl").fetch(PatchSpec(url=str(p), hash=""), 1)
        assert exc.value.actual == file_sha256(p)


class TestGitSource:
    SPEC = SourceSpec(
        url="https://github.com/keycloak/keycloak.git",
        rev="02d64d959c088815fbb3809106d8967dd7524a81", hash="",
        source_type="git",
    )

    @staticmethod
    def _handler(shallow_ok: bool):
        def handle(cmd, cwd, env):
            if cmd[1] == "init":
                (Path(cwd) / ".git").mkdir()
            if cmd[1] == "fetch" and "--depth" in cmd and not shallow_ok:
                return CommandResult(128, "", "server does not allow request for unadvertised object")
            return None
        return handle

    def test_shallow_fetch_and_git_dir_removed(self, tmp_path, fake_executor) -> None:
        fake_executor.handler = self._handler(shallow_ok=True)
        dest = GitSource(executor=fake_executor).fetch(self.SPEC, tmp_path / "src")
        assert not (dest / ".git").exists()
        assert fake_executor.commands()[-1] == "git checkout --quiet FETCH_HEAD"

    def test_full_fetch_fallback(self, tmp_path, fake_executor) -> None:
        fake_executor.handler = self._handler(shallow_ok=False)
        GitSource(executor=fake_executor).fetch(self.SPEC, tmp_path / "src")
        assert fake_executor.commands()[-2:] == [
            "git fetch origin",
            f"git checkout --quiet {self.SPEC.rev}",
        ]

    def test_unsafe_rev(self, tmp_path, fake_executor) -> None:
        spec = SourceSpec(url="u", rev="main; rm -rf /", hash="", source_type="git")
        with pytest.raises(ValidationError, match="非法字符"):
            GitSource(executor=fake_executor).fetch(spec, tmp_path / "src")
        assert fake_executor.calls == []
