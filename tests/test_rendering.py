"""
Tests for the config renderer — determinism, diff-before-write, backups.
"""

import os
import stat
from pathlib import Path

import pytest

from converge.core.errors import ConfigurationError, RenderError
from converge.core.models import ArtifactSpec
from converge.core.rendering.renderer import (
    ConfigArtifact,
    atomic_write,
    backup_path_for,
    render,
    render_artifacts,
    write_if_changed,
)
from converge.core.rendering.zshrc import GENERATORS, HEADER, zsh_ai, zsh_linux, zsh_macos, zsh_tools


def _artifact(path: Path, generator: str = "zsh-tools") -> ConfigArtifact:
    return ConfigArtifact.from_spec(ArtifactSpec(name="tools", path=str(path), generator=generator))


# ── Generators ───────────────────────────────────────────────────────


class TestGenerators:
    def test_same_capabilities_same_bytes(self):
        caps = frozenset({"zoxide", "lsd", "bat"})
        for generate in GENERATORS.values():
            assert generate(caps) == generate(frozenset(sorted(caps, reverse=True)))

    def test_tools_only_for_present_capabilities(self):
        content = zsh_tools(frozenset({"zoxide"}))
        assert content.startswith(HEADER)
        assert "zoxide init zsh" in content
        assert "lsd" not in content

    def test_tools_fixed_order(self):
        content = zsh_tools(frozenset({"bat", "lsd", "zoxide"}))
        assert content.index("zoxide") < content.index("lsd") < content.index("bat --paging")

    def test_ai_functions(self):
        content = zsh_ai(frozenset({"claude-code"}))
        assert "cyolo()" in content
        assert "cplan()" in content
        assert "xyolo()" not in content
        assert "xyolo()" in zsh_ai(frozenset({"codex"}))

    def test_macos_guard_and_fragments(self):
        content = zsh_macos(frozenset({"homebrew", "go", "claude-code"}))
        assert '[[ ! "$OSTYPE" == darwin* ]] && return' in content
        assert "brew shellenv" in content
        assert 'export PATH="$HOME/go/bin:$PATH"' in content
        assert "ENABLE_TOOL_SEARCH=auto:5" in content

    def test_linux_fallback_aliases(self):
        content = zsh_linux(frozenset({"fd-find", "bat"}))
        assert "alias fd='fdfind'" in content
        assert "alias bat='batcat'" in content
        assert "ENABLE_TOOL_SEARCH" not in content


# ── Filesystem ───────────────────────────────────────────────────────


class TestWriteIfChanged:
    def test_new_file_written(self, tmp_path: Path):
        path = tmp_path / ".zshrc.d" / "30-tools.zsh"
        result = write_if_changed(path, "alias ls='lsd'\n")
        assert result.status == "written"
        assert result.backup_path is None
        assert path.read_text() == "alias ls='lsd'\n"

    def test_identical_content_not_touched(self, tmp_path: Path):
        path = tmp_path / "30-tools.zsh"
        path.write_text("same\n")
        before = path.stat().st_mtime_ns
        result = write_if_changed(path, "same\n")
        assert result.status == "unchanged"
        assert path.stat().st_mtime_ns == before
        assert list(tmp_path.iterdir()) == [path]

    def test_changed_content_backed_up_first(self, tmp_path: Path):
        path = tmp_path / "30-tools.zsh"
        old = "# hand edited\nalias ll='ls -l'\n"
        path.write_text(old)
        result = write_if_changed(path, "new\n")

        assert result.status == "backed_up_and_written"
        assert result.backup_path is not None
        assert result.backup_path.read_text() == old
        assert result.backup_path.name.startswith("30-tools.zsh.bak.")
        assert path.read_text() == "new\n"

    def test_backup_disabled(self, tmp_path: Path):
        path = tmp_path / "f"
        path.write_text("old\n")
        result = write_if_changed(path, "new\n", backup=False)
        assert result.status == "written"
        assert sorted(p.name for p in tmp_path.iterdir()) == ["f"]

    def test_unwritable_target_raises(self, tmp_path: Path):
        path = tmp_path / "is-a-dir"
        path.mkdir()
        with pytest.raises(RenderError) as exc:
            write_if_changed(path, "x\n")
        assert exc.value.path == path


class TestAtomicWrite:
    def test_preserves_mode(self, tmp_path: Path):
        path = tmp_path / "script"
        path.write_text("old")
        os.chmod(path, 0o755)
        atomic_write(path, b"new")
        assert stat.S_IMODE(path.stat().st_mode) == 0o755
        assert path.read_bytes() == b"new"

    def test_no_temp_files_left(self, tmp_path: Path):
        atomic_write(tmp_path / "a", b"x")
        assert [p.name for p in tmp_path.iterdir()] == ["a"]


class TestBackupPath:
    def test_avoids_collisions(self, tmp_path: Path):
        path = tmp_path / "f"
        first = backup_path_for(path, "20260101_000000")
        first.write_text("taken")
        second = backup_path_for(path, "20260101_000000")
        assert first.name == "f.bak.20260101_000000"
        assert second.name == "f.bak.20260101_000000-1"


# ── Rendering ────────────────────────────────────────────────────────


class TestRender:
    def test_deterministic_across_runs(self, tmp_path: Path):
        caps = {"zoxide", "lsd"}
        a, b = tmp_path / "a.zsh", tmp_path / "b.zsh"
        render(_artifact(a), caps)
        render(_artifact(b), list(reversed(sorted(caps))))
        assert a.read_bytes() == b.read_bytes()

    def test_rerender_is_unchanged(self, tmp_path: Path):
        path = tmp_path / "30-tools.zsh"
        assert render(_artifact(path), {"zoxide"}).status == "written"
        assert render(_artifact(path), {"zoxide"}).status == "unchanged"

    def test_capability_change_backs_up(self, tmp_path: Path):
        path = tmp_path / "30-tools.zsh"
        render(_artifact(path), {"zoxide"})
        before = path.read_text()
        result = render(_artifact(path), {"zoxide", "lsd"})
        assert result.status == "backed_up_and_written"
        assert result.backup_path.read_text() == before

    def test_generator_failure_is_render_error(self, tmp_path: Path):
        def _broken(caps):
            raise KeyError("boom")

        artifact = ConfigArtifact(name="broken", path=tmp_path / "x", generate=_broken)
        with pytest.raises(RenderError):
            render(artifact, set())

    def test_unknown_generator(self, tmp_path: Path):
        spec = ArtifactSpec(name="x", path=str(tmp_path / "x"), generator="zsh-nope")
        with pytest.raises(ConfigurationError):
            ConfigArtifact.from_spec(spec)

    def test_render_artifacts_collects_failures(self, tmp_path: Path):
        bad = tmp_path / "dir"
        bad.mkdir()
        results = render_artifacts([_artifact(bad), _artifact(tmp_path / "ok.zsh")], {"lsd"})
        assert [r.status for r in results] == ["failed", "written"]
        assert results[0].error
        assert not results[0].ok
