"""
Tests for catalog loading — YAML parsing, validation, resolution.
"""

import textwrap
from pathlib import Path

import pytest

from converge.adapters.registry import default_registry
from converge.core.config import loader
from converge.core.config.loader import (
    builtin_catalog_path,
    default_state_dir,
    detect_platform,
    list_builtin_catalogs,
    load_catalog,
    parse_catalog,
    resolve_catalog_path,
)
from converge.core.engine.planner import plan
from converge.core.errors import ConfigurationError
from converge.core.models import SourceKind
from converge.core.rendering.renderer import ConfigArtifact


def _write(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "catalog.yml"
    path.write_text(textwrap.dedent(content))
    return path


class TestLoadCatalog:
    def test_minimal(self, tmp_path: Path):
        path = _write(tmp_path, """\
            platform: ubuntu
            units:
              - id: git
                kind: system-package
                manager: apt
              - id: gh
                kind: system-package
                manager: apt
                depends_on: [git]
        """)
        catalog = load_catalog(path)
        assert catalog.platform == "ubuntu"
        assert catalog.ids == ["git", "gh"]
        assert catalog.get("gh").depends_on == ("git",)

    def test_paths_expanded(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("HOME", str(tmp_path))
        monkeypatch.setenv("TOOLS_DIR", "/opt/tools")
        path = _write(tmp_path, """\
            units:
              - id: claude-config
                kind: git-clone
                repo: https://example.com/x.git
                dest: ~/.claude
              - id: tldr
                kind: binary-download
                url: https://example.com/tldr
                dest: $TOOLS_DIR/tldr
            artifacts:
              - name: tools
                path: ~/.zshrc.d/30-tools.zsh
                generator: zsh-tools
        """)
        catalog = load_catalog(path)
        assert catalog.get("claude-config").dest == str(tmp_path / ".claude")
        assert catalog.get("tldr").dest == "/opt/tools/tldr"
        assert catalog.artifacts[0].path == str(tmp_path / ".zshrc.d" / "30-tools.zsh")

    def test_platform_filter(self, tmp_path: Path):
        path = _write(tmp_path, """\
            platform: macos
            units:
              - {id: rosetta, kind: system-package, manager: macos, platforms: [macos]}
              - {id: apt-only, kind: system-package, manager: apt, platforms: [linux]}
        """)
        assert load_catalog(path).ids == ["rosetta"]

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_catalog(tmp_path / "nope.yml")

    def test_invalid_yaml(self, tmp_path: Path):
        path = _write(tmp_path, "units: [unclosed\n")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_catalog(path)

    def test_not_a_mapping(self, tmp_path: Path):
        path = _write(tmp_path, "- just\n- a list\n")
        with pytest.raises(ConfigurationError, match="Expected a YAML mapping"):
            load_catalog(path)

    def test_schema_error(self, tmp_path: Path):
        path = _write(tmp_path, """\
            units:
              - id: x
                kind: flatpak
        """)
        with pytest.raises(ConfigurationError, match="Invalid catalog"):
            load_catalog(path)

    def test_duplicate_ids(self, tmp_path: Path):
        path = _write(tmp_path, """\
            units:
              - {id: git, kind: system-package}
              - {id: git, kind: system-package}
        """)
        with pytest.raises(ConfigurationError) as exc:
            load_catalog(path)
        assert exc.value.units == ["git"]

    def test_parse_catalog_from_dict(self):
        catalog = parse_catalog({"units": [{"id": "jq", "kind": "system-package"}]})
        assert catalog.ids == ["jq"]


class TestResolution:
    def test_explicit_path_wins(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("CONVERGE_CATALOG", "/env/catalog.yml")
        assert resolve_catalog_path(tmp_path / "x.yml") == tmp_path / "x.yml"

    def test_env_var(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("CONVERGE_CATALOG", "/env/catalog.yml")
        assert resolve_catalog_path() == Path("/env/catalog.yml")

    def test_builtin_for_platform(self):
        assert resolve_catalog_path(platform="macos") == builtin_catalog_path("macos")

    def test_detect_platform(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr(loader._platform, "system", lambda: "Darwin")
        assert detect_platform() == "macos"
        monkeypatch.setattr(loader._platform, "system", lambda: "Linux")
        assert detect_platform() == "ubuntu"
        monkeypatch.setattr(loader._platform, "system", lambda: "Windows")
        with pytest.raises(ConfigurationError):
            detect_platform()

    def test_state_dir_env(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("CONVERGE_STATE_DIR", str(tmp_path / "s"))
        assert default_state_dir() == tmp_path / "s"
        monkeypatch.delenv("CONVERGE_STATE_DIR")
        assert default_state_dir().parts[-3:] == (".local", "state", "converge")


class TestBuiltinCatalogs:
    def test_listed(self):
        assert list_builtin_catalogs() == ["macos", "ubuntu"]

    @pytest.mark.parametrize("name", ["macos", "ubuntu"])
    def test_loads_plans_and_binds(self, name: str):
        catalog = load_catalog(platform=name)
        assert catalog.platform == name
        assert len(catalog.units) > 20
        assert plan(catalog).total_units == len(catalog.units)
        assert default_registry().unresolved(catalog.units) == []
        for spec in catalog.artifacts:
            ConfigArtifact.from_spec(spec)

    @pytest.mark.parametrize("name", ["macos", "ubuntu"])
    def test_generator_capabilities_exist(self, name: str):
        catalog = load_catalog(platform=name)
        assert {"zoxide", "lsd", "bat", "claude-code", "codex"} <= set(catalog.ids)

    @pytest.mark.parametrize("name", ["macos", "ubuntu"])
    def test_account_settings_and_updatable_clones(self, name: str):
        catalog = load_catalog(platform=name)
        assert {"default-shell", "gh-credential"} <= set(catalog.ids)
        assert catalog.get("default-shell").depends_on == ("zsh",)
        assert catalog.get("oh-my-zsh").kind == SourceKind.GIT_CLONE
        assert catalog.get("claude-config").kind == SourceKind.GIT_CLONE

    def test_macos_node_from_brew_and_nvm(self):
        catalog = load_catalog(platform="macos")
        assert catalog.get("node").manager == "brew"
        assert catalog.get("node-lts").manager == "nvm"
        assert catalog.get("node-lts").depends_on == ("nvm",)
