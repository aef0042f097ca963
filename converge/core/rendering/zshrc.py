"""
Content generators for the ``~/.zshrc.d`` modules.

Each generator is a pure function of the capability set (ids of units
present after the run).  Fragments are emitted in a fixed order and
nothing reads the clock or the environment, so the same capabilities
always produce byte-identical files.
"""

from __future__ import annotations

from collections.abc import Callable

HEADER = "# Generated by converge; edits are replaced on the next run (a backup is kept).\n"


def _module(title: str, *blocks: str, guard: str = "") -> str:
    parts = [HEADER, f"# {title}\n"]
    if guard:
        parts.append(guard + "\n")
    for block in blocks:
        parts.append("\n" + block.rstrip("\n") + "\n")
    return "".join(parts)


# ── 30-tools.zsh ───────────────────────────────────────────────


def zsh_tools(caps: frozenset[str]) -> str:
    blocks: list[str] = []
    if "zoxide" in caps:
        blocks.append(
            "# zoxide - smarter cd with frecency tracking\n"
            'command -v zoxide &>/dev/null && eval "$(zoxide init zsh)"'
        )
    if "lsd" in caps:
        blocks.append(
            "# lsd - modern ls with colors/icons\n"
            "command -v lsd &>/dev/null && alias ls='lsd'"
        )
    if "bat" in caps:
        blocks.append(
            "# bat - cat with syntax highlighting\n"
            "alias cat='bat --paging=never'"
        )
    return _module("Universal CLI tools", *blocks)


# ── 50-claude.zsh ──────────────────────────────────────────────

_CLAUDE_FUNCS = """\
# cyolo - Run Claude Code in YOLO mode (auto-accept all prompts)
cyolo() {
    claude --dangerously-skip-permissions "$@"
}

# cplan - Run Claude Code in plan mode
cplan() {
    claude --dangerously-skip-permissions --permission-mode plan "$@"
}"""

_CODEX_FUNCS = """\
# xyolo - Run Codex in full-auto mode (default, overridable)
xyolo() {
    if [[ "$*" == *"--approval-mode"* ]]; then
        codex "$@"
    else
        codex --approval-mode full-auto "$@"
    fi
}"""


def zsh_ai(caps: frozenset[str]) -> str:
    blocks: list[str] = []
    if "claude-code" in caps:
        blocks.append(_CLAUDE_FUNCS)
    if "codex" in caps:
        blocks.append(_CODEX_FUNCS)
    return _module("Claude/AI CLI functions", *blocks)


# ── 80-macos.zsh ───────────────────────────────────────────────

_TOOL_SEARCH = "# Claude Code tool search\nexport ENABLE_TOOL_SEARCH=auto:5"


def zsh_macos(caps: frozenset[str]) -> str:
    blocks: list[str] = []
    if "homebrew" in caps:
        blocks.append(
            "# Homebrew (Apple Silicon or Intel)\n"
            'if [[ "$(uname -m)" == "arm64" ]]; then\n'
            '    eval "$(/opt/homebrew/bin/brew shellenv)"\n'
            "else\n"
            '    eval "$(/usr/local/bin/brew shellenv)"\n'
            "fi"
        )
    if "go" in caps:
        blocks.append('# Go binaries\nexport PATH="$HOME/go/bin:$PATH"')
    if "claude-code" in caps:
        blocks.append(_TOOL_SEARCH)
    return _module(
        "macOS-specific configuration", *blocks,
        guard='[[ ! "$OSTYPE" == darwin* ]] && return',
    )


# ── 85-linux.zsh ───────────────────────────────────────────────


def zsh_linux(caps: frozenset[str]) -> str:
    fallbacks: list[str] = []
    if "fd-find" in caps:
        fallbacks.append(
            "command -v fdfind &>/dev/null && ! command -v fd &>/dev/null && alias fd='fdfind'"
        )
    if "bat" in caps:
        fallbacks.append(
            "command -v batcat &>/dev/null && ! command -v bat &>/dev/null && alias bat='batcat'"
        )
    blocks: list[str] = []
    if fallbacks:
        blocks.append(
            "# fd-find / bat fallbacks (Ubuntu renames these packages)\n" + "\n".join(fallbacks)
        )
    if "claude-code" in caps:
        blocks.append(_TOOL_SEARCH)
    return _module(
        "Linux-specific configuration", *blocks,
        guard='[[ ! "$OSTYPE" == linux-gnu* ]] && return',
    )


GENERATORS: dict[str, Callable[[frozenset[str]], str]] = {
    "zsh-tools": zsh_tools,
    "zsh-ai": zsh_ai,
    "zsh-macos": zsh_macos,
    "zsh-linux": zsh_linux,
}
