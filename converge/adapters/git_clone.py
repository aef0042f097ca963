"""
Git clone backend — repositories checked out to a fixed path.

A clone is STALE when its upstream branch has commits the local
checkout does not contain.  The check compares ``git ls-remote``
against local history and never fetches, so detection leaves the
repository untouched.  When the remote cannot be reached the clone is
reported current.

An existing destination without ``.git`` is never clobbered: the
install reports failure and leaves the directory alone.  Units with a
``script`` (Oh My Zsh) are installed by that script instead of a bare
``git clone``; updates still go through ``git pull``.
"""

from __future__ import annotations

import logging
from pathlib import Path

from converge.adapters.base import Backend, find_binary
from converge.adapters.binary_download import script_command
from converge.core.errors import DetectionError
from converge.core.execution.subprocess_runner import CommandResult
from converge.core.models.outcome import Presence
from converge.core.models.unit import SourceKind, Unit

logger = logging.getLogger(__name__)

# Never block on a credential prompt while checking a remote.
_NO_PROMPT = {"GIT_TERMINAL_PROMPT": "0"}


class GitCloneBackend(Backend):
    """``git clone`` into ``unit.dest``; ``git pull`` to upgrade."""

    kind = SourceKind.GIT_CLONE

    def is_available(self) -> bool:
        return find_binary("git", extra_dirs=()) is not None

    def query_presence(self, unit: Unit) -> Presence:
        if not unit.dest:
            raise DetectionError(f"Unit '{unit.id}' has no dest")
        if not (Path(unit.dest) / ".git").is_dir():
            return Presence.ABSENT
        if unit.upgrade and self._behind_upstream(unit):
            return Presence.STALE
        return Presence.CURRENT

    def _behind_upstream(self, unit: Unit) -> bool:
        git = ["git", "-C", unit.dest]
        upstream = self._run([*git, "rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}"])
        if not upstream.ok or "/" not in upstream.output:
            logger.debug("%s: no upstream branch, not checking for updates", unit.id)
            return False
        remote, branch = upstream.output.strip().split("/", 1)

        listing = self._run(
            [*git, "ls-remote", remote, f"refs/heads/{branch}"], env_overrides=_NO_PROMPT,
        )
        if not listing.ok or not listing.output.strip():
            logger.warning(
                "%s: could not reach %s, assuming up to date: %s",
                unit.id, remote, listing.output.strip()[:200],
            )
            return False
        remote_head = listing.output.split()[0]

        # Exit 0: the remote head is already in local history.
        contained = self._run([*git, "merge-base", "--is-ancestor", remote_head, "HEAD"])
        if contained.ok:
            return False
        logger.info("%s: %s/%s has new commits", unit.id, remote, branch)
        return True

    def query_version(self, unit: Unit) -> str | None:
        if unit.version_command or unit.binary:
            return super().query_version(unit)
        result = self._run(["git", "-C", unit.dest, "describe", "--tags", "--abbrev=0"])
        if not result.ok:
            return None
        return result.output.strip() or None

    def install(self, unit: Unit) -> CommandResult:
        dest = Path(unit.dest)
        if dest.exists() and not (dest / ".git").is_dir():
            return CommandResult(
                exit_code=1,
                output=(
                    f"{dest} exists without git history; not cloning over it. "
                    f"Move it aside and re-run to clone {unit.repo or unit.script}."
                ),
            )
        if unit.script:
            logger.info("Running installer script for %s", unit.id)
            return self._run(script_command(unit), env_overrides=unit.env or None)
        return self._run(["git", "clone", *unit.args, unit.repo, str(dest)])

    def upgrade(self, unit: Unit) -> CommandResult:
        return self._run(
            ["git", "-C", unit.dest, "pull", "--ff-only", "--quiet"], env_overrides=_NO_PROMPT,
        )
