# Copyright 2026 Pramod Kumar Voola
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

# -----------------------------------------------------------------------------
# GIT INFRASTRUCTURE - REPOSITORY CACHE
# -----------------------------------------------------------------------------
# Responsibility: Keep ONE local checkout of the reference repository at the
# tip of the configured branch. Every catalog read and every build starts here.
# Uses subprocess for lean, direct git command execution.
#
# Rules:
# - Read-only: clone, fetch, reset, clean. Never commit, never push.
# - Refresh is fetch + hard reset, never a merge.
# - Refreshes are serialized process-wide (one lock per cache).
#
# Security:
# - The deploy key is written to a private temp dir OUTSIDE the cache, so it
#   can never end up inside a generated archive
# - Key material and key paths are NEVER logged
# -----------------------------------------------------------------------------

import os
import shutil
import subprocess
import tempfile
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from rich.console import Console

console = Console()


class SourceUnavailable(Exception):
    """Raised when the source repository cannot be cloned or refreshed."""

    pass


class RepositoryCache:
    """
    Process-wide cache of the reference repository.

    Callers get a path to an up-to-date working tree via ensure_repository(),
    or a private copy of it via copy_to(). The cache itself is never mutated
    by anything but this class.
    """

    def __init__(
        self,
        remote: str,
        branch: str,
        cache_dir: Path,
        ssh_key: str | None = None,
        timeout: int = 120,
    ) -> None:
        """
        Initialize the cache.

        Args:
            remote: Clone URL (normally git@host:group/repo.git).
            branch: Branch to track.
            cache_dir: Where the checkout lives.
            ssh_key: Private key text for the SSH transport, or None.
            timeout: Seconds allowed per git command.
        """
        self._remote = remote
        self._branch = branch
        self._cache_dir = Path(cache_dir)
        self._ssh_key = ssh_key
        self._timeout = timeout
        self._lock = threading.Lock()
        self._key_path: str | None = None

    @property
    def path(self) -> Path:
        return self._cache_dir

    def ensure_repository(self, allow_stale: bool = False) -> Path:
        """
        Clone or refresh the cache, serialized against other callers.

        Args:
            allow_stale: Return the existing checkout if a refresh fails.

        Returns:
            Path to the working tree at the branch tip.

        Raises:
            SourceUnavailable: If clone or fetch fails (and no stale fallback).
        """
        with self._lock:
            return self._ensure(allow_stale)

    @contextmanager
    def snapshot(self, allow_stale: bool = False) -> Iterator[Path]:
        """
        Refresh the cache and hold the lock while the caller reads the tree.

        No refresh (and so no reset or clean) can run until the block exits.

        Raises:
            SourceUnavailable: If the refresh fails.
        """
        with self._lock:
            yield self._ensure(allow_stale)

    def copy_to(self, dest: Path, allow_stale: bool = False) -> Path:
        """
        Refresh the cache and copy its tree (minus .git) into dest.

        The copy happens under the same lock as the refresh, so a concurrent
        request can never reset the tree halfway through our copy. Anything
        already at dest is removed first: delete-then-copy, never merge.

        Raises:
            SourceUnavailable: If the refresh fails.
            OSError: If the copy fails.
        """
        dest = Path(dest)
        with self._lock:
            root = self._ensure(allow_stale)
            if dest.exists():
                shutil.rmtree(dest)
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copytree(root, dest, ignore=shutil.ignore_patterns(".git"), symlinks=True)
        return dest

    # -------------------------------------------------------------------------
    # Internals (caller holds the lock)
    # -------------------------------------------------------------------------

    def _ensure(self, allow_stale: bool) -> Path:
        if self._is_checkout():
            try:
                self._refresh()
            except SourceUnavailable as e:
                if not allow_stale:
                    raise
                console.print(f"[yellow][GIT] Refresh failed, serving stale cache: {e}[/yellow]")
        else:
            self._clone()

        head = self._run(["git", "rev-parse", "--short", "HEAD"], cwd=self._cache_dir)
        console.print(f"[green][GIT] Cache at {self._branch}@{head.stdout.strip()}[/green]")
        return self._cache_dir

    def _is_checkout(self) -> bool:
        if not (self._cache_dir / ".git").exists():
            return False
        result = self._run(
            ["git", "rev-parse", "--is-inside-work-tree"], cwd=self._cache_dir, check=False
        )
        return result.returncode == 0 and result.stdout.strip() == "true"

    def _clone(self) -> None:
        console.print(f"[cyan][GIT] Cloning {self._remote} ({self._branch})...[/cyan]")

        # Leftover from a crashed clone or a non-git directory
        if self._cache_dir.exists():
            shutil.rmtree(self._cache_dir)
        self._cache_dir.parent.mkdir(parents=True, exist_ok=True)

        try:
            self._run(
                [
                    "git", "clone",
                    "--branch", self._branch,
                    "--single-branch",
                    self._remote,
                    str(self._cache_dir),
                ],
                cwd=self._cache_dir.parent,
                remote=True,
            )
        except SourceUnavailable:
            # Never leave a half-cloned tree behind for the next call to trust
            shutil.rmtree(self._cache_dir, ignore_errors=True)
            raise

    def _refresh(self) -> None:
        console.print(f"[cyan][GIT] Fetching {self._branch}...[/cyan]")
        self._run(
            ["git", "fetch", "--prune", "origin", self._branch], cwd=self._cache_dir, remote=True
        )
        self._run(["git", "reset", "--hard", "FETCH_HEAD"], cwd=self._cache_dir)
        self._run(["git", "clean", "-ffdx"], cwd=self._cache_dir)

    @contextmanager
    def _ssh_env(self, remote: bool) -> Iterator[dict[str, str]]:
        """Environment for one git command, with a throwaway key file for remote calls."""
        env = dict(os.environ)
        env["GIT_TERMINAL_PROMPT"] = "0"

        if not (remote and self._ssh_key):
            yield env
            return

        key_dir = tempfile.mkdtemp(prefix="appforge-ssh-")
        key_path = os.path.join(key_dir, "id_deploy")
        try:
            fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            with os.fdopen(fd, "w") as f:
                f.write(self._ssh_key)
            self._key_path = key_path
            env["GIT_SSH_COMMAND"] = (
                f"ssh -i {key_path} -o IdentitiesOnly=yes "
                "-o StrictHostKeyChecking=accept-new -o BatchMode=yes"
            )
            yield env
        finally:
            shutil.rmtree(key_dir, ignore_errors=True)
            self._key_path = None

    def _run(
        self, cmd: list, cwd: Path, check: bool = True, remote: bool = False
    ) -> subprocess.CompletedProcess:
        """
        Run a git command.

        Args:
            cmd: Command parts (e.g., ["git", "fetch"])
            cwd: Working directory
            check: Raise on non-zero exit
            remote: Command talks to the remote and needs the deploy key

        Returns:
            CompletedProcess result

        Raises:
            SourceUnavailable: If the command fails (and check=True) or times out
        """
        with self._ssh_env(remote) as env:
            try:
                result = subprocess.run(
                    cmd,
                    cwd=cwd,
                    env=env,
                    capture_output=True,
                    text=True,
                    timeout=self._timeout,
                )
            except subprocess.TimeoutExpired:
                raise SourceUnavailable(f"Git operation timed out ({self._timeout}s limit)")
            except FileNotFoundError:
                raise SourceUnavailable("git executable not found")
            except subprocess.SubprocessError as e:
                raise SourceUnavailable(f"Git subprocess error: {self._sanitize_output(str(e))}")

            if check and result.returncode != 0:
                error_msg = self._sanitize_output(result.stderr or result.stdout or "Unknown error")
                raise SourceUnavailable(f"Git command failed: {error_msg.strip()}")

            return result

    def _sanitize_output(self, text: str) -> str:
        """Remove any trace of the deploy key before logging."""
        if self._key_path:
            text = text.replace(self._key_path, "[REDACTED]")
        if self._ssh_key:
            for line in self._ssh_key.splitlines():
                line = line.strip()
                if len(line) > 16 and line in text:
                    text = text.replace(line, "[REDACTED]")
        return text
