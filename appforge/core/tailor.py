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
# THE TAILOR - REPOSITORY PRUNING PIPELINE
# -----------------------------------------------------------------------------
# Responsibility: Turn the cached reference repository into a private working
# copy that only contains what the operator selected.
#
# Pipeline (always on a fresh copy, NEVER on the cache):
# 1. Manifest pruning   - drop unselected applications, then empty projects
# 2. Side-file pruning  - values/<app>.yaml survives only if <app> is selected
# 3. Chart pruning      - vendored external charts nobody selected are removed
# 4. Token substitution - literal find/replace across every text file
#
# Any failure discards the working copy. The cache is never touched.
# -----------------------------------------------------------------------------

import os
import re
import shutil
import uuid
from collections.abc import Iterable
from pathlib import Path

from rich.console import Console

from appforge.core.catalog import (
    ManifestInvalid,
    ManifestNotFound,
    app_name,
    find_manifest_files,
    iter_applications,
    load_manifest,
    normalize_chart_path,
    prune_manifest,
    write_manifest,
)
from appforge.core.settings import (
    DEFAULT_APPS_GLOB,
    DEFAULT_PROJECTS_KEY,
    DEFAULT_VALUES_GLOB,
    Settings,
)
from appforge.infra.git_client import RepositoryCache

console = Console()

# Vendored chart versions: <root>/<owner>/<chart>/<version>
EXTERNAL_CHART_GLOBS = ["charts/external/*/*/*", "external/*/*/*"]
VCS_DIRS = {".git"}


class TailorFailed(Exception):
    """Raised when a working copy cannot be pruned or rewritten."""

    pass


def decode_text(data: bytes) -> str | None:
    """Return data as text, or None if it is not UTF-8 (binary content)."""
    if b"\x00" in data:
        return None
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return None


def substitute_tokens(text: str, tokens: list[tuple[str, str]]) -> str:
    """
    Replace every configured token in one left-to-right pass.

    A single pass means no pair ever sees another pair's replacement output.
    Where two tokens start at the same offset the one configured first wins.
    """
    table = {token: value for token, value in reversed(tokens) if token}
    if not table:
        return text
    ordered = [token for token, _ in tokens if token in table]
    pattern = re.compile("|".join(re.escape(token) for token in dict.fromkeys(ordered)))
    return pattern.sub(lambda m: table[m.group(0)], text)


class TailoringPipeline:
    """
    Produces pruned, token-substituted working copies.

    Each call to tailor() gets its own directory under work_dir, so concurrent
    builds never share state.
    """

    def __init__(
        self,
        cache: RepositoryCache,
        work_dir: Path,
        apps_glob: str = DEFAULT_APPS_GLOB,
        projects_key: str = DEFAULT_PROJECTS_KEY,
        values_glob: str = DEFAULT_VALUES_GLOB,
    ) -> None:
        self._cache = cache
        self._work_dir = Path(work_dir)
        self._apps_glob = apps_glob
        self._projects_key = projects_key
        self._values_glob = values_glob

    @classmethod
    def from_settings(cls, cache: RepositoryCache, settings: Settings) -> "TailoringPipeline":
        return cls(
            cache,
            settings.work_dir,
            apps_glob=settings.apps_glob,
            projects_key=settings.projects_key,
            values_glob=settings.values_glob,
        )

    def tailor(
        self,
        selection: Iterable[str],
        tokens: list[tuple[str, str]] | None = None,
        allow_stale: bool = False,
    ) -> Path:
        """
        Build a working copy for one request.

        Args:
            selection: Application names to keep (duplicates and unknown
                names are harmless).
            tokens: Ordered (token, replacement) pairs.
            allow_stale: Tolerate a failed cache refresh.

        Returns:
            Path to the working copy. The caller owns it and must discard() it.

        Raises:
            SourceUnavailable: If the cache cannot be refreshed.
            TailorFailed: On any copy, parse or write error.
        """
        keep = set(selection)
        workdir = self._work_dir / f"build-{uuid.uuid4().hex[:12]}"
        console.print(f"[cyan][TAILOR] Building {workdir.name} for {len(keep)} apps[/cyan]")

        try:
            self._cache.copy_to(workdir, allow_stale=allow_stale)
            charts = self._prune_manifests(workdir, keep)
            self._prune_side_files(workdir, keep)
            self._prune_external_charts(workdir, charts)
            self._substitute(workdir, tokens or [])
        except (OSError, ManifestNotFound, ManifestInvalid) as e:
            self.discard(workdir)
            console.print(f"[red][TAILOR] {workdir.name} failed: {e}[/red]")
            raise TailorFailed(f"Tailoring failed: {e}") from e
        except Exception:
            self.discard(workdir)
            raise

        console.print(f"[green][TAILOR] {workdir.name} ready[/green]")
        return workdir

    def discard(self, workdir: Path) -> None:
        """Delete a working copy. Safe to call twice."""
        shutil.rmtree(workdir, ignore_errors=True)

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def _prune_manifests(self, workdir: Path, keep: set[str]) -> set[str]:
        """
        Rewrite every manifest down to the selection.

        Returns:
            Normalized chart paths referenced by selected applications.
        """
        charts: set[str] = set()
        for manifest_path in find_manifest_files(workdir, self._apps_glob):
            doc = load_manifest(manifest_path)
            for _, app in iter_applications(doc, self._projects_key):
                if app_name(app) in keep and app.get("path"):
                    charts.add(normalize_chart_path(app["path"]))

            write_manifest(manifest_path, prune_manifest(doc, keep, self._projects_key))
            console.print(f"[cyan][TAILOR] Pruned {manifest_path.name}[/cyan]")
        return charts

    def _prune_side_files(self, workdir: Path, keep: set[str]) -> None:
        removed = 0
        for side_file in workdir.glob(self._values_glob):
            if side_file.is_file() and side_file.stem not in keep:
                side_file.unlink()
                removed += 1
        console.print(f"[cyan][TAILOR] Removed {removed} unselected side-files[/cyan]")

    def _prune_external_charts(self, workdir: Path, charts: set[str]) -> None:
        for pattern in EXTERNAL_CHART_GLOBS:
            for chart_dir in workdir.glob(pattern):
                if not chart_dir.is_dir():
                    continue
                if chart_dir.relative_to(workdir).as_posix() not in charts:
                    shutil.rmtree(chart_dir)

    def _substitute(self, workdir: Path, tokens: list[tuple[str, str]]) -> None:
        tokens = [(t, v) for t, v in tokens if t and v]
        if not tokens:
            return

        rewritten = 0
        for dirpath, dirnames, filenames in os.walk(workdir):
            dirnames[:] = [d for d in dirnames if d not in VCS_DIRS]
            for filename in filenames:
                path = Path(dirpath) / filename
                if path.is_symlink() or not path.is_file():
                    continue

                text = decode_text(path.read_bytes())
                if text is None or not any(token in text for token, _ in tokens):
                    continue

                path.write_bytes(substitute_tokens(text, tokens).encode("utf-8"))
                rewritten += 1

        console.print(f"[cyan][TAILOR] Token substitution rewrote {rewritten} files[/cyan]")
