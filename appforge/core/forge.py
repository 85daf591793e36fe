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
# THE FORGE - BUILD ORCHESTRATOR
# -----------------------------------------------------------------------------
# Responsibility: Wire cache -> catalog / tailor -> archiver for one request.
#
# Lifecycle of a build:
# 1. Tailor a private working copy (refreshing the shared cache first)
# 2. Hand back a BuildArtifact whose stream() yields ZIP chunks
# 3. The working copy is deleted when the stream ends, fails, or the client
#    goes away (generator close), whichever happens first
# -----------------------------------------------------------------------------

import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path

from rich.console import Console

from appforge.core.archiver import stream_archive
from appforge.core.catalog import ManifestCatalog
from appforge.core.settings import Settings, find_token_overlap
from appforge.core.tailor import TailoringPipeline
from appforge.domain.models import ApplicationSummary
from appforge.infra.git_client import RepositoryCache

console = Console()

DEFAULT_ARCHIVE_NAME = "appforge"


class BuildRejected(Exception):
    """Raised when a build request cannot be honoured as asked."""

    pass


def archive_filename(*candidates: str | None) -> str:
    """First usable candidate, reduced to [A-Za-z0-9._-], plus .zip."""
    for candidate in candidates:
        if not candidate:
            continue
        cleaned = re.sub(r"[^A-Za-z0-9._-]+", "-", candidate).strip(".-")
        if cleaned:
            return f"{cleaned}.zip"
    return f"{DEFAULT_ARCHIVE_NAME}.zip"


@dataclass
class BuildArtifact:
    """A tailored working copy waiting to be streamed."""

    filename: str
    workdir: Path
    compression_level: int
    pipeline: TailoringPipeline

    def stream(self) -> Iterator[bytes]:
        """Yield the ZIP, then delete the working copy no matter how we exit."""
        try:
            yield from stream_archive(self.workdir, self.compression_level)
        finally:
            self.pipeline.discard(self.workdir)
            console.print(f"[cyan][FORGE] Disposed {self.workdir.name}[/cyan]")


class Forge:
    """
    Entry point for the API layer.

    One Forge per process: it owns the single RepositoryCache.
    """

    def __init__(self, settings: Settings, cache: RepositoryCache | None = None) -> None:
        self._settings = settings
        self._cache = cache or RepositoryCache(
            remote=settings.git_repo,
            branch=settings.git_branch,
            cache_dir=settings.cache_dir,
            ssh_key=settings.git_key,
            timeout=settings.git_timeout,
        )
        self._catalog = ManifestCatalog(
            self._cache, apps_glob=settings.apps_glob, projects_key=settings.projects_key
        )
        self._pipeline = TailoringPipeline.from_settings(self._cache, settings)

    @property
    def settings(self) -> Settings:
        return self._settings

    def list_applications(self, allow_stale: bool = False) -> list[ApplicationSummary]:
        return self._catalog.list_applications(allow_stale=allow_stale)

    def build(
        self,
        selection: Iterable[str],
        replacement: str | None = None,
        name: str | None = None,
        allow_stale: bool = False,
    ) -> BuildArtifact:
        """
        Tailor the repository for a selection.

        Args:
            selection: Application names to keep.
            replacement: The operator's value for the primary token (domain).
            name: Archive display name; falls back to replacement.
            allow_stale: Tolerate a failed cache refresh.

        Returns:
            BuildArtifact ready to stream.

        Raises:
            BuildRejected: If the replacement contains a token.
            SourceUnavailable, TailorFailed: Nothing has been streamed yet.
        """
        selection = list(selection)
        tokens = self._settings.token_table(replacement)
        overlap = find_token_overlap(tokens)
        if overlap:
            raise BuildRejected(f"Replacement {overlap[0]!r} contains token {overlap[1]!r}")
        workdir = self._pipeline.tailor(selection, tokens=tokens, allow_stale=allow_stale)

        return BuildArtifact(
            filename=archive_filename(name, replacement),
            workdir=workdir,
            compression_level=self._settings.zip_level,
            pipeline=self._pipeline,
        )
