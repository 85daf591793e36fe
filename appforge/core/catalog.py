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
# THE CATALOG - APP-OF-APPS MANIFEST READER
# -----------------------------------------------------------------------------
# Responsibility: Parse the app-of-apps manifest(s) and flatten
# projects -> applications into the list the selection UI shows.
#
# The parse / flatten / prune helpers here are the ONLY definition of
# "what is an application". The Tailor imports them; it never re-parses
# the manifest its own way.
#
# The manifest is kept as a plain YAML tree: we rely on `name`, the projects
# key and `applications`. Every other field is carried through verbatim.
# -----------------------------------------------------------------------------

import base64
import copy
import re
from collections.abc import Iterable, Iterator
from pathlib import Path

import yaml
from rich.console import Console

from appforge.core.settings import DEFAULT_APPS_GLOB, DEFAULT_PROJECTS_KEY
from appforge.domain.models import ApplicationSummary
from appforge.infra.git_client import RepositoryCache

console = Console()

COMMON_ICONS = ["icon.png", "icon.jpg", "icon.svg", "logo.png"]
ICON_MIME = {
    ".svg": "image/svg+xml",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".png": "image/png",
}
README_EXCERPT_CHARS = 280


class ManifestNotFound(Exception):
    """Raised when no manifest file matches the configured glob."""

    pass


class ManifestInvalid(Exception):
    """Raised when a manifest file is not a YAML mapping."""

    def __init__(self, message: str, path: Path | None = None) -> None:
        super().__init__(message)
        self.path = path


# =============================================================================
# PARSE / FLATTEN / PRUNE (shared with the Tailor)
# =============================================================================


def find_manifest_files(root: Path, pattern: str = DEFAULT_APPS_GLOB) -> list[Path]:
    """
    Find every app-of-apps manifest under root.

    Raises:
        ManifestNotFound: If nothing matches.
    """
    files = sorted(p for p in Path(root).glob(pattern) if p.is_file())
    if not files:
        raise ManifestNotFound(f'No file matched APPS_GLOB="{pattern}" in {root}')
    return files


def load_manifest(path: Path) -> dict:
    """
    Load one manifest file.

    An empty file is an empty manifest.

    Raises:
        ManifestNotFound: If the file does not exist.
        ManifestInvalid: If it is not YAML, or not a mapping at the top level.
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ManifestNotFound(f"Manifest not found: {path}")
    except UnicodeDecodeError as e:
        raise ManifestInvalid(f"Manifest is not UTF-8 text: {e}", path)

    try:
        doc = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ManifestInvalid(f"Cannot parse {Path(path).name}: {e}", path)

    if doc is None:
        return {}
    if not isinstance(doc, dict):
        raise ManifestInvalid(
            f"{Path(path).name}: expected a mapping, got {type(doc).__name__}", path
        )
    return doc


def write_manifest(path: Path, doc: dict) -> None:
    """Serialize a (pruned) manifest back to YAML, keeping key order."""
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(doc, f, sort_keys=False, allow_unicode=True, default_flow_style=False)


def _as_list(value) -> list:
    return value if isinstance(value, list) else []


def app_name(app) -> str | None:
    """
    The selectable name of an application entry.

    YAML scalars (`name: 2048`) become their string form. Entries without a
    name, or with a list or mapping as name, have no name and are skipped by
    both the listing and the pruning.
    """
    if not isinstance(app, dict):
        return None
    name = app.get("name")
    if name is None or isinstance(name, (dict, list)):
        return None
    name = str(name).strip()
    return name or None


def iter_applications(
    doc: dict, projects_key: str = DEFAULT_PROJECTS_KEY
) -> Iterator[tuple[str, dict]]:
    """
    Flatten a manifest in document order.

    Yields:
        (project_name, application) for every named application. Missing
        project or application lists count as empty.
    """
    for project in _as_list(doc.get(projects_key)):
        if not isinstance(project, dict):
            continue
        project_name = str(project.get("name") or "")
        for app in _as_list(project.get("applications")):
            if app_name(app):
                yield project_name, app


def prune_manifest(
    doc: dict, selection: Iterable[str], projects_key: str = DEFAULT_PROJECTS_KEY
) -> dict:
    """
    Return a copy of doc holding only the selected applications.

    Relative order is preserved, projects left without applications are
    dropped, and every other field is copied verbatim. The input is not
    modified.
    """
    keep = {str(name) for name in selection}
    pruned = copy.deepcopy(doc)

    projects = []
    for project in _as_list(pruned.get(projects_key)):
        if not isinstance(project, dict):
            continue
        apps = [app for app in _as_list(project.get("applications")) if app_name(app) in keep]
        if apps:
            project["applications"] = apps
            projects.append(project)

    pruned[projects_key] = projects
    return pruned


def normalize_chart_path(path: str) -> str:
    """`./charts/x/` and `/charts/x` both become `charts/x`."""
    return re.sub(r"^\.?/*", "", str(path).strip()).rstrip("/")


# =============================================================================
# CHART METADATA
# =============================================================================


def _within(root: Path, path: Path) -> bool:
    """True if path, with symlinks resolved, stays inside root (already resolved)."""
    resolved = path.resolve()
    return resolved == root or root in resolved.parents


def _icon(chart_dir: Path, icon_ref: str) -> str | None:
    if not icon_ref:
        for name in COMMON_ICONS:
            if (chart_dir / name).is_file():
                icon_ref = name
                break
    if not icon_ref:
        return None
    if icon_ref.startswith(("http://", "https://")):
        return icon_ref

    icon_path = chart_dir / icon_ref
    if not _within(chart_dir, icon_path):
        return None
    try:
        data = icon_path.read_bytes()
    except OSError:
        return None
    mime = ICON_MIME.get(icon_path.suffix.lower(), "image/png")
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


def _readme_excerpt(chart_dir: Path) -> str:
    readme = chart_dir / "README.md"
    if not _within(chart_dir, readme):
        return ""
    try:
        text = readme.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return ""

    for block in text.split("\n\n"):
        lines = [
            line.strip()
            for line in block.splitlines()
            if line.strip() and not line.lstrip().startswith(("#", "![", "[!["))
        ]
        if lines:
            paragraph = " ".join(lines)
            if len(paragraph) > README_EXCERPT_CHARS:
                paragraph = paragraph[: README_EXCERPT_CHARS - 3].rstrip() + "..."
            return paragraph
    return ""


def chart_meta(root: Path, app: dict) -> dict:
    """
    Presentation metadata for a vendored chart.

    Remote charts (no `path`) and unreadable charts get empty metadata;
    a broken Chart.yaml must not hide the application from the catalog.
    """
    empty = {"icon": None, "description": "", "maintainers": "", "home": None, "readme": ""}
    if not app.get("path"):
        return empty

    root = Path(root).resolve()
    chart_dir = (root / normalize_chart_path(app["path"])).resolve()
    if not _within(root, chart_dir):
        return empty

    try:
        if not _within(chart_dir, chart_dir / "Chart.yaml"):
            return empty
        chart = yaml.safe_load((chart_dir / "Chart.yaml").read_text(encoding="utf-8")) or {}
    except (OSError, UnicodeDecodeError, yaml.YAMLError):
        return empty
    if not isinstance(chart, dict):
        return empty

    maintainers = []
    for m in _as_list(chart.get("maintainers")):
        name = m.get("name", "") if isinstance(m, dict) else m
        if isinstance(name, str) and name.strip():
            maintainers.append(name.strip())

    return {
        "icon": _icon(chart_dir, str(chart.get("icon") or "")),
        "description": str(chart.get("description") or ""),
        "maintainers": ", ".join(maintainers),
        "home": str(chart["home"]) if chart.get("home") else None,
        "readme": _readme_excerpt(chart_dir),
    }


# =============================================================================
# CATALOG
# =============================================================================


class ManifestCatalog:
    """Read side of the manifest: what can the operator select?"""

    def __init__(
        self,
        cache: RepositoryCache,
        apps_glob: str = DEFAULT_APPS_GLOB,
        projects_key: str = DEFAULT_PROJECTS_KEY,
    ) -> None:
        self._cache = cache
        self._apps_glob = apps_glob
        self._projects_key = projects_key

    def list_applications(self, allow_stale: bool = False) -> list[ApplicationSummary]:
        """
        Flatten every manifest into application summaries.

        Order follows the manifests (sorted by file name), then projects,
        then applications. A name seen twice keeps its first occurrence.

        Raises:
            SourceUnavailable: If the cache cannot be refreshed.
            ManifestNotFound: If no manifest file exists.
            ManifestInvalid: If a manifest cannot be parsed.
        """
        seen: dict[str, ApplicationSummary] = {}
        with self._cache.snapshot(allow_stale=allow_stale) as root:
            for manifest_path in find_manifest_files(root, self._apps_glob):
                doc = load_manifest(manifest_path)
                for project, app in iter_applications(doc, self._projects_key):
                    name = app_name(app)
                    if name in seen:
                        continue
                    seen[name] = ApplicationSummary(
                        name=name,
                        project=project,
                        path=str(app["path"]) if app.get("path") else None,
                        **chart_meta(root, app),
                    )

        console.print(f"[cyan][CATALOG] {len(seen)} applications listed[/cyan]")
        return list(seen.values())
