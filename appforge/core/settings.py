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
# SETTINGS - ENVIRONMENT CONFIGURATION
# -----------------------------------------------------------------------------
# Responsibility: Turn environment variables into one validated Settings
# object. Everything downstream receives Settings; nothing else reads os.environ.
#
# Zero-fallback for the source repository: without GIT_REPO_SSH there is
# nothing to tailor, so we refuse to start.
#
# Security:
# - The deploy key is held in memory only and is excluded from repr()
# -----------------------------------------------------------------------------

import base64
import binascii
import json
import os
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError
from rich.console import Console

console = Console()

DEFAULT_APPS_GLOB = "app-of-apps*.y*ml"
DEFAULT_PROJECTS_KEY = "appProjects"
DEFAULT_VALUES_GLOB = "values/*.yaml"


class ConfigInvalid(Exception):
    """Raised when a mandatory setting is missing or a value is malformed."""

    pass


class Settings(BaseModel):
    """Runtime configuration for AppForge."""

    git_repo: str = Field(..., min_length=1)
    git_branch: str = Field("main", min_length=1)
    git_key: str | None = Field(None, repr=False)
    git_timeout: int = Field(120, gt=0)

    apps_glob: str = DEFAULT_APPS_GLOB
    projects_key: str = DEFAULT_PROJECTS_KEY
    values_glob: str = DEFAULT_VALUES_GLOB

    # Primary token (e.g. the reference domain) and its default replacement.
    token_input: str = ""
    name_default: str = ""
    extra_tokens: list[tuple[str, str]] = Field(default_factory=list)

    zip_level: int = Field(9, ge=0, le=9)

    cache_dir: Path = Path("/tmp/appforge-repo")
    work_dir: Path = Path("/tmp/appforge-work")
    scripts_dir: Path = Path("scripts")
    port: int = 8080

    def token_table(self, replacement: str | None = None) -> list[tuple[str, str]]:
        """
        Ordered (token, replacement) pairs for one build.

        Args:
            replacement: Overrides the replacement of the primary token
                (the operator's own domain). Falls back to DEFAULT_NAME.

        Returns:
            Pairs in configured order, primary token first. Pairs with an
            empty side are dropped.
        """
        pairs = [(self.token_input, replacement or self.name_default)]
        pairs.extend(self.extra_tokens)
        return [(token, value) for token, value in pairs if token and value]


def _int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigInvalid(f"{key} must be an integer, got {raw!r}")


def _git_key(env: Mapping[str, str]) -> str | None:
    raw = env.get("GIT_SSH_KEY", "").strip()
    if raw:
        # .env files often carry the PEM with escaped newlines
        return raw.replace("\\n", "\n").strip() + "\n"

    encoded = env.get("GIT_SSH_KEY_B64", "").strip()
    if not encoded:
        return None
    try:
        return base64.b64decode(encoded, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        raise ConfigInvalid("GIT_SSH_KEY_B64 is not valid base64-encoded text")


def _extra_tokens(env: Mapping[str, str]) -> list[tuple[str, str]]:
    raw = env.get("TOKEN_MAP", "").strip()
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigInvalid(f"TOKEN_MAP is not valid JSON: {e}")
    if not isinstance(data, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in data.items()
    ):
        raise ConfigInvalid("TOKEN_MAP must be a JSON object of string to string")
    return list(data.items())


def find_token_overlap(pairs: list[tuple[str, str]]) -> tuple[str, str] | None:
    """
    First (replacement, token) where a replacement contains a token.

    Substitution is only idempotent when this is None.
    """
    tokens = [t for t, _ in pairs if t]
    for _, value in pairs:
        for token in tokens:
            if token in value:
                return value, token
    return None


def _check_token_overlap(settings: Settings) -> None:
    overlap = find_token_overlap(settings.token_table())
    if overlap:
        raise ConfigInvalid(f"Replacement {overlap[0]!r} contains token {overlap[1]!r}")


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """
    Build Settings from the environment.

    Args:
        env: Mapping to read from (defaults to os.environ).

    Returns:
        Validated Settings.

    Raises:
        ConfigInvalid: If GIT_REPO_SSH is absent or any value is malformed.
    """
    env = os.environ if env is None else env

    repo = env.get("GIT_REPO_SSH", "").strip()
    if not repo:
        raise ConfigInvalid("GIT_REPO_SSH required")

    try:
        settings = Settings(
            git_repo=repo,
            git_branch=env.get("GIT_BRANCH", "").strip() or "main",
            git_key=_git_key(env),
            git_timeout=_int(env, "GIT_TIMEOUT", 120),
            apps_glob=env.get("APPS_GLOB", "").strip() or DEFAULT_APPS_GLOB,
            projects_key=env.get("APPS_PROJECTS_KEY", "").strip() or DEFAULT_PROJECTS_KEY,
            values_glob=env.get("VALUES_GLOB", "").strip() or DEFAULT_VALUES_GLOB,
            token_input=env.get("TOKEN_REPLACE", ""),
            name_default=env.get("DEFAULT_NAME", ""),
            extra_tokens=_extra_tokens(env),
            zip_level=_int(env, "ZIP_LEVEL", 9),
            cache_dir=Path(env.get("REPO_CACHE_DIR", "").strip() or "/tmp/appforge-repo"),
            work_dir=Path(env.get("WORK_DIR", "").strip() or "/tmp/appforge-work"),
            scripts_dir=Path(env.get("SCRIPTS_DIR", "").strip() or "scripts"),
            port=_int(env, "APPFORGE_PORT", 8080),
        )
    except ValidationError as e:
        raise ConfigInvalid(f"Invalid configuration: {e}")

    _check_token_overlap(settings)

    console.print(
        f"[cyan][CONFIG] Source {settings.git_repo} @ {settings.git_branch} "
        f"(deploy key: {'yes' if settings.git_key else 'no'})[/cyan]"
    )
    return settings
