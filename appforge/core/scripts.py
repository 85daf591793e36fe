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
# SCRIPT LIBRARY - HELPER SCRIPTS FOR THE OPERATOR
# -----------------------------------------------------------------------------
# Responsibility: Serve the bootstrap scripts shipped next to the service,
# raw or wrapped for copy/paste: a shell one-liner or a tiny Ansible playbook.
#
# String templating only. Scripts are read, never executed here.
# -----------------------------------------------------------------------------

import secrets
from pathlib import Path

from rich.console import Console

console = Console()

HEREDOC_BASE = "EOF"
PLAYBOOK_INDENT = " " * 10


class ScriptNotFound(Exception):
    """Raised when a script name is unknown or unsafe."""

    pass


class ScriptLibrary:
    """Read-only view over the scripts directory."""

    def __init__(self, scripts_dir: Path) -> None:
        self._dir = Path(scripts_dir)

    def list_scripts(self) -> list[str]:
        """Names of every script, sorted. Empty if the directory is missing."""
        if not self._dir.is_dir():
            console.print(f"[yellow][SCRIPTS] No scripts directory at {self._dir}[/yellow]")
            return []
        return sorted(p.name for p in self._dir.iterdir() if p.is_file())

    def read_script(self, name: str) -> str:
        """
        Return a script body.

        Raises:
            ScriptNotFound: For unknown names or anything that looks like a path.
        """
        if not name or "/" in name or "\\" in name or name.startswith("."):
            raise ScriptNotFound(f"Invalid script name: {name!r}")

        path = self._dir / name
        try:
            return path.read_text(encoding="utf-8")
        except (FileNotFoundError, IsADirectoryError):
            raise ScriptNotFound(f"Script not found: {name}")


def pick_delimiter(body: str, base: str = HEREDOC_BASE) -> str:
    """A heredoc terminator that does not occur as a line of body."""
    lines = set(body.splitlines())
    delimiter = base
    while delimiter in lines:
        delimiter = f"{base}_{secrets.token_hex(3).upper()}"
    return delimiter


def one_liner(name: str, body: str) -> str:
    """
    Shell snippet that writes the script and runs it.

    The run and the history wipe share one line so nothing is left queued
    on stdin while the script prompts.
    """
    delimiter = pick_delimiter(body)
    return "\n".join(
        [
            f"cat <<'{delimiter}' > {name}",
            body.rstrip(),
            delimiter,
            f"sudo -E bash {name} && unset HISTFILE && history -c || true",
        ]
    )


def playbook(name: str, body: str) -> str:
    """Minimal Ansible playbook that uploads the script to /tmp and runs it."""
    content = "\n".join(f"{PLAYBOOK_INDENT}{line}" for line in body.split("\n"))
    return (
        "---\n"
        "- hosts: all\n"
        "  become: true\n"
        "  tasks:\n"
        f"    - name: Upload {name}\n"
        "      copy:\n"
        f"        dest: /tmp/{name}\n"
        '        mode: "0755"\n'
        "        content: |\n"
        f"{content}\n"
        f"    - name: Run {name}\n"
        f"      shell: /tmp/{name}\n"
        "      args:\n"
        "        chdir: /tmp\n"
    )
