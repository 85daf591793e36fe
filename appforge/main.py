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
# APPFORGE - FASTAPI INTERFACE
# -----------------------------------------------------------------------------
# Endpoints:
# - GET  /health                     : Health check
# - GET  /api/apps                   : Flattened application catalog
# - POST /api/build                  : Tailored repository, streamed as ZIP
# - POST /api/keys                   : Fresh RSA deploy key pair
# - GET  /api/scripts                : Helper script names
# - GET  /scripts/{name}             : Raw script
# - GET  /scripts/{name}/one-liner   : Script wrapped as a shell one-liner
# - GET  /scripts/{name}/playbook    : Script wrapped as an Ansible playbook
# -----------------------------------------------------------------------------

import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Annotated

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse
from pydantic import BaseModel, Field
from rich.console import Console
from rich.panel import Panel

from appforge import __version__
from appforge.core.archiver import ArchiveFailed
from appforge.core.catalog import ManifestInvalid, ManifestNotFound
from appforge.core.forge import BuildRejected, Forge
from appforge.core.keys import KeyGenFailed, issue_key_pair
from appforge.core.scripts import ScriptLibrary, ScriptNotFound, one_liner, playbook
from appforge.core.settings import ConfigInvalid, load_settings
from appforge.core.tailor import TailorFailed
from appforge.domain.models import ApplicationSummary, KeyPair
from appforge.infra.git_client import SourceUnavailable

PROJECT_ROOT = Path(__file__).parent.parent

load_dotenv(PROJECT_ROOT / ".env")

console = Console()

# Forge (lazy init, one per process)
_forge: Forge | None = None


def get_forge() -> Forge:
    global _forge
    if _forge is None:
        _forge = Forge(load_settings())
    return _forge


def get_scripts(forge: Annotated[Forge, Depends(get_forge)]) -> ScriptLibrary:
    scripts_dir = forge.settings.scripts_dir
    if not scripts_dir.is_absolute():
        scripts_dir = PROJECT_ROOT / scripts_dir
    return ScriptLibrary(scripts_dir)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    try:
        forge = get_forge()
    except ConfigInvalid as e:
        console.print(f"[red][API] Configuration invalid: {e}[/red]")
        raise

    console.print(
        Panel(
            f"AppForge v{__version__}\n"
            f"Source: {forge.settings.git_repo} ({forge.settings.git_branch})",
            border_style="cyan",
        )
    )
    yield
    console.print("[yellow]APPFORGE SHUTTING DOWN[/yellow]")


app = FastAPI(
    title="AppForge",
    description="Tailor the GitOps reference repository to a selection of applications",
    version=__version__,
    lifespan=lifespan,
)


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================


class BuildRequest(BaseModel):
    selected: list[str] = Field(default_factory=list)
    domain: str | None = None
    name: str | None = None
    allow_stale: bool = False


class ScriptList(BaseModel):
    scripts: list[str]


# =============================================================================
# ERROR MAPPING
# =============================================================================

ERROR_STATUS = {
    SourceUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
    ManifestNotFound: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ManifestInvalid: status.HTTP_500_INTERNAL_SERVER_ERROR,
    TailorFailed: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ArchiveFailed: status.HTTP_500_INTERNAL_SERVER_ERROR,
    KeyGenFailed: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ConfigInvalid: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ScriptNotFound: status.HTTP_404_NOT_FOUND,
    BuildRejected: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


async def forge_error_handler(request: Request, exc: Exception) -> JSONResponse:
    code = ERROR_STATUS.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
    console.print(f"[red][API] {request.url.path}: {type(exc).__name__}: {exc}[/red]")
    return JSONResponse(status_code=code, content={"error": str(exc), "kind": type(exc).__name__})


for _error in ERROR_STATUS:
    app.add_exception_handler(_error, forge_error_handler)


# =============================================================================
# ENDPOINTS
# =============================================================================


@app.get("/health")
async def health_check():
    """Health check for Docker and load balancers."""
    return {"status": "online", "service": "appforge", "version": __version__}


@app.get("/api/apps", response_model=list[ApplicationSummary])
def list_apps(forge: Annotated[Forge, Depends(get_forge)], allow_stale: bool = False):
    """Return the flattened list of applications for the UI."""
    return forge.list_applications(allow_stale=allow_stale)


@app.post("/api/build")
def build(request: BuildRequest, forge: Annotated[Forge, Depends(get_forge)]):
    """Tailor the repository to the selection and stream it back as a ZIP."""
    artifact = forge.build(
        request.selected,
        replacement=request.domain,
        name=request.name,
        allow_stale=request.allow_stale,
    )
    console.print(f"[green][API] Streaming {artifact.filename}[/green]")
    return StreamingResponse(
        artifact.stream(),
        media_type="application/zip",
        headers={"Content-Disposition": f"attachment; filename={artifact.filename}"},
    )


@app.post("/api/keys", response_model=KeyPair)
async def keys():
    """Issue a fresh deploy key pair (CPU-bound, kept off the event loop)."""
    return await run_in_threadpool(issue_key_pair)


@app.get("/api/scripts", response_model=ScriptList)
def list_scripts(scripts: Annotated[ScriptLibrary, Depends(get_scripts)]):
    return ScriptList(scripts=scripts.list_scripts())


@app.get("/scripts/{name}", response_class=PlainTextResponse)
def get_script(name: str, scripts: Annotated[ScriptLibrary, Depends(get_scripts)]):
    return scripts.read_script(name)


@app.get("/scripts/{name}/one-liner", response_class=PlainTextResponse)
def get_script_one_liner(name: str, scripts: Annotated[ScriptLibrary, Depends(get_scripts)]):
    return one_liner(name, scripts.read_script(name))


@app.get("/scripts/{name}/playbook", response_class=PlainTextResponse)
def get_script_playbook(name: str, scripts: Annotated[ScriptLibrary, Depends(get_scripts)]):
    return PlainTextResponse(
        playbook(name, scripts.read_script(name)),
        headers={"Content-Disposition": f"attachment; filename={Path(name).stem}.yml"},
    )


# =============================================================================
# MAIN
# =============================================================================


def run() -> None:
    import uvicorn

    port = int(os.getenv("APPFORGE_PORT", "8080"))
    uvicorn.run(app, host="0.0.0.0", port=port)


if __name__ == "__main__":
    run()
