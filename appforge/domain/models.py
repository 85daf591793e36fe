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
# DOMAIN MODELS - CATALOG & CREDENTIALS
# -----------------------------------------------------------------------------
# These Pydantic models are what leaves the core: the flattened catalog
# records shown in the selection UI and the freshly issued deploy key pair.
#
# The manifest itself is NOT modelled here. It stays a plain YAML tree so that
# fields we do not know about survive a prune-and-rewrite untouched.
# -----------------------------------------------------------------------------

from pydantic import BaseModel, Field


class ApplicationSummary(BaseModel):
    """
    One selectable application, flattened out of the app-of-apps manifest.

    The identity is `name`; everything else is presentation metadata pulled
    from the chart directory when the application points at one.
    """

    name: str = Field(..., min_length=1, description="Application name (unique across manifests)")
    project: str = Field("", description="Owning AppProject / namespace")
    path: str | None = Field(None, description="Repo-relative chart directory, if vendored")
    icon: str | None = Field(None, description="Icon URL or data: URI")
    description: str = ""
    maintainers: str = Field("", description="Comma-separated maintainer names")
    home: str | None = Field(None, description="Upstream home page")
    readme: str = Field("", description="First paragraph of the chart README")


class KeyPair(BaseModel):
    """
    A deploy key pair.

    Never persisted: it is generated, returned to the operator and forgotten.
    """

    public_key: str = Field(..., description="Single-line OpenSSH public key")
    private_key: str = Field(..., description="PKCS#1 PEM private key")
