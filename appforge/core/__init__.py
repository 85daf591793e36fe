# -----------------------------------------------------------------------------
# CORE LAYER
# -----------------------------------------------------------------------------
# The repository tailoring pipeline:
# - Settings: environment configuration
# - ManifestCatalog: app-of-apps parsing and flattening
# - TailoringPipeline: pruning and token substitution
# - stream_archive: streaming ZIP writer
# - issue_key_pair: RSA deploy keys
# - Forge: per-request orchestration
# -----------------------------------------------------------------------------

from .archiver import ArchiveFailed, stream_archive
from .catalog import ManifestCatalog, ManifestInvalid, ManifestNotFound
from .forge import BuildArtifact, BuildRejected, Forge
from .keys import KeyGenFailed, issue_key_pair
from .scripts import ScriptLibrary, ScriptNotFound
from .settings import ConfigInvalid, Settings, load_settings
from .tailor import TailorFailed, TailoringPipeline

__all__ = [
    "ArchiveFailed", "stream_archive",
    "ManifestCatalog", "ManifestInvalid", "ManifestNotFound",
    "BuildArtifact", "BuildRejected", "Forge",
    "KeyGenFailed", "issue_key_pair",
    "ScriptLibrary", "ScriptNotFound",
    "ConfigInvalid", "Settings", "load_settings",
    "TailorFailed", "TailoringPipeline",
]
