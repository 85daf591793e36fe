# -----------------------------------------------------------------------------
# INFRASTRUCTURE LAYER
# -----------------------------------------------------------------------------
# Contains low-level infrastructure wrappers:
# - RepositoryCache: subprocess git checkout of the reference repository
# -----------------------------------------------------------------------------

from .git_client import RepositoryCache, SourceUnavailable

__all__ = ["RepositoryCache", "SourceUnavailable"]
