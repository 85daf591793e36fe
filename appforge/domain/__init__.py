# -----------------------------------------------------------------------------
# DOMAIN LAYER
# -----------------------------------------------------------------------------
# Pydantic models shared by the core and the API.
# -----------------------------------------------------------------------------

from .models import ApplicationSummary, KeyPair

__all__ = ["ApplicationSummary", "KeyPair"]
