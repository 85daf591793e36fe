"""AppForge: tailor a GitOps reference repository to a selection of applications."""

__version__ = "1.0.0"
