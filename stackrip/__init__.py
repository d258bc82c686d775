"""
stackrip package
- Back up Portainer stacks: discover (API or portainer.db), copy compose files
  out of the Portainer volume with verification, save env/metadata, rotate.
"""
__all__ = ["cli", "config", "orchestrator", "discover", "copier", "artifacts", "rotation", "changes", "report", "naming", "logsetup", "util", "types", "bundle"]
__version__ = "0.3.0"
