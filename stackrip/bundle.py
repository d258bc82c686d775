"""
bundle.py
Paths of the config files stackrip looks for when --config is not given:
stackrip.toml in the directory above the package (the checkout root, beside
main.py), then /etc/stackrip.toml.
"""
from __future__ import annotations
from pathlib import Path

PROGRAM_DIR: Path = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_PATH: str = str(PROGRAM_DIR / "stackrip.toml")
SYSTEM_CONFIG_PATH: str = "/etc/stackrip.toml"
