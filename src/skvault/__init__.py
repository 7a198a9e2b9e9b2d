"""SKVault — skill package ingestion and version history.

Turns uploaded skill archives (SKILL.md plus supporting files) into
validated packages, stores them, and keeps an append-only, contiguous
version history for every edit that can later be diffed.
"""

__version__ = "0.1.0"

VAULT_HOME = "~/.skvault"
MANIFEST_FILENAME = "SKILL.md"
