"""DNA file discovery."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

DNA_PATTERNS = ("*.dna", "*.dna.gz")


def find_dnas(directory: Optional[Path] = None) -> List[Path]:
    """Return DNA bundles sitting directly in `directory` (default: cwd)."""
    base = directory or Path.cwd()
    found = {path.resolve() for pattern in DNA_PATTERNS for path in base.glob(pattern) if path.is_file()}
    return sorted(found)
