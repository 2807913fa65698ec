"""Safe file I/O utilities.

Helper functions for reading/writing report files with proper error handling.
"""

import csv
import json
from pathlib import Path
from typing import Any, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)


def ensure_dir(path: Path) -> Path:
    """Ensure directory exists, create if needed. Returns the path."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def write_json(path: Path, data: Any, indent: int = 2) -> None:
    """Write data to JSON file safely."""
    path = Path(path)
    ensure_dir(path.parent)

    try:
        with open(path, 'w') as f:
            json.dump(data, f, indent=indent, default=str)
        logger.debug(f"Wrote JSON to {path}")
    except (OSError, TypeError, ValueError) as e:
        logger.error(f"Failed to write JSON to {path}: {e}")
        raise


def write_csv(path: Path, rows: List[Dict[str, Any]], fieldnames: Optional[List[str]] = None) -> None:
    """Write rows to CSV file safely.

    If fieldnames not provided, uses keys from first row. A header-only file
    is written when there are no rows but fieldnames are known.
    """
    path = Path(path)
    ensure_dir(path.parent)

    if not rows and fieldnames is None:
        logger.warning(f"No rows to write to {path}")
        return

    if fieldnames is None:
        fieldnames = list(rows[0].keys())

    try:
        with open(path, 'w', newline='') as f:
            writer = csv.DictWriter(f, fieldnames=fieldnames, extrasaction='ignore')
            writer.writeheader()
            writer.writerows(rows)
        logger.debug(f"Wrote {len(rows)} rows to {path}")
    except OSError as e:
        logger.error(f"Failed to write CSV to {path}: {e}")
        raise


def read_text_lines(path: Path) -> List[str]:
    """Read text file and return non-empty lines, stripped.

    Used for domain list files; lines starting with # are skipped.
    """
    path = Path(path)

    if not path.exists():
        return []

    try:
        with open(path, 'r') as f:
            lines = [line.strip() for line in f if line.strip() and not line.startswith('#')]
        return lines
    except OSError as e:
        logger.warning(f"Failed to read text file {path}: {e}")
        return []
