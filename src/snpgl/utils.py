from __future__ import annotations

import gzip
import json
import logging
from pathlib import Path
from typing import Any, TextIO

import numpy as np

logger = logging.getLogger(__name__)


def phred_array_to_error_probs(quals: np.ndarray) -> np.ndarray:
    """Phred qualities to error probabilities; non-positive qualities map to 1."""
    quals = np.asarray(quals, dtype=float)
    return np.where(quals <= 0, 1.0, np.power(10.0, -quals / 10.0))


def normalize_from_log10(values: np.ndarray) -> np.ndarray:
    """Shift log10 values so the largest entry is exactly 0."""
    values = np.asarray(values, dtype=float)
    if values.size == 0:
        return values.copy()
    return values - values.max()


def ensure_outdir(path: str | Path) -> Path:
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p


def open_textmaybe_gzip(path: str | Path, mode: str = "rt") -> TextIO:
    p = str(path)
    if p.endswith(".gz"):
        return gzip.open(p, mode)  # type: ignore[return-value]
    return open(p, mode)


def write_json(path: str | Path, obj: Any) -> None:
    with open(path, "wt", encoding="utf-8") as f:
        json.dump(obj, f, indent=2, sort_keys=True)
