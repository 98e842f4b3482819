from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Mapping

import matplotlib.pyplot as plt

logger = logging.getLogger(__name__)


def plot_site_outcomes(
    *,
    counts: Mapping[str, int],
    out_png: str | Path,
    title: str = "Site outcomes",
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    labels = ["Variant", "Reference only", "No call", "Rejected"]
    values = [
        int(counts.get("sites_variant", 0)),
        int(counts.get("sites_reference_only", 0)),
        int(counts.get("sites_no_call", 0)),
        int(counts.get("sites_rejected", 0)),
    ]

    plt.figure()
    plt.bar(labels, values)
    plt.ylabel("Site count")
    plt.title(title)
    plt.xticks(rotation=15, ha="right")
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()


def plot_depth_hist(
    *,
    depth_hist: Mapping[str, Mapping[int, int]],
    out_png: str | Path,
    title: str = "Depth at variant sites",
    max_bin: int = 100,
) -> None:
    """Overlay one step histogram per sample; depths above ``max_bin`` are collapsed."""
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    plt.figure()
    for sample, hist in sorted(depth_hist.items()):
        ys = [0] * (max_bin + 2)
        for k, v in hist.items():
            ys[min(int(k), max_bin + 1)] += int(v)
        plt.step(range(len(ys)), ys, where="mid", label=sample)
    plt.xlabel(f"Depth (last bin: >{max_bin})")
    plt.ylabel("Site count")
    plt.title(title)
    if depth_hist:
        plt.legend(fontsize="small")
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()


def plot_alt_allele_counts(
    *,
    alt_count_hist: Dict[int, int],
    out_png: str | Path,
    title: str = "Alternate alleles per variant site",
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    xs = [1, 2, 3]
    ys = [int(alt_count_hist.get(x, 0)) for x in xs]

    plt.figure()
    plt.bar([str(x) for x in xs], ys)
    plt.xlabel("Number of ALT alleles")
    plt.ylabel("Site count")
    plt.title(title)
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()
