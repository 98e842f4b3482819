"""snpgl: per-site diploid SNP genotype likelihoods from read pileups.

Most users should use the CLI:

    snpgl call --bam S1.bam S2.bam --ref ref.fa --outdir results/

The per-site model is available directly through :class:`snpgl.caller.SiteCaller`.
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
