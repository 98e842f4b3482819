from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import pysam

from . import __version__
from .caller import AlleleSource, CallerConfig, OutputMode
from .errors import UserInputError
from .genotypes import base_index
from .plotting import plot_alt_allele_counts, plot_depth_hist, plot_site_outcomes
from .report import render_report
from .runner import call_region
from .toy_data import make_toy_data
from .utils import ensure_outdir
from .validation import check_bam_index, check_contigs_match, check_fasta_index, check_vcf_index


def _setup_logging(verbosity: int, *, logfile: Optional[Path] = None) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    log_fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(level=level, format=log_fmt, stream=sys.stderr)

    if logfile is not None:
        logfile.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(logfile)
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter(log_fmt))
        logging.getLogger().addHandler(fh)


def _path_exists(p: str) -> str:
    if not Path(p).exists():
        raise argparse.ArgumentTypeError(f"Path does not exist: {p}")
    return p


def _fraction(p: str) -> float:
    v = float(p)
    if not 0.0 <= v <= 1.0:
        raise argparse.ArgumentTypeError(f"Expected a fraction in [0, 1], got {p}")
    return v


def _alt_alleles(p: str) -> List[str]:
    alts = [a.strip().upper() for a in p.split(",") if a.strip()]
    if not alts:
        raise argparse.ArgumentTypeError("Expected a comma-separated list of bases, e.g. G,T")
    for a in alts:
        if len(a) != 1 or base_index(a) < 0:
            raise argparse.ArgumentTypeError(f"ALT alleles must be single A/C/G/T bases, got {a!r}")
    return alts


def _log_path(outdir: Path, name: str) -> Path:
    return outdir / "logs" / name


def _handle_error(err: Exception, *, log_path: Optional[Path] = None) -> int:
    if isinstance(err, UserInputError):
        msg = f"Bad input: {err}"
    else:
        msg = f"{err.__class__.__name__}: {err}"

    sys.stderr.write(msg + "\n")
    if log_path is not None:
        sys.stderr.write(f"See log: {log_path}\n")
    return 2


def _bam_contigs(bam_path: str) -> list[str]:
    with pysam.AlignmentFile(bam_path, "rb") as bam:
        return list(bam.header.references)


def _fasta_contigs(fasta_path: str) -> list[str]:
    with pysam.FastaFile(fasta_path) as fa:
        return list(fa.references)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="snpgl",
        description=(
            "snpgl: per-site diploid SNP genotype likelihoods (PL) with contamination-aware "
            "downsampling and alternate-allele discovery."
        ),
    )
    p.add_argument("--version", action="version", version=f"snpgl {__version__}")

    sub = p.add_subparsers(dest="cmd", required=True)

    # -----------------
    # quickstart
    # -----------------
    sub.add_parser(
        "quickstart",
        help="Print ready-to-run recipes for common scenarios.",
    )

    # -----------------
    # make-toy-data
    # -----------------
    t = sub.add_parser(
        "make-toy-data",
        help="Generate a tiny reference, two sample BAMs, and a known-alleles VCF for demos/tests.",
    )
    t.add_argument("--outdir", required=True, help="Output directory for toy data.")
    t.add_argument("--dry-run", action="store_true", help="Validate paths without writing files.")

    # -----------------
    # call
    # -----------------
    c = sub.add_parser(
        "call",
        help="Compute per-sample genotype likelihoods at every covered site and write a VCF.",
    )
    c.add_argument(
        "--bam",
        required=True,
        nargs="+",
        type=_path_exists,
        help="One or more sorted, indexed BAMs. Samples come from read group SM tags.",
    )
    c.add_argument("--ref", required=True, type=_path_exists, help="Reference FASTA (indexed).")
    c.add_argument("--outdir", required=True, help="Output directory.")
    c.add_argument(
        "--region",
        default=None,
        help="Restrict calling to chrom[:start[-end]] (1-based, inclusive).",
    )

    # Model
    c.add_argument(
        "--contamination",
        type=_fraction,
        default=0.0,
        help="Fraction of reads to remove per allele to correct for contamination (0-1).",
    )
    c.add_argument("--pcr-error", type=float, default=1e-4, help="PCR error rate (error floor).")
    c.add_argument("--min-baseq", type=int, default=17, help="Minimum base quality for a usable base.")
    c.add_argument("--min-mapq", type=int, default=0, help="Minimum mapping quality for a read.")
    c.add_argument(
        "--baq",
        action="store_true",
        help="Adjust base qualities with the reads' BQ tags (e.g. from samtools calmd -r).",
    )
    c.add_argument(
        "--no-cap-baseq-at-mapq",
        action="store_true",
        help="Do not cap base qualities at the read's mapping quality.",
    )
    c.add_argument("--seed", type=int, default=None, help="Random seed for contamination downsampling.")

    # Alleles
    alleles = c.add_mutually_exclusive_group()
    alleles.add_argument(
        "--alleles-vcf",
        type=_path_exists,
        default=None,
        help="Genotype only the SNPs in this bgzipped, tabix-indexed VCF, using its alleles.",
    )
    alleles.add_argument(
        "--alt-alleles",
        type=_alt_alleles,
        default=None,
        help="Use these ALT bases at every site (comma-separated, e.g. G,T).",
    )
    c.add_argument(
        "--emit-all-sites",
        action="store_true",
        help="Also emit sites without an alternate allele (with a placeholder ALT).",
    )

    # Outputs
    c.add_argument("--vcf-out", default=None, help="Output VCF (default: outdir/calls.vcf.gz).")
    c.add_argument("--no-report", action="store_true", help="Skip the HTML report and plots.")
    c.add_argument("--dry-run", action="store_true", help="Validate inputs and print planned outputs.")
    c.add_argument("--resume", action="store_true", help="Skip if outputs already exist.")
    c.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    return p


def config_from_args(args: argparse.Namespace) -> CallerConfig:
    if args.alleles_vcf is not None:
        source = AlleleSource.TRUTH
    elif args.alt_alleles is not None:
        source = AlleleSource.GIVEN
    else:
        source = AlleleSource.DISCOVERY
    return CallerConfig(
        pcr_error=float(args.pcr_error),
        min_baseq=int(args.min_baseq),
        contamination=float(args.contamination),
        use_baq=bool(args.baq),
        cap_baseq_at_mapq=not bool(args.no_cap_baseq_at_mapq),
        allele_source=source,
        output_mode=OutputMode.EMIT_ALL_SITES if args.emit_all_sites else OutputMode.EMIT_VARIANTS_ONLY,
        seed=args.seed,
    )


# -----------------
# Command handlers
# -----------------

def cmd_quickstart() -> int:
    lines = [
        "snpgl quickstart (copy/paste):",
        "",
        "1) Discover SNPs across samples:",
        "   snpgl call \\",
        "     --bam S1.bam S2.bam \\",
        "     --ref ref.fa \\",
        "     --outdir results/",
        "   Outputs: results/calls.vcf.gz, results/sites.tsv.gz, results/report.html",
        "",
        "2) Genotype known SNPs only, correcting for 5% contamination:",
        "   snpgl call \\",
        "     --bam S1.bam \\",
        "     --ref ref.fa \\",
        "     --alleles-vcf known.vcf.gz \\",
        "     --contamination 0.05 --seed 1 \\",
        "     --outdir known/",
        "",
        "3) Try it on toy data:",
        "   snpgl make-toy-data --outdir toy/",
        "   snpgl call --bam toy/S1.bam toy/S2.bam --ref toy/toy_ref.fa --outdir toy_calls/",
        "",
        "Tip: use --dry-run to validate inputs before a long run.",
    ]
    print("\n".join(lines))
    return 0


def cmd_make_toy_data(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    if args.dry_run:
        print(f"Would write toy data into: {outdir}")
        return 0

    summary = make_toy_data(outdir=outdir)
    print(json.dumps(summary, indent=2))
    return 0


def cmd_call(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    log_path = _log_path(outdir, "call.log")
    _setup_logging(args.verbose, logfile=None if args.dry_run else log_path)

    logger = logging.getLogger("snpgl")
    logger.info("snpgl %s", __version__)

    try:
        config = config_from_args(args)

        check_fasta_index(args.ref)
        ref_contigs = _fasta_contigs(args.ref)
        for bam in args.bam:
            check_bam_index(bam)
            check_contigs_match(_bam_contigs(bam), ref_contigs)
        if args.alleles_vcf is not None:
            check_vcf_index(args.alleles_vcf)

        vcf_out = args.vcf_out or str(outdir / "calls.vcf.gz")

        if args.dry_run:
            print("Dry-run: inputs look OK.")
            print(f"Allele source: {config.allele_source.value}")
            print(f"Output mode: {config.output_mode.value}")
            print("Planned outputs:")
            print(f"  calls VCF -> {vcf_out}")
            print(f"  sites.tsv.gz -> {outdir / 'sites.tsv.gz'}")
            print(f"  summary.json -> {outdir / 'summary.json'}")
            if not args.no_report:
                print(f"  report.html -> {outdir / 'report.html'}")
            return 0

        outdir = ensure_outdir(outdir)

        if args.resume and (outdir / "summary.json").exists():
            logger.info("Resume enabled: summary.json already exists in %s", outdir)
            print(vcf_out)
            return 0

        run = call_region(
            bam_paths=list(args.bam),
            ref_fasta=args.ref,
            outdir=outdir,
            config=config,
            region=args.region,
            min_mapq=int(args.min_mapq),
            alleles_vcf=args.alleles_vcf,
            alt_alleles=args.alt_alleles,
            vcf_out=vcf_out,
            progress=True,
        )

        if not args.no_report:
            plots_dir = outdir / "plots"
            plots_dir.mkdir(parents=True, exist_ok=True)

            outcomes_png = plots_dir / "site_outcomes.png"
            depth_png = plots_dir / "depth_hist.png"
            alt_png = plots_dir / "alt_allele_counts.png"

            plot_site_outcomes(counts=run["counts"], out_png=outcomes_png)
            plot_depth_hist(depth_hist=run["depth_hist"], out_png=depth_png)
            plot_alt_allele_counts(alt_count_hist=run["alt_count_hist"], out_png=alt_png)

            plots_rel = {
                "site_outcomes": str(Path("plots") / outcomes_png.name),
                "depth_hist": str(Path("plots") / depth_png.name),
                "alt_allele_counts": str(Path("plots") / alt_png.name),
            }
            report_path = render_report(outdir=outdir, version=__version__, run=run, plots=plots_rel)
            logger.info("Report written: %s", report_path)

        print(vcf_out)
        return 0
    except Exception as e:
        return _handle_error(e, log_path=None if args.dry_run else log_path)


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "quickstart":
        return cmd_quickstart()
    if args.cmd == "make-toy-data":
        return cmd_make_toy_data(args)
    if args.cmd == "call":
        return cmd_call(args)

    parser.error(f"Unknown command: {args.cmd}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
