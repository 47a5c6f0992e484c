from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional

import pandas as pd

from tcga_gesp.config import GENE_SET_COLLECTIONS, INDICATIONS, PipelineConfig
from tcga_gesp.differential_expression import run_differential_expression, significant_genes, write_de_results
from tcga_gesp.gdc_client import GDCClient
from tcga_gesp.gene_enrichment import summarize_enrichment
from tcga_gesp.gesp import label_gesp_results, load_gene_annotations, load_gesp_list, write_gesp_results
from tcga_gesp.preprocessing import build_adata, condition_counts, normalize_and_filter
from tcga_gesp.reporting import (
    build_fold_change_matrix,
    dominant_labels,
    load_labeled_results,
    save_fold_change_clustermap,
    save_label_barplot,
    save_label_summary_barplot,
    summarize_label_counts,
    write_fold_change_matrix,
)

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments for the GESP profiling run.

    Args:
        argv (Optional[list[str]]): Argument list, ``None`` reads ``sys.argv``.

    Returns:
        argparse.Namespace: Parsed arguments used to build a ``PipelineConfig``.
    """
    defaults = PipelineConfig()
    parser = argparse.ArgumentParser(
        description="Profile GESP differential expression across TCGA indications."
    )
    parser.add_argument(
        "--indications",
        nargs="+",
        default=list(INDICATIONS),
        help="TCGA indication codes to process (default: all TCGA projects).",
    )
    parser.add_argument("--data-dir", type=Path, default=defaults.data_dir, help="Directory for GDC downloads.")
    parser.add_argument("--out-dir", type=Path, default=defaults.out_dir, help="Directory to store results.")
    parser.add_argument(
        "--gesp-path",
        type=Path,
        default=defaults.gesp_path,
        help="Reference GESP list with gene_name and is_gesp columns.",
    )
    parser.add_argument(
        "--annotation-path",
        type=Path,
        default=defaults.annotation_path,
        help="HGNC complete-set TSV providing gene_group and enzyme_id.",
    )
    for name in GENE_SET_COLLECTIONS:
        parser.add_argument(
            f"--{name}-gmt",
            type=Path,
            default=defaults.gmt_paths[name],
            help=f"GMT file of the {name} pathway collection.",
        )
    parser.add_argument("--lfc-threshold", type=float, default=defaults.lfc_threshold)
    parser.add_argument("--fdr-threshold", type=float, default=defaults.fdr_threshold)
    parser.add_argument(
        "--min-normal-samples",
        type=int,
        default=defaults.min_normal_samples,
        help="Indications with fewer normal samples are skipped.",
    )
    parser.add_argument(
        "--filter-quantile",
        type=float,
        default=defaults.filter_quantile,
        help="Genes below this quantile of mean normalized expression are removed.",
    )
    parser.add_argument(
        "--pathway-rank",
        type=int,
        default=defaults.pathway_rank,
        help="1-based NES rank reported per direction in the enrichment summaries.",
    )
    parser.add_argument("--gsea-permutations", type=int, default=defaults.gsea_permutations)
    parser.add_argument("--seed", type=int, default=defaults.gsea_seed, help="Random seed for GSEA.")
    parser.add_argument("--n-cpus", type=int, default=defaults.n_cpus, help="Number of CPUs to use in PyDESeq2.")
    parser.add_argument("--max-files", type=int, default=None, help="Cap on downloaded files per indication.")
    parser.add_argument("--skip-enrichment", action="store_true", help="Do not run GSEA prerank.")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser.parse_args(argv)


def config_from_args(args: argparse.Namespace) -> PipelineConfig:
    return PipelineConfig(
        data_dir=args.data_dir,
        out_dir=args.out_dir,
        gesp_path=args.gesp_path,
        annotation_path=args.annotation_path,
        gmt_paths={name: getattr(args, f"{name}_gmt") for name in GENE_SET_COLLECTIONS},
        indications=[code.upper() for code in args.indications],
        lfc_threshold=args.lfc_threshold,
        fdr_threshold=args.fdr_threshold,
        min_normal_samples=args.min_normal_samples,
        filter_quantile=args.filter_quantile,
        pathway_rank=args.pathway_rank,
        gsea_seed=args.seed,
        gsea_permutations=args.gsea_permutations,
        n_cpus=args.n_cpus,
        max_files=args.max_files,
    )


def process_indication(
    indication: str,
    client: GDCClient,
    gesp: pd.DataFrame,
    annotations: pd.DataFrame,
    config: PipelineConfig,
) -> Optional[pd.DataFrame]:
    """Download, test and label one indication.

    Returns:
        Optional[pd.DataFrame]: Labeled GESP table, or ``None`` when the
        indication was skipped for lack of normal samples.
    """
    logger.info("=== %s ===", indication)
    counts, gene_names, sample_sheet = client.download_project(indication, max_files=config.max_files)
    adata = build_adata(counts, gene_names, sample_sheet)
    logger.info("%s samples: %s", indication, condition_counts(adata))

    adata = normalize_and_filter(adata, quantile=config.filter_quantile)
    results_df = run_differential_expression(
        adata,
        min_normal_samples=config.min_normal_samples,
        n_cpus=config.n_cpus,
    )
    if results_df is None:
        logger.warning("%s skipped: not enough normal samples", indication)
        return None

    write_de_results(results_df, adata, indication, config.de_dir)
    n_significant = len(significant_genes(results_df, config.lfc_threshold, config.fdr_threshold))
    logger.info("%s: %d significant genes genome-wide", indication, n_significant)

    labeled = label_gesp_results(
        results_df,
        indication,
        gesp,
        annotations,
        lfc_threshold=config.lfc_threshold,
        fdr_threshold=config.fdr_threshold,
    )
    write_gesp_results(labeled, indication, config.gesp_dir)
    save_label_barplot(labeled, indication, config.figures_dir / f"{indication}_gesp_barplot.png")
    return labeled


def run_reports(config: PipelineConfig, indications: list[str], run_enrichment: bool = True) -> None:
    """Cross-indication outputs built from the files written per indication."""
    records = load_labeled_results(config.gesp_dir, indications)
    if records.empty:
        logger.warning("No labeled GESP records; skipping cross-indication reports")
        return

    summary = summarize_label_counts(records)
    summary.to_csv(config.out_dir / "gesp_label_counts.csv")
    save_label_summary_barplot(summary, config.figures_dir / "gesp_label_counts_barplot.png")

    matrix = build_fold_change_matrix(records)
    write_fold_change_matrix(matrix, config.matrix_path)
    save_fold_change_clustermap(
        matrix,
        config.figures_dir / "gesp_fold_change_clustermap.png",
        gene_labels=dominant_labels(records),
    )

    if run_enrichment:
        summarize_enrichment(
            config.de_dir,
            indications,
            config.gmt_paths,
            config.enrichment_dir,
            rank=config.pathway_rank,
            seed=config.gsea_seed,
            permutation_num=config.gsea_permutations,
            min_size=config.gsea_min_size,
            max_size=config.gsea_max_size,
            threads=config.n_cpus,
        )


def main(argv: Optional[list[str]] = None) -> None:
    """Run the per-indication loop followed by the cross-indication reports."""
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = config_from_args(args)
    config.make_dirs()

    gesp = load_gesp_list(config.gesp_path)
    annotations = load_gene_annotations(config.annotation_path)
    client = GDCClient(config.data_dir)

    completed = []
    for indication in config.indications:
        labeled = process_indication(indication, client, gesp, annotations, config)
        if labeled is not None:
            completed.append(indication)

    run_reports(config, completed, run_enrichment=not args.skip_enrichment)

    print(f"GESP profiling completed for {len(completed)} indication(s). Outputs written to: {config.out_dir}")


if __name__ == "__main__":
    main()
