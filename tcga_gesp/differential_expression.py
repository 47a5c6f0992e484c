from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import anndata as ad
import numpy as np
import pandas as pd
from pydeseq2.dds import DeseqDataSet
from pydeseq2.ds import DeseqStats

from tcga_gesp.preprocessing import condition_counts

logger = logging.getLogger(__name__)

CONDITION = "condition"
DE_COLUMNS = ["gene_name", "baseMean", "log2FoldChange", "lfcSE", "stat", "pvalue", "padj"]


def run_differential_expression(
    adata: ad.AnnData,
    min_normal_samples: int = 10,
    n_cpus: int = 8,
) -> Optional[pd.DataFrame]:
    """Run PyDESeq2 tumor vs normal on one indication.

    Args:
        adata (ad.AnnData): Filtered raw counts with ``obs["condition"]``.
        min_normal_samples (int): Fewer normal samples than this skips the test.
        n_cpus (int): Number of CPUs to use in PyDESeq2.

    Returns:
        Optional[pd.DataFrame]: DE table indexed by gene id, log2 fold change is
        tumor relative to normal. ``None`` when the indication is skipped.
    """
    groups = condition_counts(adata)
    if groups["normal"] < min_normal_samples:
        logger.warning(
            "Skipping DE: %d normal samples (< %d required)", groups["normal"], min_normal_samples
        )
        return None
    if groups["tumor"] == 0:
        raise ValueError("No tumor samples available for differential expression.")

    de_adata = ad.AnnData(
        X=np.asarray(adata.X).astype(np.int64),
        obs=adata.obs[[CONDITION]].copy(),
        var=pd.DataFrame(index=adata.var_names),
    )

    # 1. Initialize the DeseqDataSet
    dds = DeseqDataSet(
        adata=de_adata,
        design=f"~{CONDITION}",
        refit_cooks=True,
        n_cpus=n_cpus,
        quiet=True,
    )

    # 2. Run the DESeq2 normalization and dispersion estimation
    logger.info("Running DESeq2 on %d tumor / %d normal samples", groups["tumor"], groups["normal"])
    dds.deseq2()

    # 3. Run the statistical test, tumor (test) vs normal (reference)
    stat_res = DeseqStats(
        dds,
        contrast=[CONDITION, "tumor", "normal"],
        n_cpus=n_cpus,
        quiet=True,
    )
    stat_res.summary()

    results_df = stat_res.results_df.join(adata.var[["gene_name"]])
    results_df.index.name = "gene_id"
    return results_df[DE_COLUMNS]


def significant_genes(
    results_df: pd.DataFrame,
    lfc_threshold: float = 1.0,
    fdr_threshold: float = 0.01,
) -> pd.DataFrame:
    return results_df[(results_df["padj"] < fdr_threshold) & (results_df["log2FoldChange"].abs() > lfc_threshold)]


def de_results_path(out_dir: Path, indication: str) -> Path:
    return Path(out_dir) / f"{indication}_de_results.csv"


def write_de_results(
    results_df: pd.DataFrame,
    adata: ad.AnnData,
    indication: str,
    out_dir: Path,
) -> Path:
    """Save the DE table as CSV and the full test result as a compressed h5ad."""
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    csv_path = de_results_path(out_dir, indication)
    results_df.to_csv(csv_path)

    full_result = adata.copy()
    var = results_df.reindex(full_result.var_names).copy()
    var["gene_name"] = var["gene_name"].fillna("").astype(str)
    full_result.var = var
    full_result.uns["indication"] = indication
    full_result.write_h5ad(out_dir / f"{indication}_de_results.h5ad", compression="gzip")

    logger.info("Wrote %s (%d genes)", csv_path, len(results_df))
    return csv_path


def read_de_results(path: Path) -> pd.DataFrame:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Missing differential expression results: {path}")
    return pd.read_csv(path, index_col="gene_id")
