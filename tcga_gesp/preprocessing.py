from __future__ import annotations

import logging

import anndata as ad
import numpy as np
import pandas as pd
from pydeseq2.preprocessing import deseq2_norm

logger = logging.getLogger(__name__)


def build_adata(
    counts: pd.DataFrame,
    gene_names: pd.Series,
    sample_sheet: pd.DataFrame,
) -> ad.AnnData:
    """Assemble tumor and normal samples into an AnnData object.

    Args:
        counts (pd.DataFrame): Raw counts with genes as rows and sample barcodes as columns.
        gene_names (pd.Series): Gene symbols indexed by gene id.
        sample_sheet (pd.DataFrame): GDC sample sheet with ``barcode`` and ``condition``.

    Returns:
        ad.AnnData: Samples as observations with ``obs["condition"]`` in
        {``tumor``, ``normal``} and ``var["gene_name"]``.
    """
    sample_metadata = (
        sample_sheet[sample_sheet["condition"].isin(["tumor", "normal"])]
        .drop_duplicates(subset="barcode")
        .set_index("barcode")
    )
    sample_metadata = sample_metadata.loc[sample_metadata.index.intersection(counts.columns)]
    counts = counts.loc[:, sample_metadata.index]

    # Remove all samples with no counts
    counts = counts.loc[:, counts.sum(axis=0) > 0]
    sample_metadata = sample_metadata.loc[counts.columns]

    # Remove all genes with no counts
    counts = counts[counts.sum(axis=1) > 0]
    gene_annotations = pd.DataFrame({"gene_name": gene_names.reindex(counts.index)}, index=counts.index)

    sample_metadata.index = sample_metadata.index.astype(str)
    gene_annotations.index = gene_annotations.index.astype(str)
    adata = ad.AnnData(
        X=counts.T.to_numpy(dtype=np.int64),
        obs=sample_metadata,
        var=gene_annotations,
    )
    adata.obs["condition"] = adata.obs["condition"].astype(str)
    return adata


def condition_counts(adata: ad.AnnData) -> dict[str, int]:
    counts = adata.obs["condition"].value_counts()
    return {"tumor": int(counts.get("tumor", 0)), "normal": int(counts.get("normal", 0))}


def normalize_and_filter(adata: ad.AnnData, quantile: float = 0.25) -> ad.AnnData:
    """Normalize with DESeq2 size factors and drop low-expressed genes.

    Genes whose mean normalized count is below the ``quantile`` of all gene
    means are removed. The returned object keeps raw counts in ``X`` and the
    normalized values in ``layers["normed_counts"]``.

    Args:
        adata (ad.AnnData): Raw counts with samples as rows.
        quantile (float): Quantile cut on mean normalized expression.

    Returns:
        ad.AnnData: Filtered copy of ``adata``.
    """
    counts_df = pd.DataFrame(np.asarray(adata.X), index=adata.obs_names, columns=adata.var_names)
    normed_counts, size_factors = deseq2_norm(counts_df)
    normed_counts = pd.DataFrame(np.asarray(normed_counts), index=adata.obs_names, columns=adata.var_names)

    mean_expression = normed_counts.mean(axis=0)
    cutoff = mean_expression.quantile(quantile)
    keep_mask = (mean_expression >= cutoff).to_numpy()

    filtered = adata[:, keep_mask].copy()
    filtered.obs["size_factor"] = np.asarray(size_factors)
    filtered.layers["normed_counts"] = normed_counts.loc[:, keep_mask].to_numpy()
    logger.info(
        "Quantile filter (q=%.2f) kept %d of %d genes", quantile, filtered.n_vars, adata.n_vars
    )
    return filtered
