"""Intersect differential expression results with the GESP reference list."""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import pandas as pd

from tcga_gesp.config import DOWN, NOT_SIGNIFICANT, UP

logger = logging.getLogger(__name__)

TRUE_FLAGS = {"1", "true", "yes", "y", "t"}

ANNOTATION_COLUMNS = {
    "symbol": "gene_name",
    "gene_group": "gene_family",
    "enzyme_id": "enzyme_class",
}


def _require_columns(df: pd.DataFrame, columns: list[str], source: Path) -> None:
    missing = [col for col in columns if col not in df.columns]
    if missing:
        raise ValueError(f"Missing required column(s) {missing} in {source}.")


def _read_table(path: Path) -> pd.DataFrame:
    path = Path(path)
    sep = "," if path.suffix == ".csv" else "\t"
    return pd.read_csv(path, sep=sep, dtype=str, low_memory=False)


def load_gesp_list(path: Path) -> pd.DataFrame:
    """Load the reference GESP list.

    Args:
        path (Path): CSV or TSV with ``gene_name`` and ``is_gesp`` columns.

    Returns:
        pd.DataFrame: One row per gene symbol with a boolean ``is_gesp``.
    """
    gesp = _read_table(path)
    _require_columns(gesp, ["gene_name", "is_gesp"], path)
    gesp = gesp.dropna(subset=["gene_name"]).copy()
    gesp["gene_name"] = gesp["gene_name"].str.strip()
    gesp["is_gesp"] = gesp["is_gesp"].fillna("").str.strip().str.lower().isin(TRUE_FLAGS)
    return gesp[["gene_name", "is_gesp"]].drop_duplicates(subset="gene_name")


def load_gene_annotations(path: Path) -> pd.DataFrame:
    """Load gene family and enzyme class from an HGNC complete-set export."""
    annotations = _read_table(path)
    _require_columns(annotations, list(ANNOTATION_COLUMNS), path)
    annotations = annotations[list(ANNOTATION_COLUMNS)].rename(columns=ANNOTATION_COLUMNS)
    return annotations.dropna(subset=["gene_name"]).drop_duplicates(subset="gene_name")


def classify_regulation(
    df: pd.DataFrame,
    lfc_threshold: float = 1.0,
    fdr_threshold: float = 0.01,
) -> pd.Series:
    """Label each row ``up``, ``down`` or ``not-significant``.

    Thresholds are strict; a missing ``padj`` is never significant. The
    returned Series keeps the input order and index.
    """
    significant = df["padj"] < fdr_threshold
    labels = np.select(
        [
            significant & (df["log2FoldChange"] > lfc_threshold),
            significant & (df["log2FoldChange"] < -lfc_threshold),
        ],
        [UP, DOWN],
        default=NOT_SIGNIFICANT,
    )
    return pd.Series(labels, index=df.index, name="label")


def collapse_duplicate_symbols(results: pd.DataFrame) -> pd.DataFrame:
    """Keep one row per ``gene_name``.

    Several Ensembl ids can map to one HGNC symbol. The row with the smallest
    ``padj`` wins, ties go to the largest absolute log2 fold change, and a
    missing ``padj`` ranks last. Surviving rows keep their input order.
    """
    results = results.reset_index(drop=True)
    ranked = results.assign(_abs_lfc=results["log2FoldChange"].abs()).sort_values(
        ["padj", "_abs_lfc"], ascending=[True, False], na_position="last", kind="mergesort"
    )
    keep = ranked.drop_duplicates(subset="gene_name", keep="first").index
    n_dropped = len(results) - len(keep)
    if n_dropped:
        logger.debug("Collapsed %d duplicate gene symbol rows", n_dropped)
    return results.loc[sorted(keep)]


def label_gesp_results(
    de_results: pd.DataFrame,
    indication: str,
    gesp: pd.DataFrame,
    annotations: pd.DataFrame,
    lfc_threshold: float = 1.0,
    fdr_threshold: float = 0.01,
) -> pd.DataFrame:
    """Keep GESP genes of one DE table, label them and attach annotations.

    Args:
        de_results (pd.DataFrame): DE table with ``gene_name``, ``log2FoldChange`` and ``padj``.
        indication (str): Indication code the table came from.
        gesp (pd.DataFrame): Output of :func:`load_gesp_list`.
        annotations (pd.DataFrame): Output of :func:`load_gene_annotations`.
        lfc_threshold (float): Absolute log2 fold change cut.
        fdr_threshold (float): Adjusted p-value cut.

    Returns:
        pd.DataFrame: Labeled GESP rows sorted by descending log2 fold change.
    """
    results = de_results.reset_index() if "gene_id" not in de_results.columns else de_results.copy()
    results = collapse_duplicate_symbols(results.dropna(subset=["gene_name"]))

    merged = results.merge(gesp, on="gene_name", how="inner")
    merged = merged[merged["is_gesp"]].drop(columns="is_gesp")

    merged["label"] = classify_regulation(merged, lfc_threshold, fdr_threshold).values
    merged["indication"] = indication

    labeled = merged.merge(annotations, on="gene_name", how="inner")
    labeled = labeled.sort_values("log2FoldChange", ascending=False, kind="mergesort")
    logger.info(
        "%s: %d GESP genes labeled (%d up, %d down)",
        indication,
        len(labeled),
        int((labeled["label"] == UP).sum()),
        int((labeled["label"] == DOWN).sum()),
    )
    return labeled.reset_index(drop=True)


def gesp_results_path(out_dir: Path, indication: str) -> Path:
    return Path(out_dir) / f"{indication}_gesp_labeled.csv"


def write_gesp_results(labeled: pd.DataFrame, indication: str, out_dir: Path) -> Path:
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    path = gesp_results_path(out_dir, indication)
    labeled.to_csv(path, index=False)
    return path


def read_gesp_results(path: Path) -> pd.DataFrame:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Missing labeled GESP table: {path}")
    return pd.read_csv(path)
