from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt
import pandas as pd
import seaborn as sns

from tcga_gesp.config import DOWN, INDICATIONS, LABELS, NOT_SIGNIFICANT, UP
from tcga_gesp.gesp import gesp_results_path, read_gesp_results

logger = logging.getLogger(__name__)

LABEL_COLORS = {
    UP: "#d62728",
    DOWN: "#1f77b4",
    NOT_SIGNIFICANT: "lightgrey",
}

INDICATION_COLORS = dict(zip(INDICATIONS, sns.color_palette("husl", len(INDICATIONS)).as_hex()))

GENE_COL = "gene_name"
INDICATION_COL = "indication"
VALUE_COL = "log2FoldChange"


def label_counts(labeled: pd.DataFrame) -> pd.Series:
    """Count genes per label in the fixed ``up``/``down``/``not-significant`` order."""
    return labeled["label"].value_counts().reindex(LABELS, fill_value=0).astype(int)


def save_label_barplot(labeled: pd.DataFrame, indication: str, out_path: Path) -> None:
    """Save a bar chart of GESP label counts for one indication.

    Args:
        labeled (pd.DataFrame): Labeled GESP table for ``indication``.
        indication (str): Indication code used in the title.
        out_path (Path): Output path for PNG plot.

    Returns:
        None: Writes a PNG file to ``out_path``.
    """
    counts = label_counts(labeled)
    plt.figure(figsize=(5, 5))
    bars = plt.bar(counts.index, counts.values, color=[LABEL_COLORS[label] for label in counts.index])
    plt.bar_label(bars)
    plt.ylabel("Number of GESPs")
    plt.title(f"TCGA-{indication}: GESP regulation (tumor vs normal)")
    plt.tight_layout()
    plt.savefig(out_path, dpi=300)
    plt.close()


def load_labeled_results(gesp_dir: Path, indications: Iterable[str]) -> pd.DataFrame:
    """Concatenate the labeled GESP tables written for ``indications``."""
    frames = [read_gesp_results(gesp_results_path(gesp_dir, code)) for code in indications]
    if not frames:
        return pd.DataFrame(columns=[GENE_COL, INDICATION_COL, VALUE_COL, "label"])
    return pd.concat(frames, ignore_index=True)


def summarize_label_counts(records: pd.DataFrame) -> pd.DataFrame:
    summary = pd.crosstab(records[INDICATION_COL], records["label"])
    return summary.reindex(columns=LABELS, fill_value=0)


def save_label_summary_barplot(summary: pd.DataFrame, out_path: Path) -> None:
    """Grouped bar chart of up/down GESP counts across indications."""
    plot_df = (
        summary[[UP, DOWN]]
        .rename_axis(INDICATION_COL)
        .reset_index()
        .melt(id_vars=INDICATION_COL, var_name="label", value_name="count")
    )
    plt.figure(figsize=(max(8, 0.5 * len(summary)), 6))
    sns.barplot(data=plot_df, x=INDICATION_COL, y="count", hue="label", palette={UP: LABEL_COLORS[UP], DOWN: LABEL_COLORS[DOWN]})
    plt.xticks(rotation=60, ha="right", fontsize=8)
    plt.ylabel("Number of GESPs")
    plt.xlabel("Indication")
    plt.title("Differentially expressed GESPs per indication")
    plt.tight_layout()
    plt.savefig(out_path, dpi=300)
    plt.close()


def build_fold_change_matrix(records: pd.DataFrame) -> pd.DataFrame:
    """Reshape long GESP records into a genes x indications log2FC matrix.

    Raises:
        ValueError: If a gene appears more than once for the same indication.
    """
    duplicated = records.duplicated(subset=[GENE_COL, INDICATION_COL], keep=False)
    if duplicated.any():
        pairs = records.loc[duplicated, [GENE_COL, INDICATION_COL]].drop_duplicates()
        raise ValueError(f"Duplicate gene/indication records: {pairs.values.tolist()[:10]}")

    matrix = records.pivot(index=GENE_COL, columns=INDICATION_COL, values=VALUE_COL)
    matrix.columns.name = INDICATION_COL
    return matrix.sort_index().sort_index(axis=1)


def matrix_to_long(matrix: pd.DataFrame) -> pd.DataFrame:
    """Inverse of :func:`build_fold_change_matrix`; missing pairs stay as NaN rows."""
    long_df = (
        matrix.rename_axis(index=GENE_COL, columns=INDICATION_COL)
        .stack(future_stack=True)
        .rename(VALUE_COL)
        .reset_index()
    )
    return long_df


def write_fold_change_matrix(matrix: pd.DataFrame, out_path: Path) -> None:
    matrix.to_csv(out_path, na_rep="")


def read_fold_change_matrix(path: Path) -> pd.DataFrame:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Missing fold change matrix: {path}")
    matrix = pd.read_csv(path, index_col=GENE_COL)
    matrix.columns.name = INDICATION_COL
    return matrix


def dominant_labels(records: pd.DataFrame) -> pd.Series:
    """Most frequent label of each gene across indications (ties follow ``LABELS`` order)."""
    table = pd.crosstab(records[GENE_COL], records["label"]).reindex(columns=LABELS, fill_value=0)
    return table.idxmax(axis=1)


def save_fold_change_clustermap(
    matrix: pd.DataFrame,
    out_path: Path,
    gene_labels: Optional[pd.Series] = None,
) -> None:
    """Save a hierarchically clustered heatmap of the fold change matrix.

    Missing gene/indication pairs are drawn as 0. Columns carry the fixed
    indication colors; rows carry the label colors from ``gene_labels``.
    """
    plot_matrix = matrix.fillna(0)
    col_colors = pd.Series(
        [INDICATION_COLORS.get(code, "black") for code in plot_matrix.columns],
        index=plot_matrix.columns,
        name=INDICATION_COL,
    )
    row_colors = None
    if gene_labels is not None:
        row_colors = gene_labels.reindex(plot_matrix.index).map(LABEL_COLORS).fillna("white").rename("label")

    max_val = max(abs(plot_matrix.min().min()), abs(plot_matrix.max().max()), 1.0)
    sns.set_theme(style="white")
    cluster_grid = sns.clustermap(
        plot_matrix,
        method="complete",
        metric="euclidean",
        cmap="vlag",
        center=0,
        vmin=-max_val,
        vmax=max_val,
        row_colors=row_colors,
        col_colors=col_colors,
        row_cluster=plot_matrix.shape[0] > 1,
        col_cluster=plot_matrix.shape[1] > 1,
        yticklabels=plot_matrix.shape[0] <= 150,
        figsize=(max(8, 0.4 * plot_matrix.shape[1]), 12),
        dendrogram_ratio=(0.1, 0.08),
        cbar_kws={"label": "Log2 Fold Change"},
    )
    cluster_grid.figure.suptitle("GESP log2 fold change across TCGA indications (tumor vs normal)")
    cluster_grid.figure.subplots_adjust(top=0.95)
    cluster_grid.savefig(out_path, dpi=300)
    plt.close(cluster_grid.figure)
    logger.info("Saved clustermap of %d genes x %d indications to %s", *plot_matrix.shape, out_path)
