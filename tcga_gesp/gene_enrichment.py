"""Gene set enrichment (GSEA prerank) of each indication's DE results."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional

import gseapy as gp
import numpy as np
import pandas as pd

from tcga_gesp.config import DOWN, UP
from tcga_gesp.differential_expression import de_results_path, read_de_results

logger = logging.getLogger(__name__)

TERM_COL = "Term"
NES_COL = "NES"
SUMMARY_COLUMNS = ["indication", "up_pathway", "up_nes", "down_pathway", "down_nes"]


def load_gene_sets(gmt_path: Path) -> dict[str, list[str]]:
    """Read one GMT collection, failing on a missing or empty file."""
    gmt_path = Path(gmt_path)
    if not gmt_path.exists():
        raise FileNotFoundError(f"Missing gene set collection: {gmt_path}")
    gene_sets = gp.read_gmt(str(gmt_path))
    if not gene_sets:
        raise ValueError(f"Gene set collection {gmt_path} contains no gene sets.")
    return gene_sets


def build_ranked_list(de_results: pd.DataFrame) -> pd.DataFrame:
    """Rank genes by log2 fold change, keeping the max value per gene symbol."""
    ranked_list = de_results.dropna(subset=["gene_name", "log2FoldChange"])[["gene_name", "log2FoldChange"]].copy()
    ranked_list["gene_name"] = ranked_list["gene_name"].astype(str)
    ranked_list = ranked_list.groupby("gene_name", as_index=False)["log2FoldChange"].max()
    return ranked_list.sort_values("log2FoldChange", ascending=False).reset_index(drop=True)


def run_prerank(
    de_results: pd.DataFrame,
    gene_sets: dict[str, list[str]],
    outdir: Optional[Path] = None,
    seed: int = 42,
    permutation_num: int = 1000,
    min_size: int = 15,
    max_size: int = 500,
    threads: int = 1,
) -> pd.DataFrame:
    """Run GSEA prerank and return the ``res2d`` table with numeric NES."""
    ranked_list = build_ranked_list(de_results)
    pre_res = gp.prerank(
        rnk=ranked_list,
        gene_sets=gene_sets,
        outdir=str(outdir) if outdir is not None else None,
        seed=seed,
        min_size=min_size,
        max_size=max_size,
        permutation_num=permutation_num,
        threads=threads,
        verbose=False,
    )
    res2d = pre_res.res2d.copy()
    res2d[NES_COL] = pd.to_numeric(res2d[NES_COL], errors="coerce")
    return res2d


def select_ranked_pathway(
    res2d: pd.DataFrame,
    rank: int = 3,
    direction: str = UP,
) -> tuple[Optional[str], float]:
    """Pick the pathway at a 1-based ``rank`` by NES.

    ``up`` orders by descending NES, ``down`` by ascending NES.

    Returns:
        tuple[Optional[str], float]: Term and NES, or ``(None, nan)`` when
        fewer than ``rank`` pathways were scored.
    """
    if rank < 1:
        raise ValueError(f"rank must be >= 1, got {rank}")
    if direction not in (UP, DOWN):
        raise ValueError(f"direction must be '{UP}' or '{DOWN}', got {direction!r}")

    scored = res2d.dropna(subset=[NES_COL])
    ordered = scored.sort_values(NES_COL, ascending=(direction == DOWN), kind="mergesort")
    if len(ordered) < rank:
        return None, np.nan
    row = ordered.iloc[rank - 1]
    return str(row[TERM_COL]), float(row[NES_COL])


def summarize_enrichment(
    de_dir: Path,
    indications: Iterable[str],
    gmt_paths: dict[str, Path],
    out_dir: Path,
    rank: int = 3,
    seed: int = 42,
    permutation_num: int = 1000,
    min_size: int = 15,
    max_size: int = 500,
    threads: int = 1,
) -> dict[str, pd.DataFrame]:
    """Run every collection for every indication and write one summary table per collection.

    Args:
        de_dir (Path): Directory holding ``<code>_de_results.csv`` files.
        indications (Iterable[str]): Indications with DE results.
        gmt_paths (dict[str, Path]): Collection name to GMT path.
        out_dir (Path): Output directory for summaries and per-run GSEApy artifacts.
        rank (int): 1-based NES rank reported for each direction.

    Returns:
        dict[str, pd.DataFrame]: Summary table per collection.
    """
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    indications = list(indications)
    collections = {name: load_gene_sets(path) for name, path in gmt_paths.items()}

    rows: dict[str, list[dict]] = {name: [] for name in collections}
    for indication in indications:
        de_results = read_de_results(de_results_path(de_dir, indication))
        for name, gene_sets in collections.items():
            logger.info("GSEA prerank: %s / %s", indication, name)
            run_dir = out_dir / name / indication
            run_dir.mkdir(parents=True, exist_ok=True)
            res2d = run_prerank(
                de_results,
                gene_sets,
                outdir=run_dir,
                seed=seed,
                permutation_num=permutation_num,
                min_size=min_size,
                max_size=max_size,
                threads=threads,
            )
            res2d.to_csv(run_dir / f"{indication}_{name}_prerank_results.csv", index=False)
            # Both directions come from this collection's own res2d. The legacy
            # report took the KEGG "down" pathway from the Hallmark results;
            # whether that was intended is unresolved, so it is not reproduced.
            up_term, up_nes = select_ranked_pathway(res2d, rank=rank, direction=UP)
            down_term, down_nes = select_ranked_pathway(res2d, rank=rank, direction=DOWN)
            rows[name].append(
                {
                    "indication": indication,
                    "up_pathway": up_term,
                    "up_nes": up_nes,
                    "down_pathway": down_term,
                    "down_nes": down_nes,
                }
            )

    summaries = {}
    for name, records in rows.items():
        summary = pd.DataFrame(records, columns=SUMMARY_COLUMNS)
        summary.to_csv(out_dir / f"{name}_enrichment_summary.csv", index=False)
        summaries[name] = summary
    return summaries
