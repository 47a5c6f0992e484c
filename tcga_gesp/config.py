from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

# TCGA project codes; the GDC project id is f"TCGA-{code}"
INDICATIONS = [
    "ACC", "BLCA", "BRCA", "CESC", "CHOL", "COAD", "DLBC", "ESCA", "GBM",
    "HNSC", "KICH", "KIRC", "KIRP", "LAML", "LGG", "LIHC", "LUAD", "LUSC",
    "MESO", "OV", "PAAD", "PCPG", "PRAD", "READ", "SARC", "SKCM", "STAD",
    "TGCT", "THCA", "THYM", "UCEC", "UCS", "UVM",
]

UP = "up"
DOWN = "down"
NOT_SIGNIFICANT = "not-significant"
LABELS = [UP, DOWN, NOT_SIGNIFICANT]

GENE_SET_COLLECTIONS = ["hallmark", "kegg", "reactome"]


def project_id(indication: str) -> str:
    """Return the GDC project id for an indication code (``BRCA`` -> ``TCGA-BRCA``)."""
    code = indication.strip().upper()
    if not code:
        raise ValueError("Indication code must be a non-empty string.")
    if code.startswith("TCGA-"):
        return code
    return f"TCGA-{code}"


@dataclass
class PipelineConfig:
    """Paths and thresholds for one pipeline run.

    Args:
        data_dir (Path): Where GDC downloads and sample sheets are stored.
        out_dir (Path): Root directory for every table and figure.
        gesp_path (Path): Reference GESP list (``gene_name``, ``is_gesp``).
        annotation_path (Path): HGNC complete-set TSV with gene family and EC columns.
        gmt_paths (dict[str, Path]): Pathway collection name to GMT file.
        indications (list[str]): Indication codes to process, in order.
    """

    data_dir: Path = Path("data/tcga")
    out_dir: Path = Path("results")
    gesp_path: Path = Path("data/reference/gesp_list.csv")
    annotation_path: Path = Path("data/reference/hgnc_complete_set.txt")
    gmt_paths: dict[str, Path] = field(
        default_factory=lambda: {
            "hallmark": Path("data/gene_sets/h.all.v2023.2.Hs.symbols.gmt"),
            "kegg": Path("data/gene_sets/c2.cp.kegg_legacy.v2023.2.Hs.symbols.gmt"),
            "reactome": Path("data/gene_sets/c2.cp.reactome.v2023.2.Hs.symbols.gmt"),
        }
    )
    indications: list[str] = field(default_factory=lambda: list(INDICATIONS))

    lfc_threshold: float = 1.0
    fdr_threshold: float = 0.01
    min_normal_samples: int = 10
    filter_quantile: float = 0.25

    pathway_rank: int = 3
    gsea_seed: int = 42
    gsea_permutations: int = 1000
    gsea_min_size: int = 15
    gsea_max_size: int = 500

    n_cpus: int = 8
    max_files: Optional[int] = None

    @property
    def de_dir(self) -> Path:
        return self.out_dir / "differential_expression"

    @property
    def gesp_dir(self) -> Path:
        return self.out_dir / "gesp"

    @property
    def figures_dir(self) -> Path:
        return self.out_dir / "figures"

    @property
    def enrichment_dir(self) -> Path:
        return self.out_dir / "gene_set_enrichment"

    @property
    def matrix_path(self) -> Path:
        return self.out_dir / "gesp_fold_change_matrix.csv"

    def make_dirs(self) -> None:
        for path in [self.data_dir, self.de_dir, self.gesp_dir, self.figures_dir, self.enrichment_dir]:
            path.mkdir(parents=True, exist_ok=True)
