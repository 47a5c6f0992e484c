"""
GDC client
==========

Queries the NCI Genomic Data Commons for open-access STAR count files of one
TCGA project, downloads them and assembles a genes x samples count table.
"""

from __future__ import annotations

import gzip
import json
import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pandas as pd
import requests
from tqdm import tqdm

from tcga_gesp.config import project_id

logger = logging.getLogger(__name__)

GDC_API_BASE = "https://api.gdc.cancer.gov"

# Two-digit sample type codes from the TCGA barcode
TUMOR_CODE = "01"
NORMAL_CODE = "11"

STAR_COUNT_COLUMNS = [
    "gene_id", "gene_name", "gene_type",
    "unstranded", "stranded_first", "stranded_second",
    "tpm_unstranded", "fpkm_unstranded", "fpkm_uq_unstranded",
]

QUERY_FIELDS = ",".join([
    "file_id",
    "file_name",
    "cases.case_id",
    "cases.samples.sample_type",
    "cases.samples.portions.analytes.aliquots.submitter_id",
])


def sample_type_code(barcode: str) -> str:
    """Extract the sample type code from a barcode (``TCGA-XX-XXXX-01A-...`` -> ``01``)."""
    parts = barcode.split("-")
    if len(parts) < 4 or len(parts[3]) < 2:
        return "unknown"
    return parts[3][:2]


def condition_from_code(code: str) -> str:
    if code == TUMOR_CODE:
        return "tumor"
    if code == NORMAL_CODE:
        return "normal"
    return "other"


def parse_star_counts(file_path: Path) -> pd.DataFrame:
    """Parse one GDC STAR counts TSV.

    Args:
        file_path (Path): Plain or gzipped ``*.rna_seq.augmented_star_gene_counts.tsv``.

    Returns:
        pd.DataFrame: ``gene_name`` and ``unstranded`` columns indexed by the
        Ensembl gene id without its version suffix.
    """
    opener = gzip.open if file_path.suffix == ".gz" else open
    with opener(file_path, "rt") as handle:
        df = pd.read_csv(handle, sep="\t", comment="#")

    df = df[~df["gene_id"].astype(str).str.startswith("N_")].copy()
    df["gene_id"] = df["gene_id"].astype(str).str.split(".").str[0]
    # PAR_Y duplicates share the unversioned id with their X copy
    df = df.drop_duplicates(subset="gene_id", keep="first")
    return df.set_index("gene_id")[["gene_name", "unstranded"]]


class GDCClient:
    """Thin wrapper over the GDC ``files`` and ``data`` endpoints."""

    def __init__(self, data_dir: Path, api_base: str = GDC_API_BASE, timeout: Optional[float] = None):
        self.data_dir = Path(data_dir)
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout

    def query_files(
        self,
        project: str,
        data_type: str = "Gene Expression Quantification",
        workflow: str = "STAR - Counts",
        limit: int = 10000,
    ) -> List[Dict]:
        """Return the GDC file hits for one project."""
        filters = {
            "op": "and",
            "content": [
                {"op": "=", "content": {"field": "cases.project.project_id", "value": project}},
                {"op": "=", "content": {"field": "data_category", "value": "Transcriptome Profiling"}},
                {"op": "=", "content": {"field": "data_type", "value": data_type}},
                {"op": "=", "content": {"field": "analysis.workflow_type", "value": workflow}},
                {"op": "=", "content": {"field": "access", "value": "open"}},
            ],
        }
        params = {
            "filters": json.dumps(filters),
            "fields": QUERY_FIELDS,
            "format": "JSON",
            "size": limit,
        }
        response = requests.get(f"{self.api_base}/files", params=params, timeout=self.timeout)
        response.raise_for_status()
        return response.json().get("data", {}).get("hits", [])

    def download_file(self, file_id: str, output_path: Path) -> Path:
        response = requests.get(f"{self.api_base}/data/{file_id}", stream=True, timeout=self.timeout)
        response.raise_for_status()
        with open(output_path, "wb") as handle:
            for chunk in response.iter_content(chunk_size=8192):
                handle.write(chunk)
        return output_path

    @staticmethod
    def build_sample_sheet(hits: List[Dict]) -> pd.DataFrame:
        """Flatten GDC hits into one row per file with barcode and condition."""
        rows = []
        for hit in hits:
            cases = hit.get("cases") or [{}]
            case = cases[0]
            samples = case.get("samples") or [{}]
            sample = samples[0]
            barcode = case.get("case_id", "")
            try:
                barcode = sample["portions"][0]["analytes"][0]["aliquots"][0]["submitter_id"]
            except (KeyError, IndexError):
                pass
            code = sample_type_code(barcode)
            rows.append(
                {
                    "file_id": hit["file_id"],
                    "file_name": hit["file_name"],
                    "case_id": case.get("case_id", ""),
                    "barcode": barcode,
                    "sample_type": sample.get("sample_type", "Unknown"),
                    "sample_code": code,
                    "condition": condition_from_code(code),
                }
            )
        return pd.DataFrame(
            rows,
            columns=["file_id", "file_name", "case_id", "barcode", "sample_type", "sample_code", "condition"],
        )

    def download_project(
        self,
        indication: str,
        max_files: Optional[int] = None,
    ) -> Tuple[pd.DataFrame, pd.Series, pd.DataFrame]:
        """Download every STAR count file of an indication and build the count table.

        Files are fetched one after another and overwritten on every call.

        Args:
            indication (str): Indication code such as ``BRCA``.
            max_files (Optional[int]): Cap on the number of files, ``None`` for all.

        Returns:
            tuple[pd.DataFrame, pd.Series, pd.DataFrame]: Genes x samples counts,
            gene symbols indexed by gene id, and the sample sheet.
        """
        project = project_id(indication)
        raw_dir = self.data_dir / project / "raw"
        raw_dir.mkdir(parents=True, exist_ok=True)

        logger.info("Querying GDC for %s STAR counts", project)
        hits = self.query_files(project)
        if not hits:
            raise ValueError(f"No STAR count files found for {project}")
        sample_sheet = self.build_sample_sheet(hits)
        if max_files is not None:
            sample_sheet = sample_sheet.head(max_files)
        logger.info("Found %d files for %s", len(sample_sheet), project)

        for row in tqdm(sample_sheet.itertuples(index=False), total=len(sample_sheet), desc=f"Downloading {project}"):
            self.download_file(row.file_id, raw_dir / row.file_name)

        sample_sheet.to_csv(self.data_dir / project / "sample_sheet.csv", index=False)

        counts, gene_names = self.build_count_matrix(raw_dir, sample_sheet)
        logger.info(
            "%s count matrix: %d genes x %d samples", project, counts.shape[0], counts.shape[1]
        )
        return counts, gene_names, sample_sheet

    @staticmethod
    def build_count_matrix(raw_dir: Path, sample_sheet: pd.DataFrame) -> Tuple[pd.DataFrame, pd.Series]:
        """Merge per-file STAR counts into a genes x samples integer table."""
        count_dict = {}
        gene_names = None
        for row in tqdm(sample_sheet.itertuples(index=False), total=len(sample_sheet), desc="Parsing files"):
            parsed = parse_star_counts(raw_dir / row.file_name)
            count_dict[row.barcode] = parsed["unstranded"]
            if gene_names is None:
                gene_names = parsed["gene_name"]

        if not count_dict:
            raise ValueError(f"No count files parsed from {raw_dir}")

        counts = pd.DataFrame(count_dict).fillna(0).astype(int)
        counts.index.name = "gene_id"
        gene_names = gene_names.reindex(counts.index)
        return counts, gene_names
