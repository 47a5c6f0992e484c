"""Shared synthetic fixtures for the tcga_gesp tests."""

from pathlib import Path

import numpy as np
import pandas as pd
import pytest


def make_barcode(i, code):
    return f"TCGA-AA-{i:04d}-{code}A-01R-A000-07"


def make_counts(n_genes=60, n_tumor=12, n_normal=12, seed=42):
    """Genes x samples counts; the first 5 genes are strongly up in tumor, genes 5-10 down."""
    rng = np.random.default_rng(seed)
    barcodes = [make_barcode(i, "01") for i in range(n_tumor)] + [
        make_barcode(100 + i, "11") for i in range(n_normal)
    ]
    counts = rng.negative_binomial(n=20, p=0.1, size=(n_genes, n_tumor + n_normal))
    counts[:5, :n_tumor] *= 8
    counts[5:10, n_tumor:] *= 8
    gene_ids = [f"ENSG{i:011d}" for i in range(n_genes)]
    df = pd.DataFrame(counts, index=gene_ids, columns=barcodes)
    df.index.name = "gene_id"
    gene_names = pd.Series([f"GENE{i}" for i in range(n_genes)], index=gene_ids, name="gene_name")
    return df, gene_names


def make_sample_sheet(barcodes):
    rows = []
    for barcode in barcodes:
        code = barcode.split("-")[3][:2]
        rows.append(
            {
                "file_id": f"id-{barcode}",
                "file_name": f"{barcode}.tsv",
                "case_id": f"case-{barcode}",
                "barcode": barcode,
                "sample_type": "Primary Tumor" if code == "01" else "Solid Tissue Normal",
                "sample_code": code,
                "condition": "tumor" if code == "01" else "normal",
            }
        )
    return pd.DataFrame(rows)


@pytest.fixture
def synthetic_counts():
    return make_counts()


@pytest.fixture
def small_de_results():
    """The three-gene table: up, down and not significant."""
    return pd.DataFrame(
        {
            "gene_name": ["CD19", "EGFR", "MS4A1"],
            "baseMean": [100.0, 200.0, 300.0],
            "log2FoldChange": [2.0, -1.5, 0.2],
            "lfcSE": [0.2, 0.2, 0.2],
            "stat": [10.0, -7.5, 1.0],
            "pvalue": [1e-5, 1e-5, 0.3],
            "padj": [0.001, 0.001, 0.5],
        },
        index=pd.Index(["ENSG00000177455", "ENSG00000146648", "ENSG00000156738"], name="gene_id"),
    )


@pytest.fixture
def gesp_list():
    return pd.DataFrame(
        {
            "gene_name": ["CD19", "EGFR", "MS4A1", "GAPDH"],
            "is_gesp": [True, True, True, False],
        }
    )


@pytest.fixture
def gene_annotations():
    return pd.DataFrame(
        {
            "gene_name": ["CD19", "EGFR", "MS4A1", "GAPDH"],
            "gene_family": ["CD molecules", "Receptor tyrosine kinases", "Membrane spanning 4-domains", None],
            "enzyme_class": [None, "2.7.10.1", None, "1.2.1.12"],
        }
    )


def write_star_counts(path: Path, counts: pd.Series, gene_names: pd.Series) -> None:
    """Write a GDC STAR counts file for the given gene counts."""
    lines = [
        "# gene-model: GENCODE v36",
        "\t".join(
            [
                "gene_id", "gene_name", "gene_type", "unstranded", "stranded_first",
                "stranded_second", "tpm_unstranded", "fpkm_unstranded", "fpkm_uq_unstranded",
            ]
        ),
    ]
    for key in ["N_unmapped", "N_multimapping", "N_noFeature", "N_ambiguous"]:
        lines.append(f"{key}\t\t\t100\t100\t100\t\t\t")
    for gene_id, value in counts.items():
        lines.append(
            f"{gene_id}.5\t{gene_names[gene_id]}\tprotein_coding\t{value}\t{value // 2}\t{value // 2}\t1.0\t0.5\t0.6"
        )
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
