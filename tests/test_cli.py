"""End-to-end run of the per-indication loop with the GDC client faked out."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pandas as pd
import pytest

from conftest import make_counts, make_sample_sheet
from tcga_gesp import cli
from tcga_gesp.config import INDICATIONS, PipelineConfig


def _fake_client(datasets):
    client = MagicMock()

    def download_project(indication, max_files=None):
        counts, gene_names = datasets[indication]
        return counts, gene_names, make_sample_sheet(counts.columns)

    client.download_project.side_effect = download_project
    return client


@pytest.fixture
def reference_files(tmp_path):
    gesp_path = tmp_path / "gesp_list.csv"
    pd.DataFrame(
        {"gene_name": [f"GENE{i}" for i in range(30)], "is_gesp": ["yes"] * 20 + ["no"] * 10}
    ).to_csv(gesp_path, index=False)

    annotation_path = tmp_path / "hgnc_complete_set.txt"
    pd.DataFrame(
        {
            "symbol": [f"GENE{i}" for i in range(30)],
            "gene_group": ["CD molecules"] * 30,
            "enzyme_id": [""] * 30,
        }
    ).to_csv(annotation_path, sep="\t", index=False)
    return gesp_path, annotation_path


def test_parse_args_defaults():
    args = cli.parse_args([])
    config = cli.config_from_args(args)
    assert config.indications == INDICATIONS
    assert config.min_normal_samples == 10
    assert config.pathway_rank == 3
    assert set(config.gmt_paths) == {"hallmark", "kegg", "reactome"}


def test_parse_args_overrides(tmp_path):
    args = cli.parse_args(
        ["--indications", "brca", "luad", "--out-dir", str(tmp_path), "--pathway-rank", "1", "--kegg-gmt", "k.gmt"]
    )
    config = cli.config_from_args(args)
    assert config.indications == ["BRCA", "LUAD"]
    assert config.out_dir == tmp_path
    assert config.de_dir == tmp_path / "differential_expression"
    assert config.pathway_rank == 1
    assert config.gmt_paths["kegg"] == Path("k.gmt")


def test_skipped_indication_writes_nothing(tmp_path):
    config = PipelineConfig(data_dir=tmp_path / "data", out_dir=tmp_path / "results", n_cpus=1)
    config.make_dirs()
    client = _fake_client({"ACC": make_counts(n_genes=20, n_tumor=12, n_normal=3)})

    result = cli.process_indication("ACC", client, pd.DataFrame(), pd.DataFrame(), config)

    assert result is None
    assert list(config.de_dir.iterdir()) == []
    assert list(config.gesp_dir.iterdir()) == []
    assert list(config.figures_dir.iterdir()) == []


def test_main_end_to_end(tmp_path, reference_files, capsys):
    gesp_path, annotation_path = reference_files
    out_dir = tmp_path / "results"
    client = _fake_client(
        {
            "BRCA": make_counts(n_genes=60, n_tumor=12, n_normal=12),
            "UVM": make_counts(n_genes=60, n_tumor=12, n_normal=0),
        }
    )

    with patch("tcga_gesp.cli.GDCClient", return_value=client):
        cli.main(
            [
                "--indications", "BRCA", "UVM",
                "--data-dir", str(tmp_path / "data"),
                "--out-dir", str(out_dir),
                "--gesp-path", str(gesp_path),
                "--annotation-path", str(annotation_path),
                "--n-cpus", "1",
                "--skip-enrichment",
            ]
        )

    assert (out_dir / "differential_expression" / "BRCA_de_results.csv").exists()
    assert (out_dir / "differential_expression" / "BRCA_de_results.h5ad").exists()
    assert not (out_dir / "differential_expression" / "UVM_de_results.csv").exists()

    labeled = pd.read_csv(out_dir / "gesp" / "BRCA_gesp_labeled.csv")
    assert set(labeled["gene_name"]) <= {f"GENE{i}" for i in range(20)}
    assert labeled["log2FoldChange"].is_monotonic_decreasing
    assert set(labeled.loc[labeled["gene_name"].isin(["GENE0", "GENE1", "GENE2"]), "label"]) == {"up"}

    matrix = pd.read_csv(out_dir / "gesp_fold_change_matrix.csv", index_col=0)
    assert list(matrix.columns) == ["BRCA"]
    assert (out_dir / "figures" / "BRCA_gesp_barplot.png").exists()
    assert (out_dir / "figures" / "gesp_fold_change_clustermap.png").exists()
    assert (out_dir / "gesp_label_counts.csv").exists()
    assert "completed for 1 indication(s)" in capsys.readouterr().out
