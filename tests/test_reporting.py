"""Tests for bar charts, the fold change matrix and the clustermap."""

import numpy as np
import pandas as pd
import pytest

from tcga_gesp.config import DOWN, NOT_SIGNIFICANT, UP
from tcga_gesp.gesp import write_gesp_results
from tcga_gesp.reporting import (
    INDICATION_COLORS,
    build_fold_change_matrix,
    dominant_labels,
    label_counts,
    load_labeled_results,
    matrix_to_long,
    read_fold_change_matrix,
    save_fold_change_clustermap,
    save_label_barplot,
    save_label_summary_barplot,
    summarize_label_counts,
    write_fold_change_matrix,
)


@pytest.fixture
def records():
    return pd.DataFrame(
        {
            "gene_name": ["CD19", "EGFR", "MS4A1", "CD19", "EGFR", "ERBB2"],
            "indication": ["BRCA", "BRCA", "BRCA", "LUAD", "LUAD", "LUAD"],
            "log2FoldChange": [2.0, -1.5, 0.2, 1.4, 3.1, -2.2],
            "label": [UP, DOWN, NOT_SIGNIFICANT, UP, UP, DOWN],
        }
    )


class TestFoldChangeMatrix:
    def test_one_value_per_pair_with_missing_marker(self, records):
        matrix = build_fold_change_matrix(records)
        assert list(matrix.columns) == ["BRCA", "LUAD"]
        assert list(matrix.index) == ["CD19", "EGFR", "ERBB2", "MS4A1"]
        assert matrix.loc["EGFR", "LUAD"] == 3.1
        assert np.isnan(matrix.loc["MS4A1", "LUAD"])
        assert np.isnan(matrix.loc["ERBB2", "BRCA"])

    def test_wide_long_wide_is_identity(self, records):
        matrix = build_fold_change_matrix(records)
        rebuilt = build_fold_change_matrix(matrix_to_long(matrix))
        pd.testing.assert_frame_equal(rebuilt, matrix)

    def test_long_wide_long_keeps_values(self, records):
        long_df = matrix_to_long(build_fold_change_matrix(records))
        assert len(long_df) == 4 * 2
        observed = long_df.dropna(subset=["log2FoldChange"])
        merged = observed.merge(records, on=["gene_name", "indication"], suffixes=("", "_orig"))
        assert len(merged) == len(records)
        assert (merged["log2FoldChange"] == merged["log2FoldChange_orig"]).all()

    def test_duplicate_pairs_raise(self, records):
        duplicated = pd.concat([records, records.iloc[[0]]], ignore_index=True)
        with pytest.raises(ValueError, match="Duplicate"):
            build_fold_change_matrix(duplicated)

    def test_csv_round_trip_keeps_missing(self, tmp_path, records):
        matrix = build_fold_change_matrix(records)
        path = tmp_path / "matrix.csv"
        write_fold_change_matrix(matrix, path)
        loaded = read_fold_change_matrix(path)
        pd.testing.assert_frame_equal(loaded, matrix, check_names=False)
        assert np.isnan(loaded.loc["MS4A1", "LUAD"])

    def test_read_missing_matrix_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_fold_change_matrix(tmp_path / "absent.csv")


class TestLabelSummaries:
    def test_label_counts_fixed_order(self, records):
        counts = label_counts(records[records["indication"] == "LUAD"])
        assert counts.index.tolist() == [UP, DOWN, NOT_SIGNIFICANT]
        assert counts.tolist() == [2, 1, 0]

    def test_summarize_label_counts(self, records):
        summary = summarize_label_counts(records)
        assert summary.loc["BRCA"].tolist() == [1, 1, 1]
        assert summary.loc["LUAD"].tolist() == [2, 1, 0]

    def test_dominant_labels(self, records):
        labels = dominant_labels(records)
        assert labels["CD19"] == UP
        assert labels["ERBB2"] == DOWN
        # EGFR ties one up / one down; up wins by label order
        assert labels["EGFR"] == UP

    def test_load_labeled_results(self, tmp_path, records):
        for code, frame in records.groupby("indication"):
            write_gesp_results(frame, code, tmp_path)
        loaded = load_labeled_results(tmp_path, ["BRCA", "LUAD"])
        assert len(loaded) == len(records)

    def test_load_labeled_results_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_labeled_results(tmp_path, ["BRCA"])


class TestPlots:
    def test_label_barplot_written(self, tmp_path, records):
        out_path = tmp_path / "BRCA_gesp_barplot.png"
        save_label_barplot(records[records["indication"] == "BRCA"], "BRCA", out_path)
        assert out_path.exists() and out_path.stat().st_size > 0

    def test_summary_barplot_written(self, tmp_path, records):
        out_path = tmp_path / "summary.png"
        save_label_summary_barplot(summarize_label_counts(records), out_path)
        assert out_path.exists()

    def test_clustermap_written(self, tmp_path, records):
        out_path = tmp_path / "clustermap.png"
        matrix = build_fold_change_matrix(records)
        save_fold_change_clustermap(matrix, out_path, gene_labels=dominant_labels(records))
        assert out_path.exists()

    def test_indication_colors_are_fixed(self):
        assert len(set(INDICATION_COLORS.values())) == len(INDICATION_COLORS)
        assert INDICATION_COLORS["BRCA"].startswith("#")
