"""Surface-protein (GESP) differential expression profiling across TCGA indications."""

__version__ = "0.1.0"
