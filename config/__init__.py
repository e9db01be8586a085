"""Static reference data used by the matching pipelines."""
