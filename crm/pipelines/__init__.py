"""Pipelines for catalog ingestion, matching and match persistence.

Each step is callable independently and takes the tenant id explicitly.
"""
