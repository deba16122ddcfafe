"""Curator: ingestion, scoring, memory and the cycle orchestrator."""
