"""Scoring: category raws, the weighted aggregate and per-test scores."""
