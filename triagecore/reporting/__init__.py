"""Rendering of cached run results for model-facing prompts."""
