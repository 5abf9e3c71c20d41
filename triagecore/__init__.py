# ============================================================================
# triagecore/__init__.py
# Package Marker for the CLI Context Engine
# ============================================================================
#
# PURPOSE:
# Runs external command-line tools on behalf of the issue-triage assistant,
# caches their latest output per tool, and turns those results into a
# size-bounded block of text for the model prompt.
#
# LAYOUT:
# - base/: configuration, logging setup, error taxonomy
# - toolkit/: tool records, token substitution, descriptor registry
# - engine/: execution, concurrency guard, auto-run scheduler, service facade
# - data/: workspace state and the result store
# - reporting/: prompt composer
# - server/: HTTP surface (FastAPI)
#
# ============================================================================
