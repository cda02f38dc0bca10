"""
Featured and trending ranking engine.

Responsibilities:
- Derive a deterministic per-period seed from the clock and region.
- Score candidates with Bayesian-smoothed ratings and engagement volume.
- Select a category-diverse, score-ordered result set.
- Fall back through progressively coarser catalog tiers when short.
- Enrich the selection for display and compute cache validators.
"""
