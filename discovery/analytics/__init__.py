"""
Request analytics for the ranking surfaces.

Responsibilities:
- Record one event per ranking request (tier source, size, timing).
- Summarize tier usage and not-modified rates per surface.
"""
