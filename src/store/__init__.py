"""Persistence layer for install metadata and shared content.

This package owns installation records, reference records, per-band
install state, and the band-independent pack store.
"""
