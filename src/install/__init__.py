"""Transactional workload installation and garbage collection."""
