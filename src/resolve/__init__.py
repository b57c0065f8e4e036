"""Manifest update resolution from rollback files, workload sets, and feeds."""
