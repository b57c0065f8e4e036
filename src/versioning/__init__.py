"""Version encoding between workload sets, packages, and feature bands."""
