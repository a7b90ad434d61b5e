"""LCIA solver integration."""

from .client import LciaSolverClient, run_solver_for_model, run_solver_for_model_with_snapshot

__all__ = ["LciaSolverClient", "run_solver_for_model", "run_solver_for_model_with_snapshot"]
