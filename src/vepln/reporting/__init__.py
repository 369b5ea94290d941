"""Export of simulation results."""

from .export import export_csv, export_json

__all__ = ["export_csv", "export_json"]
