"""Export of merged aggregates to flat-file formats."""
from .tabular import detail_frame, detail_rows, export_csv, export_jsonl

__all__ = ["detail_frame", "detail_rows", "export_csv", "export_jsonl"]
