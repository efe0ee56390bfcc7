"""
LEDGERX - Segmented ledger extraction with source verification.

Splits long financial documents into page-aligned segments, extracts each
segment with a structured-output LLM, reconciles the partial records into one
aggregate, and checks every extracted value back against its source page.

Main Components:
    - ledgerx.documents: page loading and segmentation
    - ledgerx.extraction: oracle client, dispatcher, merge engine
    - ledgerx.verify: source verification checker
    - ledgerx.pipeline: end-to-end orchestration
"""

from .pipeline import PipelineResult, run_pipeline

__version__ = "0.3.0"

__all__ = ["PipelineResult", "run_pipeline", "__version__"]
