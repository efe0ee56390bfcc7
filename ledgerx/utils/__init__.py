"""
LEDGERX Utilities Package - Cross-Cutting Helpers

Logging setup and structured log helpers shared by the CLI and the pipeline.
"""

from .logging import (
    setup_logging,
    get_logger,
    get_current_log_file,
    get_session_id,
    log_pipeline_start,
    log_segment_dispatch,
    log_segment_failure,
    log_oracle_response,
    log_text_content,
    log_pipeline_complete,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "get_current_log_file",
    "get_session_id",
    "log_pipeline_start",
    "log_segment_dispatch",
    "log_segment_failure",
    "log_oracle_response",
    "log_text_content",
    "log_pipeline_complete",
]
