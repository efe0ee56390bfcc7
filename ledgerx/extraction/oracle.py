# ledgerx/extraction/oracle.py
"""Extraction oracle: segment text in, :class:`PartialRecord` out.

The pipeline only depends on the :class:`Oracle` protocol.  :class:`DspyOracle`
is the default implementation: a DSPy module whose output field is typed as
``PartialRecord``, with a plain-JSON fallback predictor for models that do
not follow the structured adapter.

Each ``DspyOracle`` owns its own ``dspy.LM`` and runs every call inside
``dspy.context(lm=...)``; nothing is configured globally, so several oracles
with different models or credentials can coexist in one process.

DSPy-dependent classes are lazily built via :func:`_build_dspy_classes` so
that the module imports without dspy installed.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional, Protocol, runtime_checkable

from pydantic import ValidationError

from ..documents.models import PageRange, Segment
from ..errors import ExtractionError
from ..utils.logging import log_oracle_response
from .models import PartialRecord
from .parse_utils import parse_json_like

if TYPE_CHECKING:
    from ..config import LedgerxConfig

logger = logging.getLogger(__name__)


EXTRACTION_INSTRUCTIONS = """\
Process the provided document segment and convert it into structured data.
Data integrity is paramount: no information may be lost during conversion.

- Extract every member (person, clerk, employee) with a stable unique id and full name.
- For every member extract their financial ledger: total sales, every
  transaction / sales line with its amount and type, and the summary
  (total revenue and average transaction).
- Extract document-wide overall totals when the segment states them.
- Extract the document date and reporting period when present.
- Attach a source location (1-based page number, and the position of the
  value on that page) to every member, transaction, summary and total.
- Maintain relationships between related data, such as member ids and their
  sales records. Never invent values that are not in the text; omit missing
  optional fields instead.
"""


@dataclass(frozen=True)
class SegmentContext:
    """Where a segment sits in the document, passed alongside its text."""

    segment_index: int
    segment_count: int
    page_range: PageRange

    @classmethod
    def for_segment(cls, segment: Segment, segment_count: int) -> SegmentContext:
        return cls(
            segment_index=segment.segment_index,
            segment_count=segment_count,
            page_range=segment.page_range,
        )

    def header(self) -> str:
        return (
            f"Segment {self.segment_index + 1}/{self.segment_count} "
            f"(Pages {self.page_range.start}-{self.page_range.end})"
        )


@runtime_checkable
class Oracle(Protocol):
    """Structured-extraction capability used by the dispatcher.

    Implementations raise :class:`ExtractionError` on failure; transient
    failures should set ``retryable=True``.
    """

    def extract(self, segment_text: str, context: SegmentContext) -> PartialRecord:
        ...


# ---------------------------------------------------------------------------
# Payload handling
# ---------------------------------------------------------------------------


def record_from_payload(payload: Any, *, segment_index: int | None = None) -> PartialRecord:
    """Validate an oracle payload (dict, JSON text or model) into a PartialRecord.

    Raises:
        ExtractionError: Non-retryable, when the payload does not fit the schema.
    """
    if isinstance(payload, PartialRecord):
        return payload
    if hasattr(payload, "model_dump"):
        payload = payload.model_dump()
    if isinstance(payload, str):
        parsed = parse_json_like(payload)
        if parsed is None:
            raise ExtractionError(
                "oracle response is not valid JSON", segment_index=segment_index
            )
        payload = parsed
    if not isinstance(payload, dict):
        raise ExtractionError(
            f"oracle response must be an object, got {type(payload).__name__}",
            segment_index=segment_index,
        )
    try:
        return PartialRecord.model_validate(payload)
    except ValidationError as exc:
        raise ExtractionError(
            f"oracle response violates the record schema: {exc.error_count()} error(s); "
            f"first: {exc.errors()[0]['msg']}",
            segment_index=segment_index,
        ) from exc


_TRANSIENT_NAME_HINTS = (
    "timeout",
    "ratelimit",
    "connection",
    "serviceunavailable",
    "internalserver",
)


def is_transient_error(exc: BaseException) -> bool:
    """Heuristic: does *exc* look like a timeout / transport / rate-limit error?

    LiteLLM and provider SDK exception types are matched by class name so
    neither needs to be imported here.
    """
    if isinstance(exc, (TimeoutError, ConnectionError)):
        return True
    for klass in type(exc).__mro__:
        name = klass.__name__.lower()
        if any(hint in name for hint in _TRANSIENT_NAME_HINTS):
            return True
    return False


# ---------------------------------------------------------------------------
# DSPy oracle
# ---------------------------------------------------------------------------


class DspyOracle:
    """Default oracle backed by a DSPy module and a per-instance ``dspy.LM``."""

    def __init__(
        self,
        model: str,
        *,
        api_key: str = "",
        api_base: str = "",
        temperature: float = 0.0,
        max_tokens: int = 4000,
        timeout: int = 120,
        lm: Any = None,
    ) -> None:
        self.model = model
        self._lm_kwargs = {
            "api_key": api_key,
            "api_base": api_base,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "timeout": timeout,
        }
        self._lm = lm
        self._module: Any = None
        self._init_lock = threading.Lock()

    @classmethod
    def from_config(cls, cfg: LedgerxConfig) -> DspyOracle:
        return cls(
            cfg.lm,
            api_key=cfg.api_key,
            api_base=cfg.api_base,
            temperature=cfg.lm_temperature,
            max_tokens=cfg.lm_max_tokens,
            timeout=cfg.oracle_timeout,
        )

    def _ensure_ready(self) -> None:
        with self._init_lock:
            if self._lm is None:
                from .lm import make_lm

                self._lm = make_lm(self.model, **self._lm_kwargs)
            if self._module is None:
                self._module = _dspy_classes()["SegmentExtractor"]()

    def extract(self, segment_text: str, context: SegmentContext) -> PartialRecord:
        import dspy

        from ..metrics import get_tracker

        self._ensure_ready()
        try:
            with dspy.context(lm=self._lm, usage_tracker=get_tracker(), track_usage=True):
                prediction = self._module(
                    segment_header=context.header(),
                    segment_text=segment_text,
                )
        except ExtractionError as exc:
            exc.segment_index = context.segment_index
            raise
        except Exception as exc:
            raise ExtractionError(
                f"{type(exc).__name__}: {exc}",
                segment_index=context.segment_index,
                retryable=is_transient_error(exc),
            ) from exc

        record = prediction.record
        if logger.isEnabledFor(logging.DEBUG):
            dumped = record.model_dump_json() if hasattr(record, "model_dump_json") else str(record)
            log_oracle_response(logger, context.segment_index, dumped)
        return record_from_payload(record, segment_index=context.segment_index)


def _build_dspy_classes() -> dict[str, type]:
    """Lazily define and return the DSPy signatures and extraction module."""
    import dspy

    class ExtractSegmentRecord(dspy.Signature):
        segment_header: str = dspy.InputField(
            desc="Position of the segment in the document, e.g. 'Segment 2/5 (Pages 3-4)'"
        )
        segment_text: str = dspy.InputField(desc="Plain text of the document segment")
        record: PartialRecord = dspy.OutputField(
            desc="Members, ledgers, overall totals and metadata found in this segment"
        )

    ExtractSegmentRecord.__doc__ = EXTRACTION_INSTRUCTIONS

    class ExtractSegmentJson(dspy.Signature):
        segment_header: str = dspy.InputField(desc="Position of the segment in the document")
        segment_text: str = dspy.InputField(desc="Plain text of the document segment")
        record_json: str = dspy.OutputField(
            desc="Strict JSON object with keys identities, ledgers, overall_totals, metadata"
        )

    ExtractSegmentJson.__doc__ = (
        EXTRACTION_INSTRUCTIONS
        + "\nReturn ONLY a JSON object with no markdown and no commentary. Schema:\n"
        + json.dumps(PartialRecord.model_json_schema())
    )

    class SegmentExtractor(dspy.Module):
        """Typed extraction with a plain-JSON fallback.

        Sub-modules:
            - ``extract`` -- Predict into the typed ``PartialRecord``.
            - ``extract_json`` -- Predict a JSON string, parsed leniently.
        """

        def __init__(self) -> None:
            super().__init__()
            self.extract = dspy.Predict(ExtractSegmentRecord)
            self.extract_json = dspy.Predict(ExtractSegmentJson)

        def forward(self, segment_header: str, segment_text: str) -> dspy.Prediction:
            try:
                result = self.extract(segment_header=segment_header, segment_text=segment_text)
                return dspy.Prediction(record=result.record)
            except Exception as exc:
                if is_transient_error(exc):
                    raise
                logger.info("Typed extraction failed (%s); trying JSON fallback", exc)

            result = self.extract_json(segment_header=segment_header, segment_text=segment_text)
            return dspy.Prediction(record=record_from_payload(result.record_json))

    return {
        "ExtractSegmentRecord": ExtractSegmentRecord,
        "ExtractSegmentJson": ExtractSegmentJson,
        "SegmentExtractor": SegmentExtractor,
    }


# Cache for lazily-built DSPy classes
_dspy_class_cache: Optional[dict[str, type]] = None

_DSPY_CLASS_NAMES = frozenset({
    "ExtractSegmentRecord",
    "ExtractSegmentJson",
    "SegmentExtractor",
})


def _dspy_classes() -> dict[str, type]:
    global _dspy_class_cache
    if _dspy_class_cache is None:
        _dspy_class_cache = _build_dspy_classes()
    return _dspy_class_cache


def __getattr__(name: str):
    """Module-level __getattr__ for lazy loading of DSPy classes."""
    if name in _DSPY_CLASS_NAMES:
        return _dspy_classes()[name]
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
