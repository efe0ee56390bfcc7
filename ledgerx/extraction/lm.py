"""``dspy.LM`` construction for the extraction oracle.

Local OpenAI-compatible servers running gpt-oss wrap answers in Harmony
channel markup (``<|channel|>final<|message|>...``); the LM built here keeps
only the final channel so DSPy's adapters see plain output.
"""

from __future__ import annotations

from typing import Any

_FINAL_CHANNEL = "<|channel|>final<|message|>"


def final_channel(text: str) -> str:
    """Text after the last Harmony final-channel marker, or *text* unchanged."""
    head, sep, tail = text.rpartition(_FINAL_CHANNEL)
    return tail if sep else text


def normalize_api_base(api_base: str) -> str:
    """Pin ``localhost`` / ``[::1]`` to ``127.0.0.1`` (LiteLLM may try IPv6 first)."""
    for host in ("://localhost", "://[::1]"):
        api_base = api_base.replace(host, "://127.0.0.1")
    return api_base


def make_lm(model: str, **kwargs: Any) -> Any:
    """Build a ``dspy.LM`` for *model*.

    Empty ``api_key`` / ``api_base`` values are omitted so LiteLLM falls back
    to the provider's environment variables.
    """
    import dspy

    lm_kwargs = {k: v for k, v in kwargs.items() if v not in ("", None)}
    if isinstance(lm_kwargs.get("api_base"), str):
        lm_kwargs["api_base"] = normalize_api_base(lm_kwargs["api_base"])

    class FinalChannelLM(dspy.LM):
        def _process_completion(self, response, merged_kwargs):
            outputs = super()._process_completion(response, merged_kwargs)
            cleaned = []
            for out in outputs:
                if isinstance(out, str):
                    out = final_channel(out)
                elif isinstance(out, dict) and isinstance(out.get("text"), str):
                    out = {**out, "text": final_channel(out["text"])}
                cleaned.append(out)
            return cleaned

    return FinalChannelLM(model, **lm_kwargs)
