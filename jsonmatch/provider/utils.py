from __future__ import annotations


def infer_provider_from_model(model: str | None) -> str | None:
    """Best-effort mapping from a model id to the provider that serves it."""

    text = (model or "").strip().lower()
    if not text:
        return None
    if text.startswith("mock"):
        return "mock"
    if text.startswith("claude") or "anthropic" in text:
        return "anthropic"
    if "gpt" in text or "openai" in text or text.startswith(("o1", "o3", "o4")):
        return "openai"
    return None


def truncate_for_log(text: str | None, limit: int = 4000) -> str:
    return (text or "")[:limit]


__all__ = ["infer_provider_from_model", "truncate_for_log"]
