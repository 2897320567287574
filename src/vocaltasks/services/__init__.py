"""Voice note parsing services.

This module exposes the heuristic resolvers, the provider adapters and the
note parser. Imports are lazy so that using the heuristics alone does not
pull in the HTTP and validation stack.
"""

from __future__ import annotations

from importlib import import_module
from typing import Any

_EXPORTS: dict[str, tuple[str, str]] = {
    # Result
    "ParsedNote": ("vocaltasks.services.note", "ParsedNote"),
    "NoteProvider": ("vocaltasks.services.note", "NoteProvider"),
    "DEFAULT_TIME": ("vocaltasks.services.note", "DEFAULT_TIME"),
    # Errors
    "NoteParsingError": ("vocaltasks.services.errors", "NoteParsingError"),
    "NoCredentialConfiguredError": ("vocaltasks.services.errors", "NoCredentialConfiguredError"),
    "ProviderUnavailableError": ("vocaltasks.services.errors", "ProviderUnavailableError"),
    "EmptyResponseError": ("vocaltasks.services.errors", "EmptyResponseError"),
    "MalformedResultError": ("vocaltasks.services.errors", "MalformedResultError"),
    "InternalInvariantFailure": ("vocaltasks.services.errors", "InternalInvariantFailure"),
    # Heuristics
    "normalize_text": ("vocaltasks.services.normalize", "normalize_text"),
    "DateResolver": ("vocaltasks.services.dates", "DateResolver"),
    "TimeResolver": ("vocaltasks.services.times", "TimeResolver"),
    "build_title": ("vocaltasks.services.summarizer", "build_title"),
    "build_note": ("vocaltasks.services.summarizer", "build_note"),
    "HeuristicExtractor": ("vocaltasks.services.heuristics", "HeuristicExtractor"),
    # Timezone
    "TimezoneService": ("vocaltasks.services.timezone", "TimezoneService"),
    "get_timezone_service": ("vocaltasks.services.timezone", "get_timezone_service"),
    # Prompt
    "build_prompt": ("vocaltasks.services.prompts", "build_prompt"),
    # Providers
    "LLMClient": ("vocaltasks.services.llm_client", "LLMClient"),
    "LLMProvider": ("vocaltasks.services.llm_client", "LLMProvider"),
    "ProviderConfig": ("vocaltasks.services.llm_client", "ProviderConfig"),
    "GeminiProvider": ("vocaltasks.services.llm_client", "GeminiProvider"),
    "OpenAIProvider": ("vocaltasks.services.llm_client", "OpenAIProvider"),
    "get_llm_client": ("vocaltasks.services.llm_client", "get_llm_client"),
    # Orchestrator
    "NoteParser": ("vocaltasks.services.note_parser", "NoteParser"),
    "get_note_parser": ("vocaltasks.services.note_parser", "get_note_parser"),
    "parse_note": ("vocaltasks.services.note_parser", "parse_note"),
}

__all__ = list(_EXPORTS.keys())


def __getattr__(name: str) -> Any:
    if name not in _EXPORTS:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    module_name, attr_name = _EXPORTS[name]
    module = import_module(module_name)
    value = getattr(module, attr_name)
    globals()[name] = value
    return value


def __dir__() -> list[str]:
    return sorted(list(globals().keys()) + list(_EXPORTS.keys()))
