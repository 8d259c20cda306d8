"""Observability helpers."""

from taskviewer.observability.otel import (
    initialize,
    shutdown,
    start_span,
    record_watch_event,
    record_broadcast,
    record_mutation,
    record_parser_skip,
    record_metadata_rebuild,
)

__all__ = [
    "initialize",
    "shutdown",
    "start_span",
    "record_watch_event",
    "record_broadcast",
    "record_mutation",
    "record_parser_skip",
    "record_metadata_rebuild",
]
