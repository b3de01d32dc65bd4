"""Service layer: event save lifecycle and its collaborators."""

from .events import EventNotFound, EventService
from .hash_tags import HashTagService
from .markdown import MarkdownService, RenderedDescription

__all__ = [
    "EventNotFound",
    "EventService",
    "HashTagService",
    "MarkdownService",
    "RenderedDescription",
]
