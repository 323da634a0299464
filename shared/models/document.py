"""Pydantic models for documents produced by the document readers.

Hierarchy:
  DocumentMetadata  - document-level info, extracted once per source document.
  Page              - one physical (PDF) or synthetic (TXT/MD) page.
  ReadResult        - the full output of a reader.
  ProgressEvent     - advisory progress notification emitted while reading or chunking.
"""

from datetime import datetime
from typing import Callable, Literal

from pydantic import BaseModel, ConfigDict


class Coordinates(BaseModel):
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0


class TextBlock(BaseModel):
    """A run of text on a page with its bounding box and font hints."""

    content: str
    coordinates: Coordinates = Coordinates()
    font_size: float | None = None
    font_family: str | None = None


class PageDimensions(BaseModel):
    width: float = 595.0
    height: float = 842.0


class DocumentMetadata(BaseModel):
    """Document-level metadata. Immutable after extraction.

    Attributes:
        title:              Document title, falls back to the file stem.
        author:             Author from the document info, if any.
        creation_date:      Creation timestamp from the document info.
        modification_date:  Modification timestamp from the document info.
        page_count:         Number of pages (synthetic pages for text files).
        file_size:          Size of the source buffer in bytes.
        format_version:     PDF header version or detected text encoding.
        keywords:           Keyword list.
        subject:            Subject line or first sentence.
        creator:            Producing application.
        producer:           PDF library that wrote the file.
    """

    model_config = ConfigDict(frozen=True)

    title: str = "unknown"
    author: str | None = None
    creation_date: datetime | None = None
    modification_date: datetime | None = None
    page_count: int = 0
    file_size: int = 0
    format_version: str | None = None
    keywords: list[str] = []
    subject: str | None = None
    creator: str | None = None
    producer: str | None = None


class Page(BaseModel):
    page_number: int
    text: str
    dimensions: PageDimensions = PageDimensions()
    text_blocks: list[TextBlock] = []
    character_count: int = 0
    word_count: int = 0


class ReadResult(BaseModel):
    metadata: DocumentMetadata
    pages: list[Page]
    total_character_count: int
    total_word_count: int
    processing_time: float


ProgressStage = Literal[
    "validating", "reading", "parsing", "chunking", "embedding", "upserting", "completed", "failed"
]


class ProgressEvent(BaseModel):
    """Advisory progress notification. Consumers may ignore it entirely."""

    stage: ProgressStage
    percent: float = 0.0
    current_page: int | None = None
    total_pages: int | None = None
    message: str | None = None


ProgressCallback = Callable[[ProgressEvent], None]
