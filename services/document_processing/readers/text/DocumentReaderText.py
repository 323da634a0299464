import re

from services.document_processing.readers.DocumentReaderInterface import DocumentReaderInterface, get_extension
from services.document_processing.text_utils import (
    DEFAULT_ENCODINGS,
    detect_encoding,
    extract_keywords,
    split_into_synthetic_pages,
    split_sentences,
    split_words,
)
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import Coordinates, DocumentMetadata, Page, ProgressCallback, TextBlock

DEFAULT_TEXT_PAGE_SIZE = 2000
LINE_HEIGHT = 12.0
MAX_SUBJECT_LENGTH = 200

_MD_HEADING = re.compile(r"^\s{0,3}#{1,6}\s+(.+?)\s*#*\s*$", re.MULTILINE)


class DocumentReaderText(DocumentReaderInterface):
    """Reader for plain text and Markdown files.

    Text is decoded with the first fitting encoding of DOC_ENCODINGS and cut
    into synthetic pages of DOC_TEXT_PAGE_SIZE characters so that text files
    flow through the same page-based pipeline as PDFs.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self.encodings = helper_config.get_list_val("DOC_ENCODINGS", default=DEFAULT_ENCODINGS)
        self.page_size = int(helper_config.get_number_val("DOC_TEXT_PAGE_SIZE", default=DEFAULT_TEXT_PAGE_SIZE))

    def _get_engine_name(self) -> str:
        return "Text"

    def get_supported_extensions(self) -> list[str]:
        return ["txt", "md"]

    def _parse(self, buffer: bytes, file_name: str, on_progress: ProgressCallback | None) -> tuple[DocumentMetadata, list[Page]]:
        encoding, text = detect_encoding(buffer, self.encodings)
        if encoding != self.encodings[0]:
            self.logging.info("Decoded '%s' as %s.", file_name, encoding)

        page_texts = split_into_synthetic_pages(text, self.page_size)
        total = len(page_texts)
        pages: list[Page] = []
        for index, page_text in enumerate(page_texts):
            pages.append(
                Page(
                    page_number=index + 1,
                    text=page_text,
                    text_blocks=self._line_blocks(page_text),
                    character_count=len(page_text),
                    word_count=len(split_words(page_text)),
                )
            )
            self._report_page(on_progress, index + 1, total)

        metadata = DocumentMetadata(
            title=self._title(text, file_name),
            page_count=total,
            file_size=len(buffer),
            format_version=encoding,
            keywords=extract_keywords(text),
            subject=self._subject(text),
        )
        return metadata, pages

    def _line_blocks(self, page_text: str) -> list[TextBlock]:
        blocks: list[TextBlock] = []
        for line_no, line in enumerate(page_text.splitlines()):
            if not line.strip():
                continue
            blocks.append(
                TextBlock(
                    content=line,
                    coordinates=Coordinates(x=0.0, y=line_no * LINE_HEIGHT, width=float(len(line)), height=LINE_HEIGHT),
                )
            )
        return blocks

    def _title(self, text: str, file_name: str) -> str:
        if get_extension(file_name) == "md":
            heading = _MD_HEADING.search(text)
            if heading:
                return heading.group(1)
        base = file_name.replace("\\", "/").rsplit("/", 1)[-1]
        return base.rsplit(".", 1)[0] if "." in base else (base or "unknown")

    def _subject(self, text: str) -> str | None:
        sentences = split_sentences(text[: MAX_SUBJECT_LENGTH * 10])
        if not sentences:
            return None
        return sentences[0][:MAX_SUBJECT_LENGTH]
