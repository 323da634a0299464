import io
import re
from datetime import datetime

from pypdf import PdfReader
from pypdf.errors import PyPdfError

from services.document_processing.readers.DocumentReaderInterface import DocumentReaderInterface
from services.document_processing.text_utils import split_text_proportionally, split_words
from shared.exceptions.errors import CorruptFileError, UnsupportedFormatError
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import (
    Coordinates,
    DocumentMetadata,
    Page,
    PageDimensions,
    ProgressCallback,
    TextBlock,
)

PDF_SIGNATURE = b"%PDF"
DEFAULT_MAX_PAGES = 1000


class DocumentReaderPdf(DocumentReaderInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self.max_pages = int(helper_config.get_number_val("DOC_MAX_PAGES", default=DEFAULT_MAX_PAGES))
        self.extract_coordinates = helper_config.get_bool_val("DOC_EXTRACT_COORDINATES", default=True)

    ##########################################
    ################ GETTER ##################
    ##########################################

    def _get_engine_name(self) -> str:
        return "Pdf"

    def get_supported_extensions(self) -> list[str]:
        return ["pdf"]

    ##########################################
    ############### CHECKER ##################
    ##########################################

    def _check_signature(self, buffer: bytes, file_name: str) -> None:
        if not buffer.startswith(PDF_SIGNATURE):
            raise UnsupportedFormatError(file_name or "buffer", ["pdf"])

    ##########################################
    ################ PARSING #################
    ##########################################

    def _parse(self, buffer: bytes, file_name: str, on_progress: ProgressCallback | None) -> tuple[DocumentMetadata, list[Page]]:
        try:
            reader = PdfReader(io.BytesIO(buffer))
            if reader.is_encrypted and not reader.decrypt(""):
                raise CorruptFileError(file_name, "document is encrypted")
            page_count = len(reader.pages)
        except (PyPdfError, ValueError, KeyError, TypeError) as e:
            raise CorruptFileError(file_name, str(e)) from e

        if page_count > self.max_pages:
            self.logging.warning(
                "PDF '%s' has %d pages, only the first %d are read.", file_name, page_count, self.max_pages
            )
        total = min(page_count, self.max_pages)

        metadata = self._extract_metadata(reader, file_name, len(buffer), page_count)
        pages = self._extract_pages(reader, file_name, total, on_progress)
        return metadata, pages

    def _extract_pages(self, reader: PdfReader, file_name: str, total: int, on_progress: ProgressCallback | None) -> list[Page]:
        texts: list[str | None] = []
        blocks: list[list[TextBlock]] = []
        dimensions: list[PageDimensions] = []
        failed = 0

        for index in range(total):
            page = reader.pages[index]
            dimensions.append(self._page_dimensions(page))
            page_blocks: list[TextBlock] = []
            try:
                visitor = self._make_block_visitor(page_blocks) if self.extract_coordinates else None
                texts.append(page.extract_text(visitor_text=visitor) or "")
            except Exception as e:
                # pypdf raises a wide range of errors on damaged content streams
                self.logging.debug("Text extraction failed for page %d of '%s': %s", index + 1, file_name, e)
                texts.append(None)
                failed += 1
            blocks.append(page_blocks)
            self._report_page(on_progress, index + 1, total)

        if failed == total and total > 0:
            raise CorruptFileError(file_name, "no page text could be extracted")

        if failed:
            # no usable per-page array; spread the recovered text evenly over the pages
            self.logging.warning(
                "Per-page text unavailable for %d of %d pages of '%s', splitting text proportionally.",
                failed, total, file_name,
            )
            whole = "\n".join(t for t in texts if t)
            texts = split_text_proportionally(whole, total)
            blocks = [[] for _ in range(total)]

        return [
            Page(
                page_number=index + 1,
                text=text or "",
                dimensions=dimensions[index],
                text_blocks=blocks[index],
                character_count=len(text or ""),
                word_count=len(split_words(text or "")),
            )
            for index, text in enumerate(texts)
        ]

    def _make_block_visitor(self, sink: list[TextBlock]):
        def visitor(text, cm, tm, font_dict, font_size):
            if not text or not text.strip():
                return
            # text space origin mapped through the current transformation matrix
            x = tm[4] * cm[0] + tm[5] * cm[2] + cm[4]
            y = tm[4] * cm[1] + tm[5] * cm[3] + cm[5]
            size = float(font_size or 0) * abs(float(tm[3] or 1))
            family = None
            if font_dict:
                family = str(font_dict.get("/BaseFont", "")).lstrip("/") or None
            sink.append(
                TextBlock(
                    content=text,
                    coordinates=Coordinates(x=float(x), y=float(y), width=len(text) * size * 0.5, height=size),
                    font_size=size or None,
                    font_family=family,
                )
            )
        return visitor

    def _page_dimensions(self, page) -> PageDimensions:
        try:
            box = page.mediabox
            return PageDimensions(width=float(box.width), height=float(box.height))
        except (KeyError, ValueError, TypeError):
            return PageDimensions()

    ##########################################
    ################ METADATA ################
    ##########################################

    def _extract_metadata(self, reader: PdfReader, file_name: str, file_size: int, page_count: int) -> DocumentMetadata:
        try:
            info = reader.metadata
        except (PyPdfError, ValueError, KeyError) as e:
            self.logging.warning("Could not read document info of '%s': %s", file_name, e)
            info = None

        def field(key: str) -> str | None:
            if info is None:
                return None
            value = info.get(key)
            if value is None:
                return None
            return str(value).strip() or None

        keywords_raw = field("/Keywords") or ""
        return DocumentMetadata(
            title=field("/Title") or _file_stem(file_name) or "unknown",
            author=field("/Author"),
            creation_date=self._safe_date(info, "creation_date"),
            modification_date=self._safe_date(info, "modification_date"),
            page_count=page_count,
            file_size=file_size,
            format_version=self._pdf_version(reader),
            keywords=[k.strip() for k in re.split(r"[,;]", keywords_raw) if k.strip()],
            subject=field("/Subject"),
            creator=field("/Creator"),
            producer=field("/Producer"),
        )

    def _safe_date(self, info, attribute: str) -> datetime | None:
        if info is None:
            return None
        try:
            return getattr(info, attribute)
        except (ValueError, TypeError):
            return None

    def _pdf_version(self, reader: PdfReader) -> str | None:
        header = reader.pdf_header or ""
        return header.replace("%PDF-", "").strip() or None


def _file_stem(file_name: str) -> str:
    base = file_name.replace("\\", "/").rsplit("/", 1)[-1]
    return base.rsplit(".", 1)[0] if "." in base else base
