from abc import ABC, abstractmethod
import asyncio
import time

from services.document_processing.progress import notify_progress
from services.document_processing.text_utils import format_file_size
from shared.exceptions.errors import EmptyFileError, FileTooLargeError, UnsupportedFormatError
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import DocumentMetadata, Page, ProgressCallback, ProgressEvent, ReadResult

DEFAULT_MAX_FILE_SIZE = 50 * 1024 * 1024


def get_extension(file_name: str) -> str:
    """Return the lowercase extension without dot ("Report.PDF" -> "pdf")."""
    _, dot, ext = file_name.rpartition(".")
    return ext.lower() if dot else ""


class DocumentReaderInterface(ABC):
    """Turns a raw byte buffer into pages and document metadata.

    Subclasses implement the format check and the parsing; validation,
    timing and totals live here.
    """

    def __init__(self, helper_config: HelperConfig):
        self.logging = helper_config.get_logger()
        self._helper_config = helper_config
        self.max_file_size = int(helper_config.get_number_val("DOC_MAX_FILE_SIZE", default=DEFAULT_MAX_FILE_SIZE))

    ##########################################
    ################ GETTER ##################
    ##########################################

    def get_engine_name(self) -> str:
        return self._get_engine_name().lower()

    @abstractmethod
    def _get_engine_name(self) -> str:
        """
        Returns the name of the reader engine. E.g. "pdf"
        """
        pass

    @abstractmethod
    def get_supported_extensions(self) -> list[str]:
        """
        Returns the lowercase file extensions handled by this reader, without dot.
        """
        pass

    ##########################################
    ############### CHECKER ##################
    ##########################################

    def validate(self, buffer: bytes, file_name: str) -> None:
        """Validate a buffer before parsing.

        Order: size limit, emptiness, format signature, extension.

        Raises:
            FileTooLargeError: If the buffer exceeds the maximum size.
            EmptyFileError: If the buffer is empty.
            UnsupportedFormatError: If the signature or extension does not match.
        """
        if len(buffer) > self.max_file_size:
            raise FileTooLargeError(
                len(buffer), self.max_file_size, format_file_size(len(buffer)), format_file_size(self.max_file_size)
            )
        if not buffer:
            raise EmptyFileError(file_name)
        self._check_signature(buffer, file_name)
        if file_name and get_extension(file_name) not in self.get_supported_extensions():
            raise UnsupportedFormatError(file_name, self.get_supported_extensions())

    def _check_signature(self, buffer: bytes, file_name: str) -> None:
        """Check the magic header of the buffer. Formats without one accept everything."""
        return None

    ##########################################
    ################ PARSING #################
    ##########################################

    @abstractmethod
    def _parse(self, buffer: bytes, file_name: str, on_progress: ProgressCallback | None) -> tuple[DocumentMetadata, list[Page]]:
        """Parse a validated buffer. Runs in a worker thread.

        Raises:
            CorruptFileError: If the buffer cannot be parsed.
        """
        pass

    async def read(self, buffer: bytes, file_name: str = "", on_progress: ProgressCallback | None = None) -> ReadResult:
        """Validate and parse a document.

        Args:
            buffer (bytes): Raw file content.
            file_name (str): Original file name, used for the extension check and as title fallback.
            on_progress (ProgressCallback | None): Optional advisory progress consumer.

        Returns:
            ReadResult: Metadata, pages, totals and the processing time in seconds.
        """
        started = time.perf_counter()
        self.validate(buffer, file_name)
        notify_progress(on_progress, ProgressEvent(stage="parsing", percent=0.0), self.logging)

        metadata, pages = await asyncio.to_thread(self._parse, buffer, file_name, on_progress)

        result = ReadResult(
            metadata=metadata,
            pages=pages,
            total_character_count=sum(p.character_count for p in pages),
            total_word_count=sum(p.word_count for p in pages),
            processing_time=time.perf_counter() - started,
        )
        self.logging.debug(
            "Read '%s' with %s reader: %d pages, %d characters in %.3fs",
            file_name, self.get_engine_name(), len(pages), result.total_character_count, result.processing_time,
        )
        return result

    def _report_page(self, on_progress: ProgressCallback | None, current: int, total: int) -> None:
        notify_progress(
            on_progress,
            ProgressEvent(
                stage="parsing",
                percent=round(current / total * 100, 1) if total else 100.0,
                current_page=current,
                total_pages=total,
            ),
            self.logging,
        )
