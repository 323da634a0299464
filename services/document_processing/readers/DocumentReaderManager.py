from services.document_processing.readers.DocumentReaderInterface import DocumentReaderInterface, get_extension
from shared.exceptions.errors import UnsupportedFormatError
from shared.helper.HelperConfig import HelperConfig

DEFAULT_READER_ENGINES = ["pdf", "text"]


class DocumentReaderManager:
    """
    Registry of document readers keyed by file extension.

    Readers are loaded from DOC_READER_ENGINES (default "[pdf,text]"). A
    format without a registered reader is unsupported.
    """

    def __init__(self, helper_config: HelperConfig):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self._readers: dict[str, DocumentReaderInterface] = {}
        for reader in self._initialize_readers():
            self.register_reader(reader)

    def _get_engines_from_env(self) -> list[str]:
        engines = self.helper_config.get_list_val("DOC_READER_ENGINES", default=DEFAULT_READER_ENGINES)
        if not engines:
            raise ValueError("No document reader engines specified in configuration.")
        return [engine.strip().lower().capitalize() for engine in engines]

    def _initialize_readers(self) -> list[DocumentReaderInterface]:
        """
        Imports services.document_processing.readers.<engine>.DocumentReader<Engine> for every engine.

        Raises:
            ValueError: If an engine has no reader implementation.
        """
        readers: list[DocumentReaderInterface] = []
        for engine in self._get_engines_from_env():
            class_name = f"DocumentReader{engine}"
            try:
                module = __import__(
                    f"services.document_processing.readers.{engine.lower()}.{class_name}",
                    fromlist=[class_name],
                )
                reader_class = getattr(module, class_name)
            except (ImportError, AttributeError) as e:
                raise ValueError(f"Unsupported document reader engine specified: '{engine}'. Error: {e}")
            readers.append(reader_class(helper_config=self.helper_config))
            self.logging.debug("Instantiated document reader for engine: %s", engine)
        return readers

    def register_reader(self, reader: DocumentReaderInterface) -> None:
        """Register a reader for all of its extensions, replacing earlier registrations."""
        for ext in reader.get_supported_extensions():
            self._readers[ext.lower().lstrip(".")] = reader

    def get_supported_extensions(self) -> list[str]:
        return sorted(self._readers)

    def is_supported(self, file_name: str) -> bool:
        return get_extension(file_name) in self._readers

    def get_reader(self, file_name_or_extension: str) -> DocumentReaderInterface:
        """Return the reader for a file name or a bare extension.

        Raises:
            UnsupportedFormatError: If no reader is registered for the extension.
        """
        ext = get_extension(file_name_or_extension) or file_name_or_extension.lower()
        reader = self._readers.get(ext)
        if reader is None:
            raise UnsupportedFormatError(file_name_or_extension, self.get_supported_extensions())
        return reader
