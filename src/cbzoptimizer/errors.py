"""Exception hierarchy for cbzoptimizer.

Page decode failures are not exceptions: the splitter reports them as a
result and the converter keeps the page unchanged. Everything here is fatal
for the chapter, the file, or the invocation that raised it.
"""


class CBZOptimizerError(Exception):
    """Base class for all cbzoptimizer errors"""


class OversizedPageError(CBZOptimizerError):
    """A page is taller than the target codec allows and splitting is disabled"""

    def __init__(self, index: int, height: int, max_height: int):
        self.index = index
        self.height = height
        self.max_height = max_height
        super().__init__(
            f"page[{index}] height {height} exceeds maximum height {max_height} "
            f"of the target format (enable --split to slice it)"
        )


class EncodeError(CBZOptimizerError):
    """The encoder failed to produce output for a page or band"""


class ArchiveReadError(CBZOptimizerError):
    """The source archive is missing, unreadable or malformed"""


class ArchiveWriteError(CBZOptimizerError):
    """The output archive could not be written"""


class ConversionTimeoutError(CBZOptimizerError, TimeoutError):
    """The chapter's deadline passed before conversion finished"""


class ConversionCancelledError(CBZOptimizerError):
    """The chapter's context was cancelled before conversion finished"""


class PathValidationError(CBZOptimizerError):
    """An input path is missing or of the wrong kind"""


class ConverterPreparationError(CBZOptimizerError):
    """The encoder is unavailable or at an unsupported version"""


class UnsupportedFormatError(CBZOptimizerError, ValueError):
    """The requested target format is not known"""


class FileProcessingError(CBZOptimizerError):
    """Wraps a failure while processing one file in watch mode"""

    def __init__(self, path, cause: Exception):
        self.path = path
        super().__init__(f"error processing file {path}: {cause}")
