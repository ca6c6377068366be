class OHLCProcessorError(Exception):
    pass


class OpenDataFileError(OHLCProcessorError):
    def __init__(self, path, reason):
        super().__init__(f"Open data file: {path}: {reason}")
        self.path = path


class ReadDataFileError(OHLCProcessorError):
    def __init__(self, path, reason):
        super().__init__(f"Failed to read data file: {path}: {reason}")
        self.path = path


class ReadMetaError(OHLCProcessorError):
    def __init__(self, path, reason):
        super().__init__(f"Failed to read data file metadata: {path}: {reason}")
        self.path = path


class MissingPricesDataError(OHLCProcessorError):
    def __init__(self):
        super().__init__("No prices data loaded")


class TaskJoinError(OHLCProcessorError):
    """A pipeline task died; the original exception is the `__cause__`."""


class ChannelClosedError(OHLCProcessorError):
    """Request channel no longer accepts submissions, or a reply can never arrive."""
