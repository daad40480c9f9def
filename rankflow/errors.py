class RankflowError(Exception):
    pass


class DirectoryError(RankflowError):
    pass


class EmptyInputError(RankflowError):
    pass


class ExportError(RankflowError):
    pass


class EmptyDataError(ExportError):
    pass


class ConfigurationError(RankflowError):
    pass


class ExtractionFailure(RankflowError):
    def __init__(self, message: str, provider: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
