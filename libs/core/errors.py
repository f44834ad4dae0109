from __future__ import annotations


class OptimizerError(Exception):
    def __init__(self, detail: str, status_code: int = 400) -> None:
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code


class IngestionError(OptimizerError):
    pass


class UnsupportedFormatError(IngestionError):
    def __init__(self, detail: str) -> None:
        super().__init__(detail, status_code=415)


class AnalysisServiceError(OptimizerError):
    def __init__(self, detail: str, status_code: int = 502) -> None:
        super().__init__(detail, status_code=status_code)


class ExportError(OptimizerError):
    def __init__(self, detail: str, status_code: int = 500) -> None:
        super().__init__(detail, status_code=status_code)


class SessionStateError(OptimizerError):
    def __init__(self, detail: str, status_code: int = 409) -> None:
        super().__init__(detail, status_code=status_code)


class SessionBusyError(SessionStateError):
    pass


class SuggestionNotFoundError(SessionStateError):
    def __init__(self, index: int) -> None:
        super().__init__(f"suggestion_not_found:{index}", status_code=404)
        self.index = index


class ViewTransitionError(SessionStateError):
    pass
