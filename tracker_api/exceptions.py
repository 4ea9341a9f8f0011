class CleanerException(Exception):
    pass


class ValidationError(CleanerException):
    pass


class IssueKeyRangeError(CleanerException):
    pass


class TrackerConnectionError(CleanerException):
    pass


class OperationCancelled(CleanerException):
    pass


class RemoteError(CleanerException):
    def __init__(
        self,
        message: str,
        issue_key: str | None = None,
        attachment_id: str | None = None,
        file_name: str | None = None,
        status_code: int | None = None,
    ):
        self.issue_key = issue_key
        self.attachment_id = attachment_id
        self.file_name = file_name
        self.status_code = status_code
        context = [
            f'{name}={value}'
            for name, value in (('issue', issue_key), ('attachment', attachment_id), ('file', file_name))
            if value is not None
        ]
        if context:
            message = f'{message} ({", ".join(context)})'
        super().__init__(message)


class RateLimitError(RemoteError):
    def __init__(self, message: str, retry_after: float | None = None, **kwargs):
        super().__init__(message, status_code=429, **kwargs)
        self.retry_after = retry_after
