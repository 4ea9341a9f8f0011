from tracker_api.adapters import AbstractTrackerAdapter, BacklogAPIAdapter, JiraAPIAdapter, create_adapter
from tracker_api.exceptions import (
    CleanerException,
    IssueKeyRangeError,
    OperationCancelled,
    RateLimitError,
    RemoteError,
    TrackerConnectionError,
    ValidationError,
)
from tracker_api.models import Attachment, Comment, Issue, KeyRange, Project
