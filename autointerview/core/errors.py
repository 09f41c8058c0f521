"""
Error taxonomy for AutoInterview.

Every adapter failure is recoverable. Adapters raise these at their
boundary; the session controller catches them and turns them into
snapshot fields.
"""


class InterviewError(Exception):
    """Base class for adapter failures."""
    pass


class DeviceDenied(InterviewError):
    """The capture device is unavailable or access was refused."""
    pass


class NarrationUnavailable(InterviewError):
    """No text-to-speech service can be used."""
    pass


class QuestionFetchFailed(InterviewError):
    """The question source failed or returned a malformed payload."""
    pass


class UploadFailed(InterviewError):
    """An answer clip could not be delivered to the answer sink."""
    pass
