"""
errors.py — Failure taxonomy shared by the pipeline, the stores and the routes.

  MediaUnreadable     detection could not open or decode the media source
  PipelineFailure     a pipeline stage raised; wraps the stage name and cause
  StorageUnavailable  a history / credential store write (or connection) failed

A wrong PIN is not an error: CredentialStore.authenticate() returns False.
"""


class VeriSightError(Exception):
    """Base class for all errors raised by this package."""


class MediaUnreadable(VeriSightError):
    def __init__(self, reference: str, reason: str = "cannot be opened"):
        self.reference = reference
        self.reason = reason
        super().__init__(f"Media '{reference}' {reason}")


class PipelineFailure(VeriSightError):
    def __init__(self, stage: str, cause: BaseException):
        self.stage = stage
        self.cause = cause
        super().__init__(f"{stage} stage failed: {cause}")


class StorageUnavailable(VeriSightError):
    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Storage unavailable for '{key}': {reason}")
