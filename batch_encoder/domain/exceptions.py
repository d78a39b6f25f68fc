"""
Defines custom exception types for the batch encoder.

These exceptions let each stage of the per-candidate pipeline report a
specific outcome. The orchestrator catches them locally, maps them to a
terminal state and a ledger disposition, and moves on to the next candidate.

All custom exceptions inherit from the base `BatchEncoderException`.
"""


class BatchEncoderException(Exception):
    """Base class for all custom exceptions in the batch encoder."""

    pass


# --- Media / Probe Specific Exceptions ---
class MediaFileException(BatchEncoderException):
    """
    Base class for exceptions related to media file analysis (probing with ffprobe).
    """

    pass


class ProbeError(MediaFileException):
    """
    Raised when ffprobe cannot read a file or reports non-numeric fields.

    During candidate selection a probe failure only excludes the file; it is
    not recorded in the failed ledger, so the file is looked at again on the
    next run.
    """

    pass


# --- Estimation Specific Exceptions ---
class EstimationException(BatchEncoderException):
    """Base class for exceptions raised while estimating the re-encoded size."""

    pass


class SampleEncodeFailure(EstimationException):
    """
    Raised when one of the short probe encodes fails.

    A partial estimate is never trusted, so a single failed sample aborts the
    estimation and the file is recorded as failed.
    """

    pass


# --- Encoding Specific Exceptions ---
class EncodingException(BatchEncoderException):
    """Base class for exceptions raised during the full encode and its validation."""

    pass


class FullEncodeFailure(EncodingException):
    """
    Raised when the full encode fails for good.

    This happens on any non-zero exit, timeout or fatal diagnostic, after at
    most one retry with subtitle streams disabled.
    """

    pass


class DurationMismatch(EncodingException):
    """
    Raised when the encoded output's duration differs from the source's by
    more than the tolerance, or when the output cannot be probed at all.
    """

    pass


class ReplacementSkipped(BatchEncoderException):
    """
    Raised when the encoded output is not smaller than the original.

    This is not an error but a control flow mechanism: the output is discarded,
    the original is kept, and the file is still recorded as encoded.
    """

    pass


# --- State Machine ---
class InvalidTransition(BatchEncoderException, ValueError):
    """Raised when an event is applied to a state that does not accept it."""

    pass
