"""
Error taxonomy.

Detection failures (ReviewError) and feedback failures (FeedbackError)
are separate branches so the HTTP layer and chat integrations can tell
"the page could not be reviewed" apart from "your feedback was not
recorded".
"""


class ComplianceBotError(Exception):
    """Base class for all ComplianceBot errors."""


# --- Detection path ---

class ReviewError(ComplianceBotError):
    """The generative review could not produce a usable result."""


class MalformedResponseError(ReviewError):
    """The model response body could not be parsed as structured data."""

    def __init__(self, reason: str):
        super().__init__(f"Reviewer returned a malformed response: {reason}")
        self.reason = reason


class ReviewTimeoutError(ReviewError):
    """The model call exceeded the configured timeout."""


class ReviewUnavailableError(ReviewError):
    """The model provider failed or is temporarily disabled."""


# --- Feedback path ---

class FeedbackError(ComplianceBotError):
    """A feedback update was rejected."""


class ExampleNotFoundError(FeedbackError, LookupError):
    """No learning example exists with the given id."""

    def __init__(self, example_id: str):
        super().__init__(f"Learning example {example_id} not found")
        self.example_id = example_id


class InvalidFeedbackError(FeedbackError, ValueError):
    """Feedback value is not one of correct / incorrect / needs_review."""


class FeedbackAlreadyRecordedError(FeedbackError):
    """The example already carries a human verdict."""

    def __init__(self, example_id: str, feedback: str):
        super().__init__(
            f"Learning example {example_id} already has feedback '{feedback}'"
        )
        self.example_id = example_id
        self.feedback = feedback
