"""
Verification Errors

Every failure is scoped to a single cast-vote call and leaves the
previously committed state untouched. Routers translate these into
HTTP responses; nothing here renders user-facing copy.
"""


class VerificationError(Exception):
    """Base class for all verification failures."""


class NotFound(VerificationError):
    """A referenced submission or contributor does not exist."""


class SubmissionNotFound(NotFound):
    def __init__(self, submission_id: str):
        self.submission_id = submission_id
        super().__init__(f"Submission {submission_id} not found")


class ContributorNotFound(NotFound):
    def __init__(self, contributor_id: str):
        self.contributor_id = contributor_id
        super().__init__(f"Contributor {contributor_id} not found")


class InvalidChoice(VerificationError):
    """Vote choice outside {yes, no}. Raised before any state is read or written."""

    def __init__(self, choice):
        self.choice = choice
        super().__init__(f"Invalid vote choice: {choice!r}. Must be 'yes' or 'no'")


class ConcurrencyConflict(VerificationError):
    """Optimistic-lock retries exhausted for a submission."""

    def __init__(self, submission_id: str, attempts: int):
        self.submission_id = submission_id
        self.attempts = attempts
        super().__init__(
            f"Submission {submission_id} was modified concurrently; gave up after {attempts} attempts"
        )


class PersistenceFailure(VerificationError):
    """Underlying store unavailable or failed. Transient from the caller's view."""
