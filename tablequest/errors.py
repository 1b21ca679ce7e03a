"""Error types raised by the practice engine and the profile store.

Every error here is recoverable: callers report it and carry on with the
current in-memory state.
"""


class TableQuestError(Exception):
    """Base class for all application errors."""

    code = "tablequest_error"


class InvalidAnswerInput(TableQuestError, ValueError):
    """The submitted answer is not a whole number. Ask again."""

    code = "invalid_answer"


class NoActiveQuestion(TableQuestError):
    """An answer arrived while no question was pending."""

    code = "no_active_question"


class NoActiveSession(TableQuestError):
    """A practice operation was requested outside an in-progress session."""

    code = "no_active_session"


class ProfileNotFound(TableQuestError, LookupError):
    """No profile exists with the given id."""

    code = "profile_not_found"


class NoActiveProfile(TableQuestError):
    """The operation needs an active profile and none is selected."""

    code = "no_active_profile"


class PersistenceWriteFailure(TableQuestError):
    """Progress could not be written; the caller keeps in-memory state."""

    code = "persistence_write_failure"
