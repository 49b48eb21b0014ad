"""Errors raised by the headcount core."""


class HeadcountError(Exception):
    """Base class for headcount errors carrying a user-facing reason."""

    default_reason = "An unknown error occurred."

    def __init__(self, reason: str | None = None) -> None:
        self.reason = reason or self.default_reason
        super().__init__(self.reason)


class EnvironmentUnavailable(HeadcountError):
    """The section's channels or eligibility role could not be resolved."""

    default_reason = (
        "The headcount channels or the verified role for this section are not "
        "available."
    )


class UnknownDungeon(HeadcountError):
    """The requested dungeon is neither built in nor defined for the section."""

    default_reason = "That dungeon does not exist in this section."


class ClaimError(HeadcountError):
    """A claim attempt was rejected; the session is unchanged."""


class ClaimsClosed(ClaimError):
    default_reason = "This headcount is no longer accepting reactions."


class NotEligible(ClaimError):
    default_reason = "You must be a verified member of this section to react."


class UnknownOption(ClaimError):
    default_reason = "That option is not part of this headcount."


class DuplicateClaim(ClaimError):
    default_reason = "You have already selected this!"


class ParticipantBusy(ClaimError):
    default_reason = (
        "You are in the process of confirming a reaction. Finish or cancel that "
        "confirmation before trying again."
    )


class ControlError(HeadcountError):
    """An operator control action was rejected."""


class NotAuthorized(ControlError):
    default_reason = "You are not allowed to manage this headcount."


class InvalidForState(ControlError):
    default_reason = "That action is not available for this headcount right now."


class ActionNotConfirmed(ControlError):
    default_reason = "The action was not confirmed."


class OperatorBusy(ControlError):
    default_reason = (
        "You are already confirming something on this headcount. Answer that "
        "prompt first."
    )


class PersistenceFailure(HeadcountError):
    """A snapshot write or read failed."""

    default_reason = "Failed to save the headcount."


class ArtifactMissing(HeadcountError):
    """A rendered headcount message no longer exists."""

    default_reason = "The headcount message no longer exists."


class DuplicateSession(HeadcountError):
    """A live session with the same id is already registered."""

    default_reason = "A headcount with this id is already running."
