"""In-memory record of who claimed which option."""

from collections.abc import Iterable

from headcount_bot.domain.errors import DuplicateClaim, UnknownOption
from headcount_bot.domain.sessions import ClaimRecord, ParticipantClaim


class ReactionLedger:
    """Per-option ordered claims, at most one per participant per option."""

    def __init__(self, option_keys: Iterable[str]) -> None:
        self._claims: dict[str, list[ParticipantClaim]] = {
            key: [] for key in option_keys
        }

    def add(self, option_key: str, claim: ParticipantClaim) -> None:
        """Append a claim, rejecting a second claim by the same participant."""
        claims = self._claims.get(option_key)
        if claims is None:
            raise UnknownOption()
        if any(x.participant_id == claim.participant_id for x in claims):
            raise DuplicateClaim()
        claims.append(claim)

    def has_claim(self, option_key: str, participant_id: int) -> bool:
        return any(
            x.participant_id == participant_id for x in self._claims.get(option_key, [])
        )

    def count_for(self, option_key: str) -> int:
        return len(self._claims.get(option_key, []))

    def claims_for(self, option_key: str) -> tuple[ParticipantClaim, ...]:
        return tuple(self._claims.get(option_key, []))

    def all_claims(self) -> list[ClaimRecord]:
        """Flatten the ledger, option by option in insertion order."""
        return [
            ClaimRecord(
                option_key=key,
                participant_id=claim.participant_id,
                qualifiers=claim.qualifiers,
                correction_count=claim.correction_count,
            )
            for key, claims in self._claims.items()
            for claim in claims
        ]
