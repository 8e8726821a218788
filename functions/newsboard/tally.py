"""
Poll tally: turns the vote rows of one poll into a ranked leaderboard.

Pure computation. Nothing here touches the database; callers fetch the votes
for a poll and pass them in together with the poll's roster.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence


@dataclass(frozen=True)
class VoteRecord:
    poll_id: str
    voter_id: str
    candidate: str
    created_at: float
    email: Optional[str] = field(default=None, compare=False)

    def as_dict(self) -> dict:
        return {
            "poll_id": self.poll_id,
            "voter_id": self.voter_id,
            "candidate": self.candidate,
            "created_at": self.created_at,
            "email": self.email,
        }


@dataclass(frozen=True)
class RankedEntry:
    candidate: str
    votes: int
    percentage: float


@dataclass(frozen=True)
class VoterStatus:
    has_voted: bool = False
    candidate: Optional[str] = None


@dataclass(frozen=True)
class TallyResult:
    entries: tuple[RankedEntry, ...]
    total_votes: int
    voter: VoterStatus = field(default_factory=VoterStatus)

    def as_dict(self) -> dict:
        return {
            "entries": [
                {
                    "candidate": entry.candidate,
                    "votes": entry.votes,
                    "percentage": entry.percentage,
                }
                for entry in self.entries
            ],
            "total_votes": self.total_votes,
            "has_voted": self.voter.has_voted,
            "voted_for": self.voter.candidate,
        }


def voter_status(votes: Iterable[VoteRecord], voter_id: Optional[str]) -> VoterStatus:
    """Return whether ``voter_id`` already has a vote among ``votes``."""
    if not voter_id:
        return VoterStatus()
    mine = [vote for vote in votes if vote.voter_id == voter_id]
    if not mine:
        return VoterStatus()
    # Earliest vote wins if the store ever returns more than one.
    first = min(mine, key=lambda vote: (vote.created_at, vote.candidate))
    return VoterStatus(has_voted=True, candidate=first.candidate)


def tally(
    roster: Sequence[str],
    votes: Iterable[VoteRecord],
    voter_id: Optional[str] = None,
) -> TallyResult:
    """
    Rank every roster candidate by vote count.

    Votes naming a candidate outside ``roster`` are ignored entirely: they
    count toward neither a candidate nor the total. Ties keep roster order.
    An empty roster yields an empty ranking.
    """
    votes = list(votes)
    candidates = list(dict.fromkeys(roster))
    counts = Counter(vote.candidate for vote in votes)

    per_candidate = [(candidate, counts.get(candidate, 0)) for candidate in candidates]
    total = sum(count for _, count in per_candidate)

    entries = [
        RankedEntry(
            candidate=candidate,
            votes=count,
            percentage=(100.0 * count / total) if total > 0 else 0.0,
        )
        for candidate, count in per_candidate
    ]
    # sorted() is stable, so equal counts stay in roster order.
    ranked = sorted(entries, key=lambda entry: -entry.votes)

    return TallyResult(
        entries=tuple(ranked),
        total_votes=total,
        voter=voter_status(votes, voter_id),
    )
