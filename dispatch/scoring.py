#Purpose: Ranking/selection among candidates (the "who is best" layer).
#Takes candidates (already eligible) with fairness score and pickup distance.
#Produces an ordered list, best first:
#highest fairness score wins
#equal scores: nearest pickup wins
#equal score and distance: lowest driver id wins (deterministic, never iteration order)

from typing import Iterable, List, Optional

from .models import Candidate


def rank_candidates(candidates: Iterable[Candidate]) -> List[Candidate]:
    return sorted(
        candidates,
        key=lambda candidate: (-candidate.score, candidate.distance_km, candidate.driver_id),
    )


def select_winner(candidates: Iterable[Candidate]) -> Optional[Candidate]:
    ranked = rank_candidates(candidates)
    return ranked[0] if ranked else None
