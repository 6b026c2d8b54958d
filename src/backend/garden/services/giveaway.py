import random
from collections.abc import Sequence

from garden.models.participant import Participant
from garden.services.errors import NotFound
from garden.services.progress_merge import MAX_LEVEL


def eligible_participants(participants: Sequence[Participant]) -> list[Participant]:
    return [participant for participant in participants if participant.progress_level == MAX_LEVEL]


def draw_winner(participants: Sequence[Participant], rng: random.Random | None = None) -> Participant:
    eligible = eligible_participants(participants)
    if not eligible:
        raise NotFound("No eligible participants")
    chooser = rng or random.SystemRandom()
    return chooser.choice(eligible)
