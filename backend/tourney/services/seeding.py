"""
Seeding: order approved registrations before the bracket is built.

Seeded entries come first in ascending seed order (1 = strongest); unseeded
entries follow in registration order. Python's sort is stable, so ties and
unseeded entries keep the order they were given in.
"""

import math
from dataclasses import dataclass
from typing import Iterable, List, Optional


@dataclass
class Registration:
    team_id: str
    seed: Optional[int] = None


def _seed_key(reg: Registration) -> float:
    return reg.seed if reg.seed is not None else math.inf


def seed_entrants(registrations: Iterable[Registration]) -> List[str]:
    """Return entrant references in seeding order."""
    return [reg.team_id for reg in sorted(registrations, key=_seed_key)]
