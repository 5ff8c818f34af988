from takeboard import db  # noqa: F401 - imported for model imports

from .achievement import Achievement
from .contest import Contest, contests_packs
from .event import Event
from .pack import Pack, packs_events
from .profile import Profile
from .prop import Prop, props_teams
from .take import Take
from .take_facts import take_facts
from .team import Team

__all__ = [
    "Profile",
    "Team",
    "Event",
    "Pack",
    "Prop",
    "Take",
    "Contest",
    "Achievement",
    "packs_events",
    "props_teams",
    "contests_packs",
    "take_facts",
]
