"""Step Catalog.

Ordered, immutable list of step definitions supplied to the wizard engine.
Step definitions are fixed at build time; adding, removing or reordering
steps is a deployment change, never a runtime one.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from .errors import UnknownField, UnknownStep


class StepIcon(str, Enum):
    """Icons a step can be rendered with."""
    BRIEFCASE = "briefcase"
    PALETTE = "palette"
    USERS = "users"
    HEART = "heart"
    HOME = "home"
    TREES = "trees"
    SETTINGS = "settings"


@dataclass(frozen=True)
class StepDefinition:
    """A single page of the wizard and the field keys it owns."""
    id: str
    title: str
    fields: Tuple[str, ...]
    description: str = ""
    icon: StepIcon = StepIcon.HOME

    def __post_init__(self):
        if not self.id:
            raise ValueError("Step id must be a non-empty string")
        if len(set(self.fields)) != len(self.fields):
            raise ValueError(f"Step '{self.id}' declares duplicate field keys")

    def has_field(self, field_key: str) -> bool:
        return field_key in self.fields


class StepCatalog:
    """
    Ordered collection of step definitions.

    The position of a step in the catalog is its ordinal; the navigation
    state machine works on these positions.
    """

    def __init__(self, steps: Sequence[StepDefinition], version: str = "1"):
        if not steps:
            raise ValueError("A step catalog needs at least one step")

        self._steps: Tuple[StepDefinition, ...] = tuple(steps)
        self._index: Dict[str, int] = {}
        for position, step in enumerate(self._steps):
            if step.id in self._index:
                raise ValueError(f"Duplicate step id '{step.id}' in catalog")
            self._index[step.id] = position
        self.version = version

    def __len__(self) -> int:
        return len(self._steps)

    def __iter__(self) -> Iterator[StepDefinition]:
        return iter(self._steps)

    def __contains__(self, step_id: object) -> bool:
        return step_id in self._index

    @property
    def step_ids(self) -> List[str]:
        return [step.id for step in self._steps]

    @property
    def last_index(self) -> int:
        return len(self._steps) - 1

    def get(self, step_id: str) -> StepDefinition:
        """Get a step by id, raising UnknownStep if absent."""
        try:
            return self._steps[self._index[step_id]]
        except KeyError:
            raise UnknownStep(step_id) from None

    def find(self, step_id: str) -> Optional[StepDefinition]:
        position = self._index.get(step_id)
        return None if position is None else self._steps[position]

    def at(self, index: int) -> StepDefinition:
        """Get the step at a catalog position (clamped into range)."""
        return self._steps[self.clamp_index(index)]

    def index_of(self, step_id: str) -> int:
        try:
            return self._index[step_id]
        except KeyError:
            raise UnknownStep(step_id) from None

    def field_keys(self, step_id: str) -> Tuple[str, ...]:
        return self.get(step_id).fields

    def clamp_index(self, index: int) -> int:
        """Clamp an index into [0, len - 1]."""
        return max(0, min(int(index), self.last_index))

    def validate_field(self, step_id: str, field_key: str) -> None:
        """Raise UnknownStep / UnknownField unless the key belongs to the step."""
        if not self.get(step_id).has_field(field_key):
            raise UnknownField(step_id, field_key)


# =============================================================================
# LIVING SPACE PROGRAM CATALOG
# =============================================================================

class LivingStep(str, Enum):
    """Closed set of steps in the living space program questionnaire."""
    WORK = "work"
    HOBBIES = "hobbies"
    ENTERTAINING = "entertaining"
    WELLNESS = "wellness"
    INTERIOR = "interior"
    EXTERIOR = "exterior"
    FINAL = "final"


LIVING_STEP_ICONS: Dict[LivingStep, StepIcon] = {
    LivingStep.WORK: StepIcon.BRIEFCASE,
    LivingStep.HOBBIES: StepIcon.PALETTE,
    LivingStep.ENTERTAINING: StepIcon.USERS,
    LivingStep.WELLNESS: StepIcon.HEART,
    LivingStep.INTERIOR: StepIcon.HOME,
    LivingStep.EXTERIOR: StepIcon.TREES,
    LivingStep.FINAL: StepIcon.SETTINGS,
}

# Every step must have an icon; fail at import rather than at render time.
_missing_icons = [step.value for step in LivingStep if step not in LIVING_STEP_ICONS]
if _missing_icons:
    raise RuntimeError(f"Living steps without an icon: {_missing_icons}")


LIVING_STEPS: Tuple[StepDefinition, ...] = (
    StepDefinition(
        id=LivingStep.WORK.value,
        title="Work & Productivity",
        description="Tell us about your work-from-home needs and office requirements.",
        icon=LIVING_STEP_ICONS[LivingStep.WORK],
        fields=(
            "workFromHome",
            "wfhPeopleCount",
            "separateOfficesRequired",
            "officeRequirements",
        ),
    ),
    StepDefinition(
        id=LivingStep.HOBBIES.value,
        title="Hobbies & Activities",
        description="What activities require dedicated space in your home?",
        icon=LIVING_STEP_ICONS[LivingStep.HOBBIES],
        fields=(
            "hobbies",
            "hobbyDetails",
            "lateNightMediaUse",
        ),
    ),
    StepDefinition(
        id=LivingStep.ENTERTAINING.value,
        title="Entertaining",
        description="How do you envision hosting guests in your new residence?",
        icon=LIVING_STEP_ICONS[LivingStep.ENTERTAINING],
        fields=(
            "entertainingFrequency",
            "entertainingStyle",
            "typicalGuestCount",
        ),
    ),
    StepDefinition(
        id=LivingStep.WELLNESS.value,
        title="Wellness & Privacy",
        description="Your priorities for health, wellbeing, and personal space.",
        icon=LIVING_STEP_ICONS[LivingStep.WELLNESS],
        fields=(
            "wellnessPriorities",
            "privacyLevelRequired",
            "noiseSensitivity",
            "indoorOutdoorLiving",
        ),
    ),
    StepDefinition(
        id=LivingStep.INTERIOR.value,
        title="Interior Spaces",
        description="Select the interior spaces essential to your residence.",
        icon=LIVING_STEP_ICONS[LivingStep.INTERIOR],
        fields=(
            "mustHaveSpaces",
            "niceToHaveSpaces",
            "wantsSeparateFamilyRoom",
            "wantsSecondFormalLiving",
            "wantsBar",
            "wantsBunkRoom",
            "wantsBreakfastNook",
        ),
    ),
    StepDefinition(
        id=LivingStep.EXTERIOR.value,
        title="Exterior Amenities",
        description="Define your outdoor living and recreational requirements.",
        icon=LIVING_STEP_ICONS[LivingStep.EXTERIOR],
        fields=(
            "mustHavePoolWater",
            "wouldLikePoolWater",
            "mustHaveSport",
            "wouldLikeSport",
            "mustHaveOutdoorLiving",
            "wouldLikeOutdoorLiving",
            "mustHaveGarden",
            "wouldLikeGarden",
            "mustHaveStructures",
            "wouldLikeStructures",
            "mustHaveAccess",
            "wouldLikeAccess",
        ),
    ),
    StepDefinition(
        id=LivingStep.FINAL.value,
        title="Garage, Technology & Details",
        description="Complete your program with final specifications.",
        icon=LIVING_STEP_ICONS[LivingStep.FINAL],
        fields=(
            "garageSize",
            "garageFeatures",
            "technologyRequirements",
            "sustainabilityPriorities",
            "viewPriorityRooms",
            "privacyNoNeighbors",
            "privacyPerimeter",
            "minimumSetback",
            "minimumLotSize",
            "adjacencyRequirements",
            "currentSpacePainPoints",
            "dailyRoutinesSummary",
        ),
    ),
)

if [step.id for step in LIVING_STEPS] != [member.value for member in LivingStep]:
    raise RuntimeError("LIVING_STEPS must list every LivingStep exactly once, in order")


LIVING_CATALOG = StepCatalog(LIVING_STEPS, version="2025.1")


def get_living_catalog() -> StepCatalog:
    """Get the living space program catalog."""
    return LIVING_CATALOG
