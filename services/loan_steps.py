# services/loan_steps.py
"""Loan-application wizard steps.

Holds the static step catalog and the pure functions that decide which steps
a visitor sees, which one is current for a given URL path, and how the
progress trail is laid out. Nothing here touches the request, the session or
the database: callers pass the application type and the offer-letter flag in
explicitly.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence

APPLICATION_TYPES = ('loan', 'study', 'work')
DEFAULT_APPLICATION_TYPE = 'loan'
OFFER_LETTER_SESSION_KEY = 'hasOfferLetterStatus'


@dataclass(frozen=True)
class StepDefinition:
    path: str
    name: str
    sub_step_paths: tuple = ()
    # None means the step applies to every application type
    applicable_types: Optional[frozenset] = None
    # None means the step does not depend on the offer letter
    requires_offer_letter: Optional[bool] = None

    def matches_path(self, current_path):
        return current_path.startswith(self.path)

    def matches_sub_step(self, current_path):
        return any(current_path.startswith(sub_path) for sub_path in self.sub_step_paths)


@dataclass(frozen=True)
class TrailItem:
    kind: str  # 'step', 'separator' or 'ellipsis'
    step: Optional[StepDefinition] = None
    index: Optional[int] = None
    is_current: bool = False


_ALL_TYPES = frozenset(APPLICATION_TYPES)
_LOAN_ONLY = frozenset({'loan'})

LOAN_APP_STEPS = (
    StepDefinition(
        path='/loan-application/mobile',
        name='Mobile Verification',
        applicable_types=_ALL_TYPES,
    ),
    StepDefinition(
        path='/loan-application/admission-kyc',
        name='Admission KYC',
        applicable_types=_LOAN_ONLY,
        requires_offer_letter=True,
    ),
    StepDefinition(
        path='/loan-application/personal-kyc',
        name='Personal KYC',
        sub_step_paths=('/loan-application/review-personal-kyc',),
        applicable_types=_ALL_TYPES,
    ),
    StepDefinition(
        path='/loan-application/academic-kyc',
        name='Academic KYC',
        sub_step_paths=('/loan-application/review-academic-kyc',),
        applicable_types=_ALL_TYPES,
    ),
    StepDefinition(
        path='/loan-application/professional-kyc',
        name='Professional KYC',
        sub_step_paths=(
            '/loan-application/work-employment-kyc',
            '/loan-application/review-professional-kyc',
        ),
        applicable_types=_ALL_TYPES,
    ),
    # Order below is the visual order when every conditional step is shown
    StepDefinition(
        path='/loan-application/preferences',
        name='Preferences',
        applicable_types=_LOAN_ONLY,
        requires_offer_letter=False,
    ),
    StepDefinition(
        path='/loan-application/lender-recommendations',
        name='Lender Recommendations',
        applicable_types=_LOAN_ONLY,
        requires_offer_letter=True,
    ),
    StepDefinition(
        path='/loan-application/final-summary',
        name='Final Summary',
        applicable_types=_ALL_TYPES,
    ),
)


def resolve_application_type(value):
    """Map the ``type`` query parameter to a known application type."""
    if value in APPLICATION_TYPES:
        return value
    return DEFAULT_APPLICATION_TYPE


def parse_offer_letter_flag(value):
    """Only the stored string ``"true"`` counts as having an offer letter."""
    return value is True or value == 'true'


def is_step_visible(step, application_type, has_offer_letter):
    if step.applicable_types is not None and application_type not in step.applicable_types:
        return False
    if step.requires_offer_letter is not None and step.requires_offer_letter != has_offer_letter:
        return False
    return True


def filter_steps(steps: Sequence[StepDefinition], application_type: str,
                 has_offer_letter: bool) -> List[StepDefinition]:
    """Return the steps visible for this application type and offer-letter
    state, in catalog order.

    The offer-letter check is an exact match: a step with
    ``requires_offer_letter=False`` is hidden from users who do have one.
    """
    return [step for step in steps if is_step_visible(step, application_type, has_offer_letter)]


def locate_current_step(filtered: Sequence[StepDefinition], current_path: str,
                        catalog: Sequence[StepDefinition] = LOAN_APP_STEPS) -> Optional[int]:
    """Find the index in ``filtered`` of the step the visitor is on.

    Tries, in order:

    1. a prefix match against each visible step's own path;
    2. a prefix match against each visible step's sub-step paths;
    3. a match against the full catalog, then the matched step's path is
       looked up in ``filtered``.

    Returns ``None`` when no visible step matches. That is a normal outcome
    (nothing gets highlighted), not an error.
    """
    current_path = current_path or ''

    for index, step in enumerate(filtered):
        if step.matches_path(current_path):
            return index

    for index, step in enumerate(filtered):
        if step.matches_sub_step(current_path):
            return index

    for step in catalog:
        if step.matches_path(current_path) or step.matches_sub_step(current_path):
            for index, visible in enumerate(filtered):
                if visible.path == step.path:
                    return index
            return None

    return None


def next_step(filtered, current_index):
    """Step after ``current_index``; the first step when the index is unknown."""
    if not filtered:
        return None
    if current_index is None:
        return filtered[0]
    if current_index + 1 < len(filtered):
        return filtered[current_index + 1]
    return None


def following_step(filtered, current_path, catalog=LOAN_APP_STEPS):
    """Where a form on ``current_path`` should send the visitor next.

    Works even when the page's own step has just been filtered out (for
    example admission KYC after the visitor says they have no offer letter):
    the first visible step that comes later in the catalog is used.
    """
    index = locate_current_step(filtered, current_path, catalog)
    if index is not None:
        return next_step(filtered, index)

    positions = {step.path: position for position, step in enumerate(catalog)}
    for position, step in enumerate(catalog):
        if step.matches_path(current_path) or step.matches_sub_step(current_path):
            for visible in filtered:
                if positions.get(visible.path, -1) > position:
                    return visible
            return None
    return next_step(filtered, None)


def previous_step(filtered, current_index):
    if current_index is None or current_index <= 0:
        return None
    return filtered[current_index - 1]


def find_catalog_conflicts(steps):
    """List configuration defects: duplicate paths and sub-step paths that
    shadow another step's own path."""
    conflicts = []
    seen = set()
    for step in steps:
        if step.path in seen:
            conflicts.append(f"Duplicate step path: {step.path}")
        seen.add(step.path)

    for step in steps:
        for sub_path in step.sub_step_paths:
            for other in steps:
                if other is not step and other.path == sub_path:
                    conflicts.append(f"Sub-step path {sub_path} of {step.path} collides with step {other.path}")
    return conflicts


def build_progress_trail(filtered, current_index, compact=False):
    """Lay out the progress trail.

    Full mode draws every step with a separator between neighbours. Compact
    mode (narrow screens) keeps the first step, the current step and the last
    step, with ellipses standing in for what was skipped.
    """
    if not filtered:
        return []

    def item(index):
        return TrailItem('step', filtered[index], index, index == current_index)

    if not compact:
        trail = []
        for index in range(len(filtered)):
            if index:
                trail.append(TrailItem('separator'))
            trail.append(item(index))
        return trail

    total = len(filtered)
    # Treat "not found" as before the first step so the comparisons below
    # never single out a middle step.
    current = -1 if current_index is None else current_index
    is_middle = 0 < current < total - 1

    trail = [item(0)]
    if current > 1 and total > 2:
        trail.append(TrailItem('ellipsis'))
    if is_middle:
        trail.append(item(current))
    # Any step hidden between the last shown one and the final step gets an ellipsis
    if current < total - 2 and total > 2:
        trail.append(TrailItem('ellipsis'))
    if total > 1:
        trail.append(item(total - 1))
    return trail
