"""
Phase resolution for CRM records.

A record's workflow phase comes from three signals: the view it was read from,
its free-text "Set Up Status", and the phase already stored for it. `resolve`
combines them with a fixed priority and performs no I/O, so it can be called
from the sync engine, the reclassify command and tests alike.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Optional, Tuple, Union

from properties.models import Phase

RULE_AUTHORITATIVE_VIEW = "authoritative-view"
RULE_STATUS = "status"
RULE_RETAINED = "retained"
RULE_VIEW_TAG = "view-tag"
RULE_ORPHANED = "orphaned"


@dataclass(frozen=True)
class SourceView:
    key: str
    phase: str
    priority: int
    authoritative: bool = False
    canonical_status: Optional[str] = None


# Processing order for a full run: most advanced phase first, so the first view
# that claims an identifier is the one that wins.
SOURCE_VIEWS: Tuple[SourceView, ...] = (
    SourceView("cleaning", Phase.CLEANING, priority=6, authoritative=True, canonical_status="Cleaning"),
    SourceView("final-check", Phase.FINAL_CHECK, priority=5),
    SourceView("furnishing", Phase.FURNISHING, priority=4, authoritative=True, canonical_status="Furnishing"),
    SourceView("in-progress", Phase.IN_PROGRESS, priority=3, authoritative=True, canonical_status="Reno in progress"),
    SourceView("budget", Phase.BUDGET_PENDING_RENOVATOR, priority=2),
    SourceView("initial-check", Phase.INITIAL_CHECK, priority=1),
    SourceView("upcoming-settlement", Phase.UPCOMING_SETTLEMENT, priority=0),
)

VIEWS_BY_KEY: Dict[str, SourceView] = {v.key: v for v in SOURCE_VIEWS}


# Lower-cased status synonyms (English and Spanish labels used by the CRM).
STATUS_TO_PHASE: Dict[str, str] = {
    "pending to visit": Phase.UPCOMING_SETTLEMENT,
    "upcoming settlement": Phase.UPCOMING_SETTLEMENT,
    "upcoming settlements": Phase.UPCOMING_SETTLEMENT,
    "nuevas escrituras": Phase.UPCOMING_SETTLEMENT,
    "initial check": Phase.INITIAL_CHECK,
    "check inicial": Phase.INITIAL_CHECK,
    "pending to budget (from renovator)": Phase.BUDGET_PENDING_RENOVATOR,
    "pending to budget from renovator": Phase.BUDGET_PENDING_RENOVATOR,
    "pending budget from renovator": Phase.BUDGET_PENDING_RENOVATOR,
    "pendiente de presupuesto (renovador)": Phase.BUDGET_PENDING_RENOVATOR,
    "pending to budget (from client)": Phase.BUDGET_PENDING_CLIENT,
    "pending to budget from client": Phase.BUDGET_PENDING_CLIENT,
    "pending budget from client": Phase.BUDGET_PENDING_CLIENT,
    "pendiente de presupuesto (cliente)": Phase.BUDGET_PENDING_CLIENT,
    "reno to start": Phase.BUDGET_TO_START,
    "obra a empezar": Phase.BUDGET_TO_START,
    "obra para empezar": Phase.BUDGET_TO_START,
    "reno in progress": Phase.IN_PROGRESS,
    "obras en proceso": Phase.IN_PROGRESS,
    "cleaning & furnishing": Phase.FURNISHING,
    "furnishing": Phase.FURNISHING,
    "final check": Phase.FINAL_CHECK,
    "check final": Phase.FINAL_CHECK,
    "cleaning": Phase.CLEANING,
    "limpieza": Phase.CLEANING,
    "reno fixes": Phase.FIXES,
    "done": Phase.DONE,
}

# Longest synonym first so "cleaning & furnishing" beats "cleaning".
_SYNONYM_PATTERNS = tuple(
    (re.compile(r"(?<!\w)" + re.escape(key) + r"(?!\w)"), phase)
    for key, phase in sorted(STATUS_TO_PHASE.items(), key=lambda kv: len(kv[0]), reverse=True)
)

LEGAL_PHASES = frozenset(Phase.values)


@dataclass(frozen=True)
class PhaseResolution:
    phase: str
    status: Optional[str]
    rule: str


def get_view(key: Optional[str]) -> Optional[SourceView]:
    if key is None:
        return None
    return VIEWS_BY_KEY.get(key)


def phase_for_status(status: Optional[str]) -> Optional[str]:
    """Map a free-text status to a phase, or None when no synonym matches."""
    if not status:
        return None
    text = " ".join(str(status).lower().split())
    if not text:
        return None
    exact = STATUS_TO_PHASE.get(text)
    if exact is not None:
        return exact
    for pattern, phase in _SYNONYM_PATTERNS:
        if pattern.search(text):
            return phase
    return None


def resolve(
    view: Union[SourceView, str, None],
    status: Optional[str],
    previous_phase: Optional[str],
) -> PhaseResolution:
    """
    Resolve the authoritative phase for a record.

    Rules, first match wins:
      1. phase-authoritative view: force its phase and canonical status
      2. status synonym lookup
      3. keep a legal, non-orphaned previous phase
      4. no usable previous phase: use the view's phase tag
      5. orphaned
    The returned status is the raw status unless rule 1 overwrote it.
    """
    if isinstance(view, str):
        view = get_view(view)

    if view is not None and view.authoritative:
        return PhaseResolution(view.phase, view.canonical_status, RULE_AUTHORITATIVE_VIEW)

    mapped = phase_for_status(status)
    if mapped is not None:
        return PhaseResolution(mapped, status, RULE_STATUS)

    if previous_phase in LEGAL_PHASES and previous_phase != Phase.ORPHANED:
        return PhaseResolution(previous_phase, status, RULE_RETAINED)

    if view is not None and view.phase:
        return PhaseResolution(view.phase, status, RULE_VIEW_TAG)

    return PhaseResolution(Phase.ORPHANED, status, RULE_ORPHANED)
