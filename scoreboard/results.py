"""Shaping of raw scoring rows into scoreboard competitor views."""

from __future__ import annotations

from collections import defaultdict
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Tuple

Row = Dict[str, Any]

MAX_EXERCISES = 5

# Suffixes of the flattened per-exercise columns (Ex1E, Ex1D, ... Ex5Rank)
EXERCISE_FIELD_SUFFIXES = ("E", "D", "B", "HD", "ToF", "S", "Pen", "Total", "Rank")

FLATTENED_FIELDS = frozenset(
    f"Ex{n}{suffix}" for n in range(1, MAX_EXERCISES + 1) for suffix in EXERCISE_FIELD_SUFFIXES
)

# Raw ranking inputs plus fields the display screens never show
RANK_SOURCE_FIELDS = (
    "ZeroRank",
    "CumulativeRank",
    "DisplayZeroRank",
    "DisplayCumulativeRank",
    "Club",
    "Q1StartNo",
    "Q1Flight",
    "Q1Scoring",
)

NO_RANK = "-"
LANDING_LABEL = "L"

# Category-id prefix -> deduction slot holding the landing deduction
_LANDING_SLOTS = {"I": 11, "S": 11, "U": 9, "D": 3}

# Output key -> flattened column suffix
_EXERCISE_COLUMNS = (
    ("Execution", "E"),
    ("Difficulty", "D"),
    ("Bonus", "B"),
    ("HorizontalDisplacement", "HD"),
    ("TimeOfFlight", "ToF"),
    ("Synchronisation", "S"),
    ("Penalty", "Pen"),
)


class DataConsistencyError(Exception):
    """Reference data contradicts the scores (e.g. an exercise with no round)."""


class CompetitorRecord(NamedTuple):
    """A competitor row split into its display fields and flattened exercise fields."""

    view: Row
    raw: Row


def split_competitor(row: Row) -> CompetitorRecord:
    view: Row = {}
    raw: Row = {}
    for key, value in row.items():
        (raw if key in FLATTENED_FIELDS else view)[key] = value
    return CompetitorRecord(view, raw)


def is_value_present(value: Any) -> bool:
    """True unless ``value`` is missing or the empty string; zero is present."""
    if value is None:
        return False
    if value == "":
        return False
    return True


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


# --- Deduction relabeler ------------------------------------------------------

def _is_slot(value: Any, slot: int) -> bool:
    if isinstance(value, bool) or value is None:
        return False
    try:
        return Decimal(str(value).strip()) == slot
    except (InvalidOperation, ValueError):
        return False


def relabel_deduction(category_id: Optional[str], deduction_number: Any) -> Any:
    """Return ``"L"`` for the discipline's landing slot, else the slot unchanged."""
    if not category_id:
        return deduction_number
    landing_slot = _LANDING_SLOTS.get(str(category_id)[0])
    if landing_slot is not None and _is_slot(deduction_number, landing_slot):
        return LANDING_LABEL
    return deduction_number


def relabel_row(row: Row, category_id: Optional[str] = None) -> Row:
    """Copy of a judge-level row with its ``DeductionNumber`` relabeled.

    The row's own ``CategoryId`` wins over the ``category_id`` fallback.
    """
    cat = row.get("CategoryId") or category_id
    out = dict(row)
    if "DeductionNumber" in out:
        out["DeductionNumber"] = relabel_deduction(cat, out["DeductionNumber"])
    return out


# --- Latest-exercise resolver -------------------------------------------------

def _round_name_for(round_exercises: Iterable[Row], exercise_number: int) -> str:
    for item in round_exercises or []:
        if _as_int(item.get("ExerciseNumber")) == exercise_number:
            return item.get("RoundName")
    raise DataConsistencyError(f"No round is configured for exercise {exercise_number}")


def resolve_latest_exercise(raw: Row, round_exercises: Iterable[Row]) -> Row:
    """Return the most recently completed exercise from the flattened fields.

    Exercises are scanned from 5 down to 1 and the first one with a present
    ``Total`` wins. ``round_exercises`` are the category's
    ``CategoryRoundExercises`` rows; a scored exercise missing from them
    raises :class:`DataConsistencyError`. With no scored exercise the result
    is an empty dict.
    """
    for number in range(MAX_EXERCISES, 0, -1):
        prefix = f"Ex{number}"
        total = raw.get(f"{prefix}Total")
        if not is_value_present(total):
            continue
        exercise: Row = {
            "Exercise": number,
            "RoundName": _round_name_for(round_exercises, number),
        }
        for out_key, suffix in _EXERCISE_COLUMNS:
            exercise[out_key] = raw.get(f"{prefix}{suffix}")
        exercise["Total"] = total
        return exercise
    return {}


# --- Rank projector -------------------------------------------------------------

def project_rank(row: Row) -> Any:
    """Pick the display rank for a competitor.

    A competitor without a zero-scheme rank has not been ranked yet (``"-"``).
    Zero-based competitions show the zero-scheme rank once the first
    exercise has a positive total; everything else shows the cumulative rank.
    """
    if not row.get("ZeroRank"):
        return NO_RANK
    first_total = _as_number(row.get("F1Total"))
    if _as_int(row.get("CompType")) == 0 and first_total is not None and first_total > 0:
        return row.get("DisplayZeroRank")
    return row.get("DisplayCumulativeRank")


def apply_rank(view: Row) -> Row:
    out = {k: v for k, v in view.items() if k not in RANK_SOURCE_FIELDS}
    out["Rank"] = project_rank(view)
    return out


def shape_latest(row: Row, round_exercises: Iterable[Row]) -> Row:
    """Build the single-competitor ``/latest`` view from a display-screen row."""
    record = split_competitor(row)
    view = dict(record.view)
    view["Exercise"] = resolve_latest_exercise(record.raw, round_exercises)
    return apply_rank(view)


# --- Result aggregator ----------------------------------------------------------

def _index_by_competitor(rows: Iterable[Row]) -> Dict[Any, List[Row]]:
    index: Dict[Any, List[Row]] = defaultdict(list)
    for row in rows or []:
        index[row.get("CompetitorId")].append(row)
    return index


def _index_by_exercise(rows: Iterable[Row], relabel_for: Optional[str] = None, relabel: bool = False) -> Dict[Tuple[Any, Any], List[Row]]:
    index: Dict[Tuple[Any, Any], List[Row]] = defaultdict(list)
    for row in rows or []:
        item = relabel_row(row, relabel_for) if relabel else dict(row)
        index[(row.get("CompetitorId"), _as_int(row.get("ExerciseNumber")))].append(item)
    return index


def aggregate_results(
    competitors: List[Row],
    exercises: Iterable[Row] = (),
    round_totals: Iterable[Row] = (),
    medians: Iterable[Row] = (),
    deductions: Iterable[Row] = (),
    hd_deductions: Iterable[Row] = (),
    ts_values: Iterable[Row] = (),
    videos: Iterable[Row] = (),
    category_id: Optional[str] = None,
) -> List[Row]:
    """Join competitor rows with their exercise, round and judge-level rows.

    Output order follows ``competitors``. Each view carries ``Exercises``
    (possibly empty) and ``RoundTotals`` when there are any; each exercise
    carries ``Medians``, ``Deductions``, ``HDDeductions``, ``TSValues`` and
    ``Videos`` only when rows exist for it. Flattened ``Ex{n}*`` columns are
    dropped. Input rows are not mutated.
    """
    exercises_by_comp = _index_by_competitor(exercises)
    rounds_by_comp = _index_by_competitor(round_totals)
    details = {
        "Medians": _index_by_exercise(medians, category_id, relabel=True),
        "Deductions": _index_by_exercise(deductions, category_id, relabel=True),
        "HDDeductions": _index_by_exercise(hd_deductions, category_id, relabel=True),
        "TSValues": _index_by_exercise(ts_values),
        "Videos": _index_by_exercise(videos),
    }

    out: List[Row] = []
    for row in competitors or []:
        view = dict(split_competitor(row).view)
        cid = view.get("CompetitorId")
        shaped_exercises: List[Row] = []
        for ex in exercises_by_comp.get(cid, []):
            ex_view = dict(ex)
            key = (cid, _as_int(ex.get("ExerciseNumber")))
            for name, index in details.items():
                attached = index.get(key)
                if attached:
                    ex_view[name] = attached
            shaped_exercises.append(ex_view)
        view["Exercises"] = shaped_exercises
        comp_rounds = rounds_by_comp.get(cid)
        if comp_rounds:
            view["RoundTotals"] = [dict(r) for r in comp_rounds]
        out.append(view)
    return out
