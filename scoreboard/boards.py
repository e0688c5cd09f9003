"""Big-screen views: per-panel "now showing" board and per-round leaderboards."""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Optional

from .results import Row, is_value_present, project_rank, resolve_latest_exercise, split_competitor

# PanelStatus."Status" values
STATUS_NEXT = "next"  # gymnast about to compete
STATUS_LAST = "last"  # gymnast has just competed


def format_name(first_name: Any, surname: Any, second_surname: Any = None) -> str:
    """Display name: ``"Surname1, Surname2"`` for synchro pairs, else ``"Surname First"``."""
    if is_value_present(second_surname):
        return ", ".join(str(p) for p in (surname, second_surname) if is_value_present(p))
    return " ".join(str(p) for p in (surname, first_name) if is_value_present(p))


def _status(row: Row) -> str:
    return str(row.get("PanelStatus") or "").strip().lower()


def current_gymnast(row: Row) -> Optional[Row]:
    """Who the panel is showing, based on its status; None when idle."""
    status = _status(row)
    if status == STATUS_NEXT:
        prefix = "Next"
    elif status == STATUS_LAST:
        prefix = "Last"
    else:
        return None
    return {
        "name": format_name(row.get(f"{prefix}FirstName1"), row.get(f"{prefix}Surname1"), row.get(f"{prefix}Surname2")),
        "club": row.get(f"{prefix}Club"),
        "category": row.get(f"{prefix}Category"),
    }


def format_score(row: Row, round_exercises: Iterable[Row]) -> Row:
    raw = split_competitor(row).raw
    exercise = resolve_latest_exercise(raw, round_exercises)
    return {
        "name": format_name(row.get("FirstName1"), row.get("Surname1"), row.get("Surname2")),
        "club": row.get("DisplayClub"),
        "nation": row.get("Nation"),
        "category": row.get("Category"),
        "round": exercise.get("RoundName"),
        "exercise": exercise,
        "rank": project_rank(row),
    }


def _panel_sort_key(panel: Any):
    try:
        return (0, int(panel), "")
    except (TypeError, ValueError):
        return (1, 0, str(panel))


def build_panel_board(rows: Iterable[Row], round_exercises_for: Callable[[str], List[Row]]) -> List[Row]:
    """Group the latest scored rows by panel.

    ``rows`` hold up to two rows per panel: ``rn`` 1 (current) and ``rn`` 2
    (previous). ``round_exercises_for`` maps a category id to its
    ``CategoryRoundExercises`` rows. Output is sorted by panel number.
    """
    by_panel: Dict[Any, Dict[int, Row]] = {}
    for row in rows or []:
        panel = row.get("PanelNo")
        try:
            rn = int(row.get("rn") or 1)
        except (TypeError, ValueError):
            rn = 1
        # Keep the first row seen for each slot
        by_panel.setdefault(panel, {}).setdefault(rn, row)

    board: List[Row] = []
    for panel in sorted(by_panel, key=_panel_sort_key):
        slots = by_panel[panel]
        current = slots.get(1)
        if current is None:
            continue
        entry: Row = {"panel": panel}
        gymnast = current_gymnast(current)
        if gymnast is not None:
            entry["currentGymnast"] = gymnast
        entry["currentScore"] = format_score(current, round_exercises_for(current.get("CatId")))
        previous = slots.get(2)
        if previous is not None:
            entry["previousScore"] = format_score(previous, round_exercises_for(previous.get("CatId")))
        board.append(entry)
    return board


def build_rankings(rows: Iterable[Row]) -> List[Row]:
    """Group round-total rows into one leaderboard per discipline/category/round.

    Leaderboards and competitors keep the order the rows arrive in.
    """
    boards: Dict[tuple, Row] = {}
    for row in rows or []:
        key = (row.get("Discipline"), row.get("CatId") or row.get("Category"), row.get("RoundName"))
        board = boards.get(key)
        if board is None:
            board = {
                "discipline": row.get("Discipline"),
                "category": row.get("Category"),
                "categoryId": row.get("CatId"),
                "round": row.get("RoundName"),
                "competitors": [],
            }
            boards[key] = board
        board["competitors"].append(
            {
                "name": format_name(row.get("FirstName1"), row.get("Surname1"), row.get("Surname2")),
                "club": row.get("DisplayClub"),
                "total": row.get("RoundTotal"),
                "rank": row.get("RoundRank"),
            }
        )
    return list(boards.values())
