from typing import Any, Dict, List, Optional, Sequence

# Read-only queries over the scoring database.
# Every function issues a single parameterized statement through datastore_pg;
# identifiers are quoted because the scoring schema uses PascalCase names.

from . import datastore_pg as _pg


Row = Dict[str, Any]

_NOT_WITHDRAWN = '("Withdrawn" IS NULL OR "Withdrawn" != 1)'

# Rank column used to order the live results list, keyed by competition type
_RANK_COLUMN = {0: '"ZeroRank"', 1: '"CumulativeRank"'}


def _ids(competitor_ids: Sequence[Any]) -> List[Any]:
    return list(competitor_ids)


# --- Result aggregation -----------------------------------------------------

def list_competitors(category_id: str, comp_type: int) -> List[Row]:
    """Non-withdrawn competitors in a category, NULL ranks last, then start order."""
    rank_col = _RANK_COLUMN[0 if comp_type == 0 else 1]
    return _pg.query(
        f"""
        SELECT * FROM "DisplayScreen"
        WHERE "CatId" = %s AND {_NOT_WITHDRAWN}
        ORDER BY {rank_col} ASC NULLS LAST, "Q1Flight", "Q1StartNo"
        """,
        (category_id,),
    )


def list_exercise_totals(competitor_ids: Sequence[Any]) -> List[Row]:
    return _pg.query(
        'SELECT * FROM "DisplayScreenExerciseTotals" WHERE "CompetitorId" = ANY(%s) '
        'ORDER BY "CompetitorId", "ExerciseNumber"',
        (_ids(competitor_ids),),
    )


def list_round_totals(competitor_ids: Sequence[Any]) -> List[Row]:
    return _pg.query(
        'SELECT * FROM "RoundTotals" WHERE "CompetitorId" = ANY(%s) ORDER BY "CompetitorId"',
        (_ids(competitor_ids),),
    )


def list_videos(competitor_ids: Sequence[Any]) -> List[Row]:
    return _pg.query(
        'SELECT * FROM "ExerciseVideos" WHERE "CompetitorId" = ANY(%s)',
        (_ids(competitor_ids),),
    )


def list_medians(competitor_ids: Sequence[Any]) -> List[Row]:
    return _pg.query(
        'SELECT * FROM "ExerciseMedians" WHERE "CompetitorId" = ANY(%s) '
        'ORDER BY "CompetitorId", "ExerciseNumber", "DeductionNumber"',
        (_ids(competitor_ids),),
    )


def list_deductions(competitor_ids: Sequence[Any]) -> List[Row]:
    return _pg.query(
        'SELECT * FROM "ExerciseDeductions" WHERE "CompetitorId" = ANY(%s) '
        'ORDER BY "CompetitorId", "ExerciseNumber", "DeductionNumber"',
        (_ids(competitor_ids),),
    )


def list_hd_deductions(competitor_ids: Sequence[Any]) -> List[Row]:
    return _pg.query(
        'SELECT * FROM "ExerciseHDDeductions" WHERE "CompetitorId" = ANY(%s) '
        'ORDER BY "CompetitorId", "ExerciseNumber", "DeductionNumber"',
        (_ids(competitor_ids),),
    )


def list_ts_values(competitor_ids: Sequence[Any]) -> List[Row]:
    return _pg.query(
        'SELECT * FROM "ExerciseTSValues" WHERE "CompetitorId" = ANY(%s) '
        'ORDER BY "CompetitorId", "ExerciseNumber"',
        (_ids(competitor_ids),),
    )


def table_exists(table_name: str) -> bool:
    return _pg.table_exists(table_name)


def list_category_round_exercises(category_id: str, exercise_number: Optional[int] = None) -> List[Row]:
    if exercise_number is None:
        return _pg.query(
            'SELECT * FROM "CategoryRoundExercises" WHERE "CategoryId" = %s ORDER BY "ExerciseNumber"',
            (category_id,),
        )
    return _pg.query(
        'SELECT * FROM "CategoryRoundExercises" WHERE "CategoryId" = %s AND "ExerciseNumber" = %s',
        (category_id, exercise_number),
    )


def latest_for_panel(panel_number: Any) -> Optional[Row]:
    rows = _pg.query(
        f"""
        SELECT * FROM "DisplayScreen"
        WHERE "PanelNo" = %s AND {_NOT_WITHDRAWN}
        ORDER BY "LastUpdatedTimestamp" DESC
        LIMIT 1
        """,
        (panel_number,),
    )
    return rows[0] if rows else None


def list_panel_board_rows() -> List[Row]:
    """Two most recent scored rows per panel, joined with the panel's status.

    ``rn`` = 1 is the current score, ``rn`` = 2 the one before it.
    """
    return _pg.query(
        f"""
        SELECT ranked.*,
               ps."Status" AS "PanelStatus",
               ps."NextFirstName1", ps."NextFirstName2",
               ps."NextSurname1", ps."NextSurname2",
               ps."NextClub", ps."NextCategory",
               ps."LastFirstName1", ps."LastFirstName2",
               ps."LastSurname1", ps."LastSurname2",
               ps."LastClub", ps."LastCategory"
        FROM (
            SELECT ds.*,
                   ROW_NUMBER() OVER (
                       PARTITION BY ds."PanelNo"
                       ORDER BY ds."LastUpdatedTimestamp" DESC
                   ) AS rn
            FROM "DisplayScreen" ds
            WHERE {_NOT_WITHDRAWN}
              AND COALESCE(ds."Ex1Total", ds."Ex2Total", ds."Ex3Total", ds."Ex4Total", ds."Ex5Total") IS NOT NULL
        ) ranked
        LEFT JOIN "PanelStatus" ps ON ps."PanelNo" = ranked."PanelNo"
        WHERE ranked.rn <= 2
        ORDER BY ranked."PanelNo", ranked.rn
        """
    )


def list_latest_round_rankings() -> List[Row]:
    """Round totals for each category's latest signed-off round, best rank first."""
    return _pg.query(
        """
        WITH latest AS (
            SELECT r."CategoryId", MAX(r."RoundOrder") AS "RoundOrder"
            FROM "Rounds" r
            WHERE r."SignedOff" = 1
            GROUP BY r."CategoryId"
        )
        SELECT c."Discipline", c."Category", c."CatId", r."RoundName", r."RoundOrder",
               comp."CompetitorId", comp."FirstName1", comp."FirstName2",
               comp."Surname1", comp."Surname2", comp."DisplayClub",
               rt."RoundTotal", rt."RoundRank"
        FROM latest
        INNER JOIN "Rounds" r ON r."CategoryId" = latest."CategoryId" AND r."RoundOrder" = latest."RoundOrder"
        INNER JOIN "Categories" c ON c."CatId" = r."CategoryId"
        INNER JOIN "RoundTotals" rt ON rt."RoundId" = r."RoundId"
        INNER JOIN "Competitors" comp ON comp."CompetitorId" = rt."CompetitorId"
        WHERE (comp."Withdrawn" IS NULL OR comp."Withdrawn" != 1)
        ORDER BY c."Discipline", c."Category", r."RoundOrder", rt."RoundRank" ASC NULLS LAST
        """
    )


# --- Pass-through reads -----------------------------------------------------

def list_panel_status(panel_number: Any = None) -> List[Row]:
    if panel_number:
        return _pg.query('SELECT * FROM "PanelStatus" WHERE "PanelNo" = %s', (panel_number,))
    return _pg.query('SELECT * FROM "PanelStatus" ORDER BY "PanelNo"')


def latest_score(panel_number: Any) -> List[Row]:
    return _pg.query(
        'SELECT * FROM "DisplayScreen" WHERE "PanelNo" = %s ORDER BY "LastUpdatedTimestamp" DESC LIMIT 1',
        (panel_number,),
    )


def list_exercise_numbers(category_id: str) -> List[Row]:
    """Exercise numbers/round names recorded by the furthest-progressed competitor."""
    return _pg.query(
        """
        SELECT "ExerciseNumber", "RoundName" FROM "DisplayScreenRoundTotals"
        WHERE "CompetitorId" = (
            SELECT "CompetitorId" FROM "DisplayScreenRoundTotals"
            WHERE "CatId" = %s
            GROUP BY "CompetitorId"
            ORDER BY MAX("ExerciseNumber") DESC
            LIMIT 1
        )
        ORDER BY "ExerciseNumber"
        """,
        (category_id,),
    )


def list_rounds(category_id: str) -> List[Row]:
    return _pg.query('SELECT * FROM "Rounds" WHERE "CategoryId" = %s ORDER BY "RoundOrder"', (category_id,))


def list_categories(category_id: Optional[str] = None) -> List[Row]:
    if category_id:
        return _pg.query('SELECT * FROM "Categories" WHERE "CatId" = %s', (category_id,))
    return _pg.query('SELECT * FROM "Categories"')


def list_display_categories() -> List[Row]:
    return _pg.query('SELECT * FROM "Categories" WHERE "Display" = 1')


def list_competitor_ranks(category_id: str, comp_type: int) -> List[Row]:
    rank_col = _RANK_COLUMN[0 if comp_type == 0 else 1]
    return _pg.query(
        f"""
        SELECT DISTINCT "CompetitorId", "FirstName1", "FirstName2", "Surname1", "Surname2",
               "Nation", "DisplayClub", "ZeroRank", "CumulativeRank",
               "DisplayZeroRank", "DisplayCumulativeRank"
        FROM "DisplayScreenRoundTotals"
        WHERE "CatId" = %s
        ORDER BY {rank_col} ASC NULLS LAST
        LIMIT 8
        """,
        (category_id,),
    )


def list_qualifying_start_list(category_id: str) -> List[Row]:
    return _pg.query(
        f"""
        SELECT "CompetitorId", "FirstName1", "FirstName2", "Surname1", "Surname2",
               "Nation", "DisplayClub"
        FROM "DisplayScreen"
        WHERE "CatId" = %s AND {_NOT_WITHDRAWN}
        ORDER BY "Q1Flight", "Q1StartNo"
        LIMIT 8
        """,
        (category_id,),
    )


def list_round_start_list(category_id: str, round_name: str) -> List[Row]:
    return _pg.query(
        """
        SELECT rc."CompetitorId" FROM "RoundCompetitors" rc
        INNER JOIN "Rounds" r ON rc."RoundId" = r."RoundId"
        WHERE r."CategoryId" = %s AND r."RoundName" = %s
        ORDER BY rc."FlightId", rc."StartNo"
        """,
        (category_id, round_name),
    )


def list_round_start_list_competitors(category_id: str, round_name: str) -> List[Row]:
    return _pg.query(
        """
        SELECT c."FirstName1", c."FirstName2", c."Surname1", c."Surname2", c."DisplayClub"
        FROM "Competitors" c
        INNER JOIN "RoundCompetitors" rc ON c."CompetitorId" = rc."CompetitorId"
        INNER JOIN "Rounds" r ON rc."RoundId" = r."RoundId" AND r."CategoryId" = %s AND r."RoundName" = %s
        INNER JOIN "Flights" f ON f."FlightId" = rc."FlightId"
        ORDER BY f."FlightNumber", rc."StartNo"
        """,
        (category_id, round_name),
    )


def list_competitor_round_totals(competitor_id: int) -> List[Row]:
    return _pg.query(
        'SELECT DISTINCT * FROM "DisplayScreenRoundTotals" WHERE "CompetitorId" = %s ORDER BY "ExerciseNumber"',
        (competitor_id,),
    )


def list_start_list_rounds() -> List[Row]:
    """Rounds whose start list is known: first rounds, or rounds after a signed-off round."""
    return _pg.query(
        """
        SELECT r."CategoryId", r."RoundName", c."Discipline", c."Category"
        FROM "Rounds" r
        INNER JOIN "Categories" c ON r."CategoryId" = c."CatId"
        WHERE r."RoundOrder" = 1
           OR (r."RoundOrder" > 1 AND EXISTS (
                SELECT 1 FROM "Rounds" prev
                WHERE prev."CategoryId" = r."CategoryId"
                  AND prev."RoundOrder" = r."RoundOrder" - 1
                  AND prev."SignedOff" = 1))
        ORDER BY c."Discipline", c."Category", r."RoundOrder"
        """
    )


def event_info() -> List[Row]:
    return _pg.query('SELECT * FROM "EventInfo"')
