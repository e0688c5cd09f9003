from __future__ import annotations

from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Any, Dict, List, Optional

from . import datastore as default_store
from .boards import build_panel_board, build_rankings
from .cache import TTLCache, categories_key, round_exercises_key, table_exists_key
from .results import Row, aggregate_results, shape_latest

# Judge-detail tables added in later schema versions
HD_DEDUCTIONS_TABLE = "ExerciseHDDeductions"
TS_VALUES_TABLE = "ExerciseTSValues"


def parse_comp_type(value: Any) -> int:
    """0 for zero-based competitions, 1 for everything else."""
    try:
        return 0 if int(str(value).strip()) == 0 else 1
    except (TypeError, ValueError):
        return 1


class ScoreboardService:
    """Endpoint-level operations over the read queries.

    ``store`` is any object exposing the ``scoreboard.datastore`` functions.
    Independent queries run on ``executor``; a failure in any of them
    propagates to the caller and no partial result is returned.
    """

    def __init__(
        self,
        cache: TTLCache,
        store: Any = default_store,
        executor: Optional[Executor] = None,
        schema_probe_ttl: int = 0,
    ):
        self.cache = cache
        self.store = store
        self.executor = executor or ThreadPoolExecutor(max_workers=8, thread_name_prefix="scoreboard-query")
        self.schema_probe_ttl = int(schema_probe_ttl)

    # --- cached reference data ---

    def round_exercises(self, category_id: str) -> List[Row]:
        return self.cache.get_or_load(
            round_exercises_key(category_id),
            lambda: self.store.list_category_round_exercises(category_id),
        )

    def round_exercise(self, category_id: str, exercise_number: Optional[int]) -> List[Row]:
        return self.cache.get_or_load(
            round_exercises_key(category_id, exercise_number),
            lambda: self.store.list_category_round_exercises(category_id, exercise_number),
        )

    def categories(self, category_id: Optional[str] = None) -> List[Row]:
        return self.cache.get_or_load(
            categories_key(category_id),
            lambda: self.store.list_categories(category_id),
        )

    def table_exists(self, table_name: str) -> bool:
        # ttl 0 keeps the answer for the life of the process
        return self.cache.get_or_load(
            table_exists_key(table_name),
            lambda: bool(self.store.table_exists(table_name)),
            ttl=self.schema_probe_ttl,
        )

    def _detail_tables(self) -> Dict[str, bool]:
        return {name: self.table_exists(name) for name in (HD_DEDUCTIONS_TABLE, TS_VALUES_TABLE)}

    # --- live results ---

    def online_results(self, category_id: str, comp_type: Any) -> List[Row]:
        """Shaped results for every non-withdrawn competitor in a category."""
        comp_type = parse_comp_type(comp_type)

        # Stage 1: competitor set and schema probe are independent
        competitors_f = self.executor.submit(self.store.list_competitors, category_id, comp_type)
        tables_f = self.executor.submit(self._detail_tables)
        competitors = competitors_f.result()
        tables = tables_f.result()
        if not competitors:
            return []

        # Stage 2: every detail query depends only on the competitor ids
        ids = [c.get("CompetitorId") for c in competitors]
        submit = self.executor.submit
        futures = {
            "exercises": submit(self.store.list_exercise_totals, ids),
            "round_totals": submit(self.store.list_round_totals, ids),
            "videos": submit(self.store.list_videos, ids),
            "medians": submit(self.store.list_medians, ids),
            "deductions": submit(self.store.list_deductions, ids),
            "round_exercises": submit(self.round_exercises, category_id),
        }
        if tables.get(HD_DEDUCTIONS_TABLE):
            futures["hd_deductions"] = submit(self.store.list_hd_deductions, ids)
        if tables.get(TS_VALUES_TABLE):
            futures["ts_values"] = submit(self.store.list_ts_values, ids)
        fetched = {name: f.result() for name, f in futures.items()}

        # Stage 3: in-memory join
        return aggregate_results(
            competitors,
            exercises=fetched["exercises"],
            round_totals=fetched["round_totals"],
            medians=fetched["medians"],
            deductions=fetched["deductions"],
            hd_deductions=fetched.get("hd_deductions", []),
            ts_values=fetched.get("ts_values", []),
            videos=fetched["videos"],
            category_id=category_id,
        )

    def latest(self, panel_number: Any) -> Row:
        """The panel's most recently updated competitor, or ``{}``."""
        row = self.store.latest_for_panel(panel_number)
        if not row:
            return {}
        return shape_latest(row, self.round_exercises(row.get("CatId")))

    def panel_board(self) -> Row:
        rows = self.store.list_panel_board_rows()
        return {"scores": build_panel_board(rows, self.round_exercises)}

    def rankings(self) -> Row:
        return {"rankings": build_rankings(self.store.list_latest_round_rankings())}

    def shutdown(self) -> None:
        self.executor.shutdown(wait=False)
