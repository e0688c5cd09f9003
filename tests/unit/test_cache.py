from scoreboard.cache import TTLCache, categories_key, round_exercises_key, table_exists_key


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_entries_expire_after_ttl():
    clock = FakeClock()
    cache = TTLCache(default_ttl=300, clock=clock)
    cache.set("categoryRoundExercises_IWY", [{"ExerciseNumber": 1}])

    clock.now += 299
    assert cache.get("categoryRoundExercises_IWY") == [{"ExerciseNumber": 1}]
    clock.now += 2
    assert cache.get("categoryRoundExercises_IWY") is None
    assert len(cache) == 0


def test_explicit_ttl_and_zero_means_forever():
    clock = FakeClock()
    cache = TTLCache(default_ttl=300, clock=clock)
    cache.set("short", 1, ttl=5)
    cache.set("forever", True, ttl=0)

    clock.now += 10_000
    assert cache.get("short") is None
    assert cache.get("forever") is True


def test_empty_values_are_hits():
    cache = TTLCache()
    loads = []

    def loader():
        loads.append(1)
        return []

    assert cache.get_or_load("categories_None", loader) == []
    assert cache.get_or_load("categories_None", loader) == []
    assert len(loads) == 1
    assert "categories_None" in cache


def test_delete_and_clear():
    cache = TTLCache()
    cache.set("a", 1)
    cache.set("b", 2)
    cache.delete("a")
    assert "a" not in cache
    cache.clear()
    assert cache.get("b", "gone") == "gone"


def test_key_builders():
    assert categories_key("IWY") == "categories_IWY"
    assert categories_key(None) == "categories_None"
    assert round_exercises_key("IWY") == "categoryRoundExercises_IWY"
    assert round_exercises_key("IWY", 2) == "categoryRoundExercises_IWY_2"
    assert table_exists_key("ExerciseTSValues") == "tableExists_ExerciseTSValues"
