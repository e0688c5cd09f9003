import os
from concurrent.futures import ThreadPoolExecutor

from flask import Flask
from flask_cors import CORS

from .cache import DEFAULT_TTL, TTLCache


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, str(default)))
    except ValueError:
        return default


def create_app(config=None):
    app = Flask(__name__)

    db_url = os.environ.get("DATABASE_URL")
    if not db_url:
        raise RuntimeError(
            "DATABASE_URL is required; the scoreboard API reads from PostgreSQL."
        )

    app.config.update(
        CACHE_TTL=_env_int("CACHE_TTL", DEFAULT_TTL),
        SCHEMA_PROBE_TTL=_env_int("SCHEMA_PROBE_TTL", 0),
        QUERY_WORKERS=_env_int("QUERY_WORKERS", 8),
        VIDEO_ROOT=os.environ.get("VIDEO_ROOT"),
        CORS_ORIGINS=os.environ.get("CORS_ORIGINS", "*"),
        DB_POOL_MIN=_env_int("DB_POOL_MIN", 1),
        DB_POOL_MAX=_env_int("DB_POOL_MAX", 10),
    )
    if config:
        app.config.update(config)

    # Initialize connection pool early (optional; direct connect works if pool init fails)
    try:
        from . import datastore_pg as _pg
        _pg.init_pool(minconn=app.config["DB_POOL_MIN"], maxconn=app.config["DB_POOL_MAX"])
    except Exception:  # pragma: no cover
        app.logger.exception("PostgreSQL pool initialization failed; continuing without pool")

    from .service import ScoreboardService
    cache = app.config.get("CACHE_INSTANCE")
    if cache is None:
        cache = TTLCache(default_ttl=app.config["CACHE_TTL"])
    # One pooled connection stays free for the request thread's own queries
    workers = min(int(app.config["QUERY_WORKERS"]), int(app.config["DB_POOL_MAX"]) - 1)
    app.config["QUERY_WORKERS"] = max(workers, 1)
    executor = ThreadPoolExecutor(
        max_workers=app.config["QUERY_WORKERS"],
        thread_name_prefix="scoreboard-query",
    )
    app.extensions["scoreboard_cache"] = cache
    app.extensions["scoreboard"] = ScoreboardService(
        cache,
        executor=executor,
        schema_probe_ttl=app.config["SCHEMA_PROBE_TTL"],
    )

    CORS(app, resources={r"/api/*": {"origins": app.config["CORS_ORIGINS"]}})

    from . import routes  # type: ignore
    app.register_blueprint(routes.bp)

    app.logger.info("Scoreboard API ready (cache ttl=%ss)", app.config["CACHE_TTL"])
    return app


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    create_app().run(host='0.0.0.0', port=port)
