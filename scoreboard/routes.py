from flask import Blueprint, abort, current_app, jsonify, request, send_from_directory
from datetime import datetime
import os

from werkzeug.exceptions import HTTPException
from werkzeug.utils import secure_filename

from . import datastore as ds
from .service import ScoreboardService, parse_comp_type


bp = Blueprint('main', __name__)


def _service() -> ScoreboardService:
    return current_app.extensions['scoreboard']


def _int_arg(name: str):
    """Integer query parameter, or None when missing/non-numeric."""
    val = request.args.get(name)
    if val is None:
        return None
    try:
        return int(str(val).strip())
    except ValueError:
        return None


@bp.app_errorhandler(Exception)
def handle_error(e):
    if isinstance(e, HTTPException):
        return e
    current_app.logger.exception("Error handling %s %s", request.method, request.path)
    return jsonify({'error': 'Internal Server Error'}), 500


@bp.route('/health')
def health():
    return {'status': 'ok'}


@bp.route('/health/db')
def health_db():
    """Database connectivity health check.

    Always returns HTTP 200 with a JSON body describing connection status.
    """
    if not os.environ.get('DATABASE_URL'):
        return {
            'connected': False,
            'status': 'no_database_url',
            'message': 'DATABASE_URL is not set.',
        }
    try:
        info = ds._pg.server_info()
        return {
            'connected': True,
            'status': 'ok',
            'user': info.get('db_user'),
            'database': info.get('db_name'),
            'server_version': (info.get('server_version') or '').split('\n')[0],
        }
    except Exception as e:  # pragma: no cover - best-effort health output
        return {
            'connected': False,
            'status': 'error',
            'error': str(e),
        }


# --- Shaped scoreboard views ---

@bp.route('/api/latest')
def latest():
    panel_number = request.args.get('panelNumber')
    return jsonify(_service().latest(panel_number))


@bp.route('/api/onlineResults')
def online_results():
    category_id = request.args.get('catId')
    if not category_id:
        return jsonify([])
    return jsonify(_service().online_results(category_id, request.args.get('compType')))


@bp.route('/api/bg/latest')
def bg_latest():
    return jsonify(_service().panel_board())


@bp.route('/api/bg/rankings')
def bg_rankings():
    return jsonify(_service().rankings())


# --- Pass-through reads ---

@bp.route('/api/serverClock')
def server_clock():
    return jsonify({'time': datetime.now().strftime('%H:%M')})


@bp.route('/api/panelStatus')
def panel_status():
    return jsonify(ds.list_panel_status(request.args.get('panelNumber')))


@bp.route('/api/latestScore')
def latest_score():
    return jsonify(ds.latest_score(request.args.get('panelNumber')))


@bp.route('/api/exerciseNumbers')
def exercise_numbers():
    return jsonify(ds.list_exercise_numbers(request.args.get('catId')))


@bp.route('/api/rounds')
def rounds():
    return jsonify(ds.list_rounds(request.args.get('catId')))


@bp.route('/api/categories')
def categories():
    return jsonify(_service().categories(request.args.get('catId') or None))


@bp.route('/api/displayCategories')
def display_categories():
    return jsonify(ds.list_display_categories())


@bp.route('/api/categoryRoundExercises')
def category_round_exercises():
    exercise_number = _int_arg('exerciseNumber')
    if exercise_number is None:
        return jsonify([])
    return jsonify(_service().round_exercise(request.args.get('catId'), exercise_number))


@bp.route('/api/competitorRanks')
def competitor_ranks():
    comp_type = parse_comp_type(request.args.get('compType'))
    return jsonify(ds.list_competitor_ranks(request.args.get('catId'), comp_type))


@bp.route('/api/qualifyingStartList')
def qualifying_start_list():
    return jsonify(ds.list_qualifying_start_list(request.args.get('catId')))


@bp.route('/api/roundStartList')
def round_start_list():
    return jsonify(ds.list_round_start_list(request.args.get('catId'), request.args.get('roundName')))


@bp.route('/api/roundStartListCompetitors')
def round_start_list_competitors():
    return jsonify(ds.list_round_start_list_competitors(request.args.get('catId'), request.args.get('roundName')))


@bp.route('/api/competitorRoundTotal')
def competitor_round_total():
    competitor_id = _int_arg('competitorId')
    if competitor_id is None:
        return jsonify([])
    return jsonify(ds.list_competitor_round_totals(competitor_id))


@bp.route('/api/startListRounds')
def start_list_rounds():
    return jsonify(ds.list_start_list_rounds())


@bp.route('/api/eventInfo')
def event_info():
    return jsonify(ds.event_info())


@bp.route('/api/videoFile')
def video_file():
    """Stream a recorded exercise video from ``VIDEO_ROOT/<event>/<variant>/<fileName>``."""
    root = current_app.config.get('VIDEO_ROOT')
    if not root:
        abort(404)
    event = secure_filename(request.args.get('event') or '')
    variant = secure_filename(request.args.get('variant') or '')
    file_name = secure_filename(request.args.get('fileName') or '')
    if not event or not file_name:
        abort(404)
    directory = os.path.join(root, event, variant) if variant else os.path.join(root, event)
    return send_from_directory(directory, file_name, conditional=True)
