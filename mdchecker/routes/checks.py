"""
Check Routes - per-user, per-title update state for clients
"""

import json

import structlog
from flask import Blueprint, Response, jsonify, request

from mdchecker.constants import DAY, HOUR, JOB_UPDATE_CHECK, SECOND
from mdchecker.repositories import WatermarkRepository
from mdchecker.utils import ensure_int, format_duration, format_epoch, now_ms

logger = structlog.get_logger("routes.checks")

checks_bp = Blueprint("checks", __name__)

STATE_UNKNOWN = "unknown"
STATE_UPDATED = "updated"
STATE_CURRENT = "current"
STATE_NO_USER = "no-user"
STATE_ERROR = "error"


def determine_state(user_id, manga_id, last_check_epoch, epoch):
    """Record the check and decide what the client should do with its cached copy"""
    store = WatermarkRepository
    recent_check_count = store.recent_check_count(user_id, epoch - 5 * SECOND)
    tracked = store.get_tracked_title(user_id, manga_id)
    if tracked is None:
        store.insert_tracked_title(user_id, manga_id, epoch)
        return STATE_UNKNOWN

    last_check = tracked.last_check
    last_update = tracked.last_update
    store.touch_tracked_title(user_id, manga_id, epoch)

    # Not fetched recently, so the update check may not have been watching it
    if last_check < epoch - 6 * DAY:
        return STATE_UNKNOWN
    # A single view rather than a library sweep, let the client refresh
    if recent_check_count < 2:
        return STATE_UPDATED
    return STATE_CURRENT if last_update < last_check_epoch else STATE_UPDATED


@checks_bp.route("/manga-check", methods=["GET"])
def manga_check():
    """
    Header: user-id
    Query: mangaId, lastCheckEpoch

    Returns {epoch, state}, state being unknown, updated, current, no-user or error
    """
    try:
        user_id = request.headers.get("user-id")
        if not user_id or WatermarkRepository.get_user(user_id) is None:
            return jsonify({"epoch": 0, "state": STATE_NO_USER})
        manga_id = request.args.get("mangaId")
        if not manga_id:
            return jsonify({"epoch": 0, "state": STATE_ERROR})
        last_check_epoch = ensure_int(request.args.get("lastCheckEpoch", "0"))
        epoch = now_ms()
        state = determine_state(user_id, manga_id, last_check_epoch, epoch)
        return jsonify({"epoch": epoch, "state": state})
    except Exception as e:
        logger.error(f"Encountered error determining state: {e}", exc_info=True)
        return jsonify({"epoch": 0, "state": STATE_ERROR})


def pretty_json(data):
    return Response(json.dumps(data, indent=2), mimetype="application/json")


@checks_bp.route("/last-update-check", methods=["GET"])
def last_update_check():
    """
    Query: userId

    Reports the most recent update check run, plus the user's own fetch activity.
    "no-series" means nothing had been fetched in the past week when the run happened.
    """
    try:
        user_id = request.args.get("userId")
        user = WatermarkRepository.get_user(user_id)
        if user is None:
            return pretty_json({"state": STATE_NO_USER})

        user_data = {}
        last_user_check = WatermarkRepository.last_user_check(user_id)
        if last_user_check > 0:
            user_data["lastUserFetch"] = format_epoch(last_user_check)
            user_data["updatesSinceLastFetch"] = WatermarkRepository.user_update_count(
                user_id, last_user_check - 6 * HOUR
            )

        run = WatermarkRepository.latest_run(JOB_UPDATE_CHECK)
        if run is None:
            return pretty_json({"state": STATE_UNKNOWN, **user_data})

        start = format_epoch(run.start_time)
        if run.is_running:
            return pretty_json({"state": "running", "start": start, **user_data})

        data = {
            "state": "no-series" if (run.result_code or 0) < 0 else "completed",
            "start": start,
            "end": format_epoch(run.end_time),
            "duration": format_duration(run.end_time - run.start_time),
        }
        if user.is_admin:
            data["count"] = run.result_code
        return pretty_json({**data, **user_data})
    except Exception as e:
        logger.error(f"Encountered error in last-update-check: {e}", exc_info=True)
        return pretty_json({"state": STATE_ERROR})
