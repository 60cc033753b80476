import datetime
import logging
import uuid

from flask import Flask, jsonify, redirect, request, session
from flask_cors import CORS
from dateutil import tz
from google_auth_oauthlib.flow import Flow

from config import (
    DEFAULT_TIME_ZONE,
    FRONTEND_URL,
    GOOGLE_CLIENT_ID,
    GOOGLE_CLIENT_SECRET,
    OAUTH_REDIRECT_URI,
    PORT,
    SCOPES,
    SESSION_SECRET,
    TOKEN_URI,
    UPCOMING_DAYS,
    UPCOMING_LIST_LIMIT,
    resolution_options,
)
from calendar_utils import day_window, fetch_user_profile, find_free_slots, get_calendar_store
from errors import InvalidTimeRange, SchedulerError, Unauthenticated, ValidationFailure
from event_expander import build_instances
from event_parser import GeminiTranslator, parse_event_request
from models import Conflict, EventInstance
from prospects import ProspectStore
from scheduler import (
    cleanup_duplicates,
    commit_instances,
    detect_conflicts,
    reschedule_meeting,
    resolve_conflicts,
)
from time_utils import check_time_zone

# Configure logging
logging.basicConfig(level=logging.INFO,
                    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

# Suppress Google API client logs
logging.getLogger('googleapiclient').setLevel(logging.ERROR)
logging.getLogger('google_auth_oauthlib').setLevel(logging.ERROR)
logging.getLogger('google.auth').setLevel(logging.ERROR)
# Suppress Werkzeug logs (Flask's development server)
logging.getLogger('werkzeug').setLevel(logging.WARNING)

app = Flask(__name__)
app.secret_key = SESSION_SECRET
app.config["SESSION_COOKIE_SAMESITE"] = "Lax"
# The chat UI runs on its own origin and sends the session cookie
CORS(app, resources={r"/api/*": {"origins": FRONTEND_URL, "supports_credentials": True}})

translator = GeminiTranslator()
prospect_store = ProspectStore()


def current_user():
    """The signed-in principal from the session, or Unauthenticated"""
    user = session.get("user")
    if not user:
        raise Unauthenticated()
    return user


def error_response(error):
    return jsonify(error.to_dict()), error.status_code


def build_oauth_flow(state=None):
    client_config = {
        "web": {
            "client_id": GOOGLE_CLIENT_ID,
            "client_secret": GOOGLE_CLIENT_SECRET,
            "auth_uri": "https://accounts.google.com/o/oauth2/auth",
            "token_uri": TOKEN_URI,
            "redirect_uris": [OAUTH_REDIRECT_URI],
        }
    }
    flow = Flow.from_client_config(client_config, scopes=SCOPES, state=state)
    flow.redirect_uri = OAUTH_REDIRECT_URI
    return flow


@app.route('/auth/google', methods=['GET'])
def google_login():
    flow = build_oauth_flow()
    authorization_url, state = flow.authorization_url(access_type="offline", prompt="consent")
    session["oauth_state"] = state
    return redirect(authorization_url)


@app.route('/auth/google/callback', methods=['GET'])
def google_callback():
    try:
        flow = build_oauth_flow(state=session.pop("oauth_state", None))
        flow.fetch_token(authorization_response=request.url)
        credentials = flow.credentials
        profile = fetch_user_profile(credentials)

        session["user"] = {
            "id": profile.get("id"),
            "name": profile.get("name"),
            "email": profile.get("email"),
            "picture": profile.get("picture"),
            "accessToken": credentials.token,
            "refreshToken": credentials.refresh_token,
        }
        logger.info(f"User signed in: {profile.get('email')}")
        return redirect(f"{FRONTEND_URL}/dashboard")
    except Exception as e:
        logger.error(f"Google sign-in failed: {e}")
        return redirect(f"{FRONTEND_URL}/login?error=auth_failed")


@app.route('/api/user', methods=['GET'])
def get_user():
    user = session.get("user")
    if not user:
        return jsonify({"success": False, "message": "Not authenticated"}), 401
    return jsonify({
        "success": True,
        "user": {
            "id": user.get("id"),
            "name": user.get("name"),
            "email": user.get("email"),
            "picture": user.get("picture"),
        }
    })


@app.route('/api/logout', methods=['POST'])
def logout():
    session.clear()
    return jsonify({"success": True, "message": "Logged out successfully"})


@app.route('/dashboard', methods=['GET'])
def dashboard():
    user = session.get("user")
    if not user:
        return jsonify({"success": False, "message": "Access denied. Please login."}), 401
    return jsonify({
        "success": True,
        "message": "Welcome to dashboard",
        "user": {"name": user.get("name"), "email": user.get("email"), "picture": user.get("picture")}
    })


@app.route('/api/mcp/create', methods=['POST'])
def create_from_prompt():
    """Free text -> parsed events -> instances -> conflict check -> commit"""
    try:
        user = current_user()
        data = request.get_json(silent=True) or {}
        prompt = data.get("prompt")
        if not isinstance(prompt, str) or not prompt.strip():
            raise ValidationFailure("Prompt is required")

        logger.info(f"Logged-in user: {user.get('email')}")
        logger.info(f"User Query: \"{prompt}\"")

        event_requests = parse_event_request(prompt, translator, context=data.get("context"))
        instances = build_instances(event_requests)
        store = get_calendar_store(user)

        conflicts = detect_conflicts(store, instances)
        if conflicts:
            logger.info(f"Found {len(conflicts)} scheduling conflict(s), blocking event creation")
            return jsonify({
                "success": False,
                "hasConflicts": True,
                "conflicts": [c.to_dict() for c in conflicts],
                "message": "Scheduling conflict detected! Choose an option:",
                "options": resolution_options,
                "instances": [i.to_dict() for i in instances],
                "prompt": prompt,
            })

        result = commit_instances(store, instances, description=prompt, organizer_email=user.get("email"))
        return jsonify(result.to_dict())
    except SchedulerError as e:
        logger.warning(f"Scheduling request rejected: {e.message}")
        return error_response(e)
    except Exception as e:
        logger.error(f"Error creating events from prompt: {e}")
        return jsonify({"success": False, "error": f"Failed to create event: {str(e)}"}), 500


@app.route('/api/mcp/resolve-conflict', methods=['POST'])
def resolve_conflict():
    try:
        user = current_user()
        data = request.get_json(silent=True) or {}
        action = data.get("action")
        raw_instances = data.get("instances")
        raw_conflicts = data.get("conflicts") or []
        conflict_indices = data.get("conflictIndices")

        if not action or not isinstance(raw_instances, list) or not isinstance(raw_conflicts, list):
            raise ValidationFailure("Invalid conflict resolution request")
        if conflict_indices is not None and not isinstance(conflict_indices, list):
            raise ValidationFailure("conflictIndices must be a list")

        instances = [EventInstance.from_dict(i) for i in raw_instances]
        conflicts = [Conflict.from_dict(c, instances) for c in raw_conflicts]
        store = get_calendar_store(user)

        result = resolve_conflicts(
            store,
            action,
            instances,
            conflicts,
            conflict_indices=conflict_indices,
            reschedule_time=data.get("rescheduleTime"),
            description=data.get("prompt"),
            organizer_email=user.get("email"),
        )
        payload = result.to_dict()
        payload["resolved"] = len(instances)
        return jsonify(payload)
    except SchedulerError as e:
        logger.warning(f"Conflict resolution rejected: {e.message}")
        return error_response(e)
    except Exception as e:
        logger.error(f"Conflict resolution error: {e}")
        return jsonify({"success": False, "error": f"Failed to resolve conflicts: {str(e)}"}), 500


@app.route('/api/mcp/event/<event_id>', methods=['DELETE'])
def delete_event(event_id):
    try:
        user = current_user()
        store = get_calendar_store(user)
        store.delete_event(event_id)
        logger.info(f"Deleted event: {event_id}")
        return jsonify({"success": True, "message": "Event deleted successfully"})
    except SchedulerError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Delete event error: {e}")
        return jsonify({"success": False, "error": f"Failed to delete event: {str(e)}"}), 500


@app.route('/api/mcp/cleanup-duplicates', methods=['POST'])
def cleanup_duplicate_events():
    try:
        user = current_user()
        store = get_calendar_store(user)
        return jsonify(cleanup_duplicates(store))
    except SchedulerError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Cleanup duplicates error: {e}")
        return jsonify({"success": False, "error": f"Failed to cleanup duplicates: {str(e)}"}), 500


@app.route('/api/mcp/free-slots', methods=['POST'])
def free_slots():
    try:
        user = current_user()
        data = request.get_json(silent=True) or {}
        date = data.get("date")
        try:
            duration = int(data.get("duration"))
        except (TypeError, ValueError):
            duration = 0
        if not date or duration <= 0:
            raise ValidationFailure("Date and duration required")

        time_zone = data.get("timeZone") or DEFAULT_TIME_ZONE
        store = get_calendar_store(user)
        try:
            check_time_zone(time_zone)
            time_min, time_max = day_window(date, time_zone)
        except ValueError:
            raise ValidationFailure("Use 'YYYY-MM-DD' for date and an IANA name for timeZone")
        events = store.list_events(time_min, time_max, order_by="startTime")
        return jsonify({"success": True, "slots": find_free_slots(events, date, duration, time_zone)})
    except SchedulerError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Free slots error: {e}")
        return jsonify({"success": False, "error": str(e)}), 500


@app.route('/api/mcp/reschedule', methods=['POST'])
def reschedule():
    try:
        user = current_user()
        data = request.get_json(silent=True) or {}
        store = get_calendar_store(user)
        return jsonify(reschedule_meeting(
            store,
            email=data.get("email"),
            meeting_date=data.get("meeting_date"),
            start_time=data.get("start_time"),
            duration_minutes=data.get("duration_minutes"),
            old_event_id=data.get("oldEventId"),
            title=data.get("title"),
            time_zone=data.get("timeZone") or DEFAULT_TIME_ZONE,
        ))
    except SchedulerError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Reschedule error: {e}")
        return jsonify({"success": False, "error": str(e)}), 500


@app.route('/api/calendar', methods=['GET'])
def get_calendar_events():
    try:
        user = current_user()
        store = get_calendar_store(user)
        now = datetime.datetime.now(tz.UTC)
        events = store.list_events(
            now.isoformat(),
            (now + datetime.timedelta(days=UPCOMING_DAYS)).isoformat(),
            max_results=UPCOMING_LIST_LIMIT,
            order_by="startTime",
        )
        return jsonify({"success": True, "events": events})
    except SchedulerError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Calendar API error: {e}")
        return jsonify({"success": False, "error": f"Calendar API failed: {str(e)}"}), 500


@app.route('/api/calendar/create-event', methods=['POST'])
def create_event():
    """Create one event straight from the form fields"""
    try:
        user = current_user()
        data = request.get_json(silent=True) or {}
        date, start_time, end_time = data.get("date"), data.get("startTime"), data.get("endTime")
        if not date or not start_time or not end_time:
            raise ValidationFailure("date, startTime and endTime are required")
        try:
            start_dt = datetime.datetime.strptime(f"{date} {start_time}", "%Y-%m-%d %H:%M")
            end_dt = datetime.datetime.strptime(f"{date} {end_time}", "%Y-%m-%d %H:%M")
        except ValueError:
            raise ValidationFailure("Use 'YYYY-MM-DD' for date and 'HH:MM' for times")
        if end_dt <= start_dt:
            raise InvalidTimeRange()

        time_zone = data.get("timeZone") or DEFAULT_TIME_ZONE
        event_data = {
            "summary": data.get("title") or "Untitled Event",
            "description": data.get("description", ""),
            "start": {"dateTime": start_dt.strftime("%Y-%m-%dT%H:%M:%S"), "timeZone": time_zone},
            "end": {"dateTime": end_dt.strftime("%Y-%m-%dT%H:%M:%S"), "timeZone": time_zone},
        }
        if data.get("addMeet"):
            event_data["conferenceData"] = {
                "createRequest": {
                    "requestId": uuid.uuid4().hex,
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                }
            }

        store = get_calendar_store(user)
        event = store.insert_event(event_data, conference=bool(data.get("addMeet")))
        entry_points = event.get("conferenceData", {}).get("entryPoints", [])
        return jsonify({
            "success": True,
            "event": {
                "id": event.get("id"),
                "title": event.get("summary"),
                "description": event.get("description"),
                "start": event.get("start", {}).get("dateTime"),
                "end": event.get("end", {}).get("dateTime"),
                "meetLink": entry_points[0].get("uri") if entry_points else None,
            }
        })
    except SchedulerError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Create event error: {e}")
        return jsonify({"success": False, "error": f"Failed to create event: {str(e)}"}), 500


@app.route('/api/llm/process', methods=['POST'])
def process_chat():
    try:
        current_user()
        data = request.get_json(silent=True) or {}
        prompt = data.get("prompt")
        if not prompt:
            raise ValidationFailure("Prompt is required")
        return jsonify({"success": True, "response": translator.chat(prompt)})
    except SchedulerError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"LLM processing error: {e}")
        return jsonify({"success": False, "error": f"Failed to process with LLM: {str(e)}"}), 500


@app.route('/api/prospects', methods=['GET'])
def list_prospects():
    try:
        current_user()
        return jsonify(prospect_store.list())
    except SchedulerError as e:
        return error_response(e)
    except (OSError, ValueError) as e:
        logger.error(f"Error reading prospects: {e}")
        return jsonify({"error": "Failed to read prospects"}), 500


@app.route('/api/prospects/<prospect_id>', methods=['GET'])
def get_prospect(prospect_id):
    try:
        current_user()
        prospect = prospect_store.get(prospect_id)
        if not prospect:
            return jsonify({"error": "Prospect not found"}), 404
        return jsonify(prospect)
    except SchedulerError as e:
        return error_response(e)
    except (OSError, ValueError) as e:
        logger.error(f"Error reading prospect: {e}")
        return jsonify({"error": "Failed to read prospect"}), 500


@app.route('/api/prospects', methods=['POST'])
def create_prospect():
    try:
        current_user()
        prospect = prospect_store.create(request.get_json(silent=True) or {})
        return jsonify(prospect), 201
    except SchedulerError as e:
        return error_response(e)
    except (OSError, ValueError) as e:
        logger.error(f"Error creating prospect: {e}")
        return jsonify({"error": "Failed to create prospect"}), 500


@app.route('/api/prospects/<prospect_id>', methods=['PUT'])
def update_prospect(prospect_id):
    try:
        current_user()
        prospect = prospect_store.update(prospect_id, request.get_json(silent=True) or {})
        if not prospect:
            return jsonify({"error": "Prospect not found"}), 404
        return jsonify(prospect)
    except SchedulerError as e:
        return error_response(e)
    except (OSError, ValueError) as e:
        logger.error(f"Error updating prospect: {e}")
        return jsonify({"error": "Failed to update prospect"}), 500


@app.route('/api/prospects/<prospect_id>', methods=['DELETE'])
def delete_prospect(prospect_id):
    try:
        current_user()
        if not prospect_store.delete(prospect_id):
            return jsonify({"error": "Prospect not found"}), 404
        return jsonify({"success": True, "message": "Prospect deleted"})
    except SchedulerError as e:
        return error_response(e)
    except (OSError, ValueError) as e:
        logger.error(f"Error deleting prospect: {e}")
        return jsonify({"error": "Failed to delete prospect"}), 500


@app.errorhandler(404)
def not_found(e):
    return jsonify({"success": False, "message": "Route not found"}), 404


if __name__ == "__main__":
    app.run(debug=True, port=PORT)
