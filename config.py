import os

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Gemini translator
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")

# Google OAuth client
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")
OAUTH_REDIRECT_URI = os.getenv("OAUTH_REDIRECT_URI", "http://localhost:5000/auth/google/callback")
TOKEN_URI = "https://oauth2.googleapis.com/token"
# oauthlib rejects plain-http redirects, which local development uses
if OAUTH_REDIRECT_URI.startswith("http://localhost"):
    os.environ.setdefault("OAUTHLIB_INSECURE_TRANSPORT", "1")
# Google reports granted scopes in a different form than requested
os.environ.setdefault("OAUTHLIB_RELAX_TOKEN_SCOPE", "1")
SCOPES = [
    "openid",
    "https://www.googleapis.com/auth/userinfo.profile",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
]

# Web app
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")
SESSION_SECRET = os.getenv("SESSION_SECRET", "dev-session-secret")
PORT = int(os.getenv("PORT", "5000"))

# Flat-file storage for prospects
PROSPECTS_FILE = os.getenv("PROSPECTS_FILE", os.path.join("data", "prospects.json"))

# Scheduling defaults
DEFAULT_TIME_ZONE = os.getenv("DEFAULT_TIME_ZONE", "Asia/Kolkata")
CALENDAR_ID = "primary"
MAX_INSTANCES = 200
DEFAULT_BUFFER_MINUTES = 15
DEFAULT_DURATION_MINUTES = 60
MINUTES_PER_DAY = 1440

# Phrases that mean "one meeting per guest"
PER_GUEST_PHRASES = ["one-on-one", "back-to-back"]

# Calendar query limits
CONFLICT_LIST_LIMIT = 100
CLEANUP_LOOKBACK_DAYS = 7
CLEANUP_LOOKAHEAD_MONTHS = 1
CLEANUP_LIST_LIMIT = 500
UPCOMING_DAYS = 90
UPCOMING_LIST_LIMIT = 50

# Working-day window used when suggesting free slots
free_slot_window = {
    "start": "09:00",
    "end": "18:00",
    "step_minutes": 30,
    "max_suggestions": 4,
}

# Options offered to the caller when a conflict blocks creation
resolution_options = [
    {"value": "overwrite", "label": "Overwrite existing meeting with new one"},
    {"value": "postpone_existing", "label": "Postpone existing meeting and create new one"},
    {"value": "reschedule_new", "label": "Change new meeting time"},
]
