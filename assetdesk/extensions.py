"""Extension singletons, bound to the app in ``create_app``."""
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

db = SQLAlchemy()
migrate = Migrate()

# No login_view: the API answers anonymous calls with a JSON 401 instead of redirecting.
login_manager = LoginManager()

# Storage comes from RATELIMIT_STORAGE_URI in settings. Only login and the
# export endpoints carry limits.
limiter = Limiter(key_func=get_remote_address, default_limits=[])
