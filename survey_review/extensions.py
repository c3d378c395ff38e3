"""
Flask extension singletons for the survey review app.

They are created unbound here and bound in create_app(), so models, routes and
the repository can import `db` without importing the application.
"""

from flask_login import LoginManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from flask_wtf import CSRFProtect

db = SQLAlchemy()
migrate = Migrate()
csrf = CSRFProtect()

login_manager = LoginManager()
login_manager.login_view = "auth.login"
login_manager.login_message = "Inicie sesión para revisar levantamientos."
login_manager.login_message_category = "info"
