"""Extension singletons shared by models, services and blueprints."""
from flask_login import LoginManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from flask_wtf import CSRFProtect

db = SQLAlchemy()
# Batch mode lets Alembic rewrite SQLite tables when a CHECK constraint changes.
migrate = Migrate(compare_type=True, render_as_batch=True)
csrf = CSRFProtect()

login_manager = LoginManager()
login_manager.session_protection = "strong"
