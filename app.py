"""Flask application factory for the patrol operatives service."""
import os
from typing import Optional

import click
from dotenv import load_dotenv
from flask import Flask, jsonify, request
from sqlalchemy import create_engine, text
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import OperationalError

from extensions import csrf, db, login_manager, migrate
from utils.catalogs import init_catalog_store
from utils.logger import init_logging
from utils.security import apply_security_headers


def register_error_handlers(app: Flask) -> None:
    def _payload(message: str, status: int):
        return jsonify({"error": message}), status

    @app.errorhandler(400)
    def bad_request(error):
        app.logger.warning("400 Bad Request", extra={"path": request.path, "method": request.method})
        return _payload(getattr(error, "description", None) or "Bad request", 400)

    @app.errorhandler(401)
    def unauthorized(error):
        return _payload("Authentication required", 401)

    @app.errorhandler(403)
    def forbidden(error):
        app.logger.warning("403 Forbidden", extra={"path": request.path, "method": request.method})
        return _payload("You do not have access to this resource", 403)

    @app.errorhandler(404)
    def not_found_error(error):
        app.logger.warning("404 Not Found", extra={"path": request.path, "method": request.method})
        return _payload("Not found", 404)

    @app.errorhandler(405)
    def method_not_allowed(error):
        return _payload("Method not allowed", 405)

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        app.logger.exception("500 Internal Server Error")
        return _payload("Internal server error", 500)


def ensure_default_admin(app: Flask) -> None:
    """Create the bootstrap administrator when no admin account exists yet."""
    from models import Role, User  # Local import to avoid circular dependency

    username = (app.config.get("DEFAULT_ADMIN_USERNAME") or "").strip()
    password = app.config.get("DEFAULT_ADMIN_PASSWORD") or ""
    if not username or not password:
        return
    if User.query.filter_by(role=Role.ADMIN.value).first():
        return

    admin_user = User.query.filter_by(username=username).first()
    if admin_user:
        admin_user.role = Role.ADMIN.value
        admin_user.assigned_region = None
        admin_user.is_active = True
    else:
        admin_user = User(full_name="ADMINISTRADOR DEL SISTEMA", username=username, role=Role.ADMIN.value, is_active=True)
        admin_user.set_password(password)
    db.session.add(admin_user)
    db.session.commit()
    app.logger.info("default_admin_ready", extra={"username": username})


def ensure_database_exists(database_uri: str) -> None:
    """Create the target database if it does not exist (PostgreSQL + SQLite support)."""
    url = make_url(database_uri)

    if url.drivername.startswith("sqlite"):
        # For SQLite just make sure the parent directory exists.
        if url.database:
            os.makedirs(os.path.dirname(url.database) or ".", exist_ok=True)
        return

    if url.drivername.startswith("postgres"):
        db_name = url.database
        admin_url = url.set(database=os.getenv("POSTGRES_DB_ADMIN", "postgres"))
        engine = create_engine(admin_url, isolation_level="AUTOCOMMIT")
        try:
            with engine.connect() as conn:
                exists = conn.execute(
                    text("SELECT 1 FROM pg_database WHERE datname = :name"), {"name": db_name}
                ).scalar()
                if not exists:
                    conn.execute(text(f'CREATE DATABASE "{db_name}"'))
        except OperationalError:
            # If we cannot connect/create, let the normal app startup fail loudly later.
            pass
        finally:
            engine.dispose()


def register_commands(app: Flask) -> None:
    @app.cli.command("import-users")
    @click.argument("csv_path", type=click.Path(exists=True, dir_okay=False))
    def import_users_command(csv_path):
        """Merge a user roster CSV into the directory."""
        from utils.user_directory import import_users_csv

        with open(csv_path, "r", encoding="utf-8-sig") as handle:
            summary = import_users_csv(handle.read())
        db.session.commit()
        click.echo(
            f"{summary.to_dict()['outcome']}: inserted={summary.inserted} updated={summary.updated} "
            f"unchanged={summary.unchanged} skipped={summary.skipped}"
        )


def create_app(config_name: Optional[str] = None) -> Flask:
    """Application factory with environment-aware configuration."""
    load_dotenv()

    app = Flask(__name__, instance_relative_config=True)

    # Resolve configuration
    from config import DevelopmentConfig, ProductionConfig, TestingConfig

    config_key = (config_name or os.getenv("FLASK_CONFIG") or os.getenv("FLASK_ENV") or "production").lower()
    config_map = {
        "development": DevelopmentConfig,
        "dev": DevelopmentConfig,
        "production": ProductionConfig,
        "prod": ProductionConfig,
        "testing": TestingConfig,
        "test": TestingConfig,
    }
    config_class = config_map.get(config_key, ProductionConfig)
    app.config.from_object(config_class())

    ensure_database_exists(app.config["SQLALCHEMY_DATABASE_URI"])

    # Optional instance-specific overrides
    if not app.config.get("TESTING"):
        app.config.from_pyfile("config.py", silent=True)
    os.makedirs(app.instance_path, exist_ok=True)

    # Initialize logging early
    logger = init_logging(app)
    app.logger = logger

    # Initialize extensions
    csrf.init_app(app)
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id):
        from models import User  # Local import to avoid circular dependency

        if not user_id:
            return None
        return db.session.get(User, str(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "Authentication required"}), 401

    # Blueprints
    from routes import admin_bp, auth_bp, main_bp, operatives_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(operatives_bp)
    app.register_blueprint(admin_bp)

    register_error_handlers(app)
    register_commands(app)

    @app.after_request
    def _after_request(response):
        return apply_security_headers(response, force_https=app.config.get("PREFERRED_URL_SCHEME") == "https")

    # Ensure tables exist so first run creates the database structure automatically.
    with app.app_context():
        import models  # noqa: F401  Register tables before create_all

        db.create_all()
        init_catalog_store(app)
        ensure_default_admin(app)

    return app
