"""
survey_review/__init__.py

Flask application factory for the Work Survey Review module
("Revisión de Levantamientos de Obra").

- SQLAlchemy models with Flask-Migrate; SQLite in development.
- Reviewers act through three permission codes (ver, revisar, aprobar).
- A global before_request guard refuses mutating requests from users who
  cannot approve, on top of the per-route checks.

The sidebar has one section (Levantamientos); its items are hidden when the
user lacks the permission, and the routes check again.
"""

from __future__ import annotations

import logging

import click
from flask import Flask, redirect, url_for
from flask_login import current_user

from .extensions import csrf, db, login_manager, migrate
from .models import User
from .security import ALL_PERMISSIONS, PERM_APPROVE, PERM_REVIEW, PERM_VIEW, readonly_guard, review_context


# -------------------------------------------------------------------
# NAVIGATION STRUCTURE (UI visibility only; security enforced in routes)
# -------------------------------------------------------------------

NAV_SECTIONS = [
    {
        "key": "surveys",
        "label": "Levantamientos",
        "auth_required": True,
        "items": [
            {
                "label": "Revisar Levantamientos",
                "endpoint": "surveys.review_list",
                "permissions": [PERM_VIEW, PERM_REVIEW],
            },
            {
                "label": "Pendientes de Revisión",
                "endpoint": "surveys.pending_list",
                "permissions": [PERM_REVIEW, PERM_APPROVE],
            },
        ],
    },
]


def _configure_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app.logger.setLevel(level)
    logging.getLogger(__name__).setLevel(level)


def create_app(config_object: str = "config.Config") -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    _configure_logging(app)

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)

    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id: str) -> User | None:
        """Load user for Flask-Login."""
        if not user_id or not str(user_id).isdigit():
            return None
        return db.session.get(User, int(user_id))

    # ----------------------------------------------------------------------
    # GLOBAL SECURITY NET: read-only guard (server-side).
    # ----------------------------------------------------------------------
    @app.before_request
    def _readonly_guard_hook():
        """
        Users without the approve permission cannot POST/PUT/PATCH/DELETE.

        This is a safety net. Each route must still enforce its own permissions.
        """
        return readonly_guard()

    # ----------------------------------------------------------------------
    # Blueprints
    # ----------------------------------------------------------------------
    from .blueprints.auth import auth_bp
    from .blueprints.surveys import surveys_bp
    from .blueprints.api import api_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(surveys_bp)
    app.register_blueprint(api_bp)

    # JSON clients send no CSRF token; they are authenticated by session.
    csrf.exempt(api_bp)

    # ----------------------------------------------------------------------
    # Template helpers
    # ----------------------------------------------------------------------
    from .utils import block_badge_class, format_cop, status_label, survey_row_class

    app.jinja_env.filters["cop"] = format_cop
    app.jinja_env.filters["badge_class"] = block_badge_class
    app.jinja_env.filters["status_label"] = status_label
    app.jinja_env.globals["survey_row_class"] = survey_row_class

    # ----------------------------------------------------------------------
    # Context globals (navigation)
    # ----------------------------------------------------------------------
    @app.context_processor
    def inject_globals():
        """
        Inject navigation filtered by user permissions.

        SECURITY NOTE:
        - This only filters visibility. Routes enforce permissions.
        """
        ctx = review_context()
        visible_sections = []

        for section in NAV_SECTIONS:
            if section.get("auth_required", False) and not current_user.is_authenticated:
                continue

            visible_items = [
                item for item in section.get("items", []) if ctx.has_any_permission(item.get("permissions", []))
            ]

            if visible_items:
                visible_sections.append(
                    {"key": section["key"], "label": section["label"], "items": visible_items}
                )

        return {"config": app.config, "nav_sections": visible_sections, "review_ctx": ctx}

    # ----------------------------------------------------------------------
    # CLI
    # ----------------------------------------------------------------------
    @app.cli.command("init-db")
    def init_db_command():
        """Create missing tables (development without migrations)."""
        db.create_all()
        click.echo("Database tables created.")

    @app.cli.command("seed-demo")
    def seed_demo_command():
        """Seed demo master data and one survey for review."""
        from .seed import seed_demo_data

        survey = seed_demo_data()
        click.echo(f"Demo data seeded. Survey {survey.survey_number} (id={survey.id}) is ready for review.")

    @app.cli.command("create-user")
    @click.argument("username")
    @click.password_option()
    @click.option("--admin", is_flag=True, help="Grant every permission.")
    @click.option(
        "--permission",
        "permissions",
        multiple=True,
        type=click.Choice(ALL_PERMISSIONS),
        help="Permission code (repeatable).",
    )
    @click.option("--full-name", default=None)
    def create_user_command(username, password, admin, permissions, full_name):
        """Create a login user or update an existing one."""
        from .seed import create_user

        user = create_user(username, password, permissions=permissions, is_admin=admin, full_name=full_name)
        click.echo(f"User {user.username} saved.")

    # ----------------------------------------------------------------------
    # Home
    # ----------------------------------------------------------------------
    @app.route("/")
    def index():
        """Home: redirect to the review list or login."""
        if current_user.is_authenticated:
            return redirect(url_for("surveys.review_list"))
        return redirect(url_for("auth.login"))

    return app
