"""
Authentication routes for reviewers.

- /auth/login       username + password against the stored hash
- /auth/logout
- /auth/seed-admin  creates the first admin while the users table is empty

Only active users may log in. Redirect targets after login must be local.
"""

import logging
from urllib.parse import urlparse

from flask import Blueprint, flash, redirect, render_template, request, url_for
from flask_login import current_user, login_required, login_user, logout_user

from ...models import User
from ...security import ALL_PERMISSIONS
from ...seed import create_user

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _safe_next_url(raw_next: str | None) -> str:
    """Only relative, local URLs are accepted as redirect targets."""
    fallback = url_for("surveys.review_list")
    if not raw_next:
        return fallback

    parsed = urlparse(raw_next)
    if parsed.scheme or parsed.netloc or not raw_next.startswith("/"):
        return fallback
    return raw_next


def _credentials() -> tuple[str, str]:
    return request.form.get("username", "").strip(), request.form.get("password", "")


@auth_bp.route("/login", methods=["GET", "POST"])
def login():
    if current_user.is_authenticated:
        return redirect(url_for("surveys.review_list"))

    if request.method != "POST":
        return render_template("auth/login.html")

    username, password = _credentials()
    user = User.query.filter_by(username=username).first()

    if user is None or not user.check_password(password):
        logger.warning("Failed login for %r from %s", username, request.remote_addr)
        flash("Usuario o contraseña incorrectos.", "danger")
        return render_template("auth/login.html"), 401

    if not user.is_active:
        flash("La cuenta está inactiva.", "danger")
        return render_template("auth/login.html"), 403

    login_user(user)
    logger.info("User %s logged in", user.username)
    flash(f"Bienvenido, {user.display_name()}.", "success")
    return redirect(_safe_next_url(request.args.get("next")))


@auth_bp.route("/logout", methods=["GET", "POST"])
@login_required
def logout():
    logout_user()
    flash("Sesión cerrada.", "info")
    return redirect(url_for("auth.login"))


@auth_bp.route("/seed-admin", methods=["GET", "POST"])
def seed_admin():
    """
    Bootstrap the first admin of the system.

    Blocked as soon as any user exists; later users are created with
    `flask create-user`.
    """
    if User.query.count() > 0:
        flash("Ya existe un usuario en el sistema.", "warning")
        return redirect(url_for("auth.login"))

    if request.method != "POST":
        return render_template("auth/seed_admin.html")

    username, password = _credentials()
    if not username or not password:
        flash("Ingrese usuario y contraseña.", "danger")
        return render_template("auth/seed_admin.html")

    create_user(
        username,
        password,
        permissions=ALL_PERMISSIONS,
        is_admin=True,
        full_name="Administrador del Sistema",
    )
    logger.info("Bootstrap admin %s created", username)

    flash("Administrador creado. Inicie sesión.", "success")
    return redirect(url_for("auth.login"))
