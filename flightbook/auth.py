from functools import wraps
from flask import Blueprint, render_template, request, redirect, url_for, flash
from flask_login import login_user, logout_user, login_required, current_user
from urllib.parse import urlparse, urljoin
from .models import User, Profile
from . import db

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


# guard helper for redirect targets so we only follow local urls
def is_safe_url(target: str) -> bool:
    """Only allow local redirects."""
    host_url = urlparse(request.host_url)
    redirect_url = urlparse(urljoin(request.host_url, target))
    return redirect_url.scheme in ("http", "https") and host_url.netloc == redirect_url.netloc


# signed-in users have no business on the login / register pages
def anonymous_only(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        if current_user.is_authenticated:
            return redirect(url_for("search.index"))
        return view(*args, **kwargs)
    return wrapped


def _after_login_target() -> str:
    next_page = request.args.get("next") or request.form.get("next")
    if next_page and is_safe_url(next_page):
        return next_page
    return url_for("search.index")


@auth_bp.route("/login", methods=["GET", "POST"])
@anonymous_only
def login():
    if request.method == "POST":
        email = (request.form.get("email") or "").strip().lower()
        password = request.form.get("password") or ""

        user = User.query.filter_by(email=email).first()
        if not user or not user.check_password(password):
            flash("Invalid email or password.", "danger")
            return render_template("login.html"), 401

        login_user(user)
        flash("Logged in successfully.", "success")
        return redirect(_after_login_target())
    return render_template("login.html")


MIN_PASSWORD_LENGTH = 6


def registration_problem(email: str, password: str, confirm: str) -> str | None:
    if "@" not in email:
        return "Please enter a valid email address."
    if len(password) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters."
    if password != confirm:
        return "Passwords do not match."
    if User.query.filter_by(email=email).first():
        return "Email already registered."
    return None


# signup creates the account and its empty profile row together
@auth_bp.route("/register", methods=["GET", "POST"])
@anonymous_only
def register():
    if request.method == "POST":
        email = (request.form.get("email") or "").strip().lower()
        password = request.form.get("password") or ""

        problem = registration_problem(email, password, request.form.get("confirm") or "")
        if problem:
            flash(problem, "warning")
            return render_template("register.html"), 400

        user = User(email=email)
        user.set_password(password)
        db.session.add(user)
        db.session.flush()
        db.session.add(Profile(id=user.id))
        db.session.commit()
        flash("Account created. Please log in.", "success")
        return redirect(url_for("auth.login"))
    return render_template("register.html")


# logout ends the session and returns to the search page
@auth_bp.route("/logout")
@login_required
def logout():
    logout_user()
    flash("Logged out.", "info")
    return redirect(url_for("search.index"))
