from flask import Blueprint, render_template, request, redirect, url_for, flash
from flask_login import login_required, current_user
from .models import Profile
from . import db

profile_bp = Blueprint("profile", __name__, url_prefix="/profile")


@profile_bp.route("/", methods=["GET", "POST"])
@login_required
def profile():
    record = db.session.get(Profile, current_user.id)

    if request.method == "POST":
        if not record:
            record = Profile(id=current_user.id)
        record.first_name = (request.form.get("first_name") or "").strip() or None
        record.last_name = (request.form.get("last_name") or "").strip() or None
        record.phone = (request.form.get("phone") or "").strip() or None
        record.address = (request.form.get("address") or "").strip() or None
        db.session.add(record)
        db.session.commit()
        flash("Profile updated.", "success")
        return redirect(url_for("profile.profile"))

    name = None
    if record and record.first_name and record.last_name:
        name = f"{record.first_name} {record.last_name}"

    return render_template(
        "profile.html",
        profile=record,
        email=current_user.email,
        name=name or "Not provided",
        phone=(record.phone if record else None) or "Not provided",
        address=(record.address if record else None) or "Not provided",
        member_since=record.created_at if record else None,
    )
