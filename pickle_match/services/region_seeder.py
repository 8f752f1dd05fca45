"""Seed the database with the default play region."""

from flask import current_app

from pickle_match.app import db
from pickle_match.models import Region


def default_region_slug():
    """Configured default region slug, normalised the way it is stored."""
    return str(current_app.config.get('DEFAULT_REGION_SLUG') or '').strip().lower()


def default_region():
    slug = default_region_slug()
    if not slug:
        return None
    return Region.query.filter_by(slug=slug).first()


def seed_regions():
    """Insert the configured default region when it is missing."""
    slug = default_region_slug()
    if not slug:
        return 0
    if Region.query.filter_by(slug=slug).first():
        return 0

    name = str(current_app.config.get('DEFAULT_REGION_NAME') or slug.title()).strip()
    try:
        db.session.add(Region(slug=slug, name=name))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return 1
