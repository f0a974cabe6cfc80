"""
Helpers for the reads a catalog page needs before it can render.
"""

import logging

from data_models import db

logger = logging.getLogger(__name__)


def gather(**lookups):
    """
    Run a fixed set of named lookups and return their results by name.

    All lookups share the request's database session, so they run one after
    another. The first one that raises aborts the group and the exception
    propagates unchanged; no partial results are returned.

    Example:
        results = gather(authors=all_authors, genres=all_genres)
        results["authors"], results["genres"]
    """
    results = {}
    for name, lookup in lookups.items():
        results[name] = lookup()
    logger.debug(f"Gathered lookups: {', '.join(results)}")
    return results


def all_of(model, *order_by):
    """Lookup returning every row of ``model``, optionally ordered."""
    def lookup():
        return db.session.scalars(db.select(model).order_by(*order_by)).all()
    return lookup


def filtered(model, *criteria):
    """Lookup returning the rows of ``model`` matching ``criteria`` in storage order."""
    def lookup():
        return db.session.scalars(db.select(model).where(*criteria)).all()
    return lookup


def count_of(model, *criteria):
    """Lookup counting rows of ``model`` matching ``criteria``."""
    def lookup():
        return db.session.scalar(db.select(db.func.count()).select_from(model).where(*criteria))
    return lookup


def by_id(model, ident, *options):
    """Lookup returning the ``model`` row with primary key ``ident``, or None.

    ``options`` are loader options, e.g. ``selectinload(Book.author)`` to
    resolve references together with the record.
    """
    def lookup():
        return db.session.get(model, ident, options=options)
    return lookup
