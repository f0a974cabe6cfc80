# tests/conftest.py
import os
import sys
from datetime import date

import pytest
from flask import template_rendered
from sqlalchemy.orm import selectinload

# get the project root (the folder that has app.py and catalog.py)
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from app import create_app  # noqa: E402
from config import TestConfig  # noqa: E402
from data_models import db, Author, Book, Genre, BookInstance  # noqa: E402

LOAD_REFERENCES = {
    Author: (selectinload(Author.books),),
    Genre: (selectinload(Genre.books),),
    Book: (selectinload(Book.author), selectinload(Book.genres), selectinload(Book.instances)),
    BookInstance: (selectinload(BookInstance.book),),
}


@pytest.fixture
def app():
    """
    Fresh app per test. Each app gets its own in-memory database.
    """
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def rendered(app):
    """
    Records (template name, context) for every template the app renders.
    """
    recorded = []

    def record(sender, template, context, **extra):
        recorded.append((template.name, context))

    template_rendered.connect(record, app)
    yield recorded
    template_rendered.disconnect(record, app)


@pytest.fixture
def seed(app):
    """
    Save records and return their ids, in the order given.
    """
    def _seed(*records):
        with app.app_context():
            db.session.add_all(records)
            db.session.commit()
            return [record.id for record in records]
    return _seed


@pytest.fixture
def fetch(app):
    """
    Read one record, references loaded, outside any request.
    """
    def _fetch(model, ident):
        with app.app_context():
            return db.session.get(model, ident, options=LOAD_REFERENCES.get(model, ()))
    return _fetch


@pytest.fixture
def count(app):
    def _count(model):
        with app.app_context():
            return db.session.scalar(db.select(db.func.count()).select_from(model))
    return _count


def make_author(first_name="Jane", family_name="Austen", **extra):
    return Author(first_name=first_name, family_name=family_name, **extra)


def make_book(author, title="Emma", genres=(), **extra):
    fields = {"summary": "A novel of manners.", "isbn": "9780141439587"}
    fields.update(extra)
    return Book(title=title, author=author, genres=list(genres), **fields)


def make_instance(book, imprint="Penguin, 2003", status="Available", due_back=date(2020, 1, 15)):
    return BookInstance(book=book, imprint=imprint, status=status, due_back=due_back)


def make_genre(name="Fiction"):
    return Genre(name=name)
