import sqlite3
from datetime import date

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event
from sqlalchemy.engine import Engine

db = SQLAlchemy()


BOOK_INSTANCE_STATUSES = ("Available", "Maintenance", "Loaned", "Reserved")


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    """
    SQLite ignores foreign keys unless asked per connection; the delete
    guards rely on them.
    """
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def _iso_or_raw(value):
    """Format a date as YYYY-MM-DD; pass anything else (e.g. rejected input) through."""
    if isinstance(value, date):
        return value.strftime("%Y-%m-%d")
    return value or ""


ORDINAL_SUFFIXES = {1: "st", 2: "nd", 3: "rd"}


def _ordinal(day: int) -> str:
    if 11 <= day % 100 <= 13:
        return f"{day}th"
    return f"{day}{ORDINAL_SUFFIXES.get(day % 10, 'th')}"


book_genre = db.Table(
    "book_genre",
    db.Column("book_id", db.Integer, db.ForeignKey("books.id", ondelete="CASCADE"), primary_key=True),
    db.Column("genre_id", db.Integer, db.ForeignKey("genres.id"), primary_key=True),
)


class Author(db.Model):
    """
    Author with optional life dates. Referenced by many books.
    """
    __tablename__ = 'authors'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    first_name = db.Column(db.String(100), nullable=False)
    family_name = db.Column(db.String(100), nullable=False)
    date_of_birth = db.Column(db.Date, nullable=True)
    date_of_death = db.Column(db.Date, nullable=True)

    books = db.relationship("Book", back_populates="author", passive_deletes="all")

    @property
    def name(self):
        return f"{self.family_name}, {self.first_name}"

    @property
    def url(self):
        return f"/catalog/author/{self.id}"

    @property
    def date_of_birth_formatted(self):
        return _iso_or_raw(self.date_of_birth)

    @property
    def date_of_death_formatted(self):
        return _iso_or_raw(self.date_of_death)

    @property
    def lifespan(self):
        """'1920-01-02 - 1992-04-06', with either side left blank when unknown."""
        if not self.date_of_birth and not self.date_of_death:
            return ""
        return f"{self.date_of_birth_formatted} - {self.date_of_death_formatted}".strip()

    def __repr__(self):
        return f"Author(id = {self.id}, name = {self.name})"

    def __str__(self):
        return self.name


class Genre(db.Model):
    """
    Genre a book can be filed under. Names are unique.
    """
    __tablename__ = 'genres'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    name = db.Column(db.String(100), nullable=False, unique=True)

    books = db.relationship("Book", secondary=book_genre, back_populates="genres")

    @property
    def url(self):
        return f"/catalog/genre/{self.id}"

    def __repr__(self):
        return f"<Genre id={self.id} name='{self.name}'>"

    def __str__(self):
        return self.name


class Book(db.Model):
    """
    Book storing title, summary, ISBN, its author and any number of genres.
    """
    __tablename__ = 'books'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    title = db.Column(db.String(200), nullable=False)
    summary = db.Column(db.Text, nullable=False)
    isbn = db.Column(db.String(20), nullable=False)

    author_id = db.Column(db.Integer, db.ForeignKey("authors.id"), nullable=False)

    author = db.relationship("Author", back_populates="books")
    genres = db.relationship("Genre", secondary=book_genre, back_populates="books")
    instances = db.relationship("BookInstance", back_populates="book", passive_deletes="all")

    @property
    def url(self):
        return f"/catalog/book/{self.id}"

    def __repr__(self):
        return f"<Book id={self.id} title='{self.title}'>"

    def __str__(self):
        return self.title


class BookInstance(db.Model):
    """
    A borrowable copy of a book.
    """
    __tablename__ = 'book_instances'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    book_id = db.Column(db.Integer, db.ForeignKey("books.id"), nullable=False)
    imprint = db.Column(db.String(200), nullable=False)
    status = db.Column(
        db.Enum(*BOOK_INSTANCE_STATUSES, name="book_instance_status", native_enum=False),
        nullable=False,
        default="Maintenance",
    )
    due_back = db.Column(db.Date, nullable=True, default=date.today)

    book = db.relationship("Book", back_populates="instances")

    @property
    def url(self):
        return f"/catalog/bookinstance/{self.id}"

    @property
    def due_back_formatted(self):
        """Long form, e.g. 'January 15th, 2020'."""
        if not isinstance(self.due_back, date):
            return self.due_back or ""
        return f"{self.due_back.strftime('%B')} {_ordinal(self.due_back.day)}, {self.due_back.year}"

    @property
    def due_back_formatted_for_update(self):
        return _iso_or_raw(self.due_back)

    def __repr__(self):
        return f"<BookInstance id={self.id} book_id={self.book_id} status='{self.status}'>"
