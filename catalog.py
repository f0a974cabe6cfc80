"""
Catalog request handlers: list, detail, create, update and delete pages for
authors, books, genres and book instances.

Every mutating POST runs its form through the validation pipeline first. A
rejected submission re-renders the form with the user's input and the errors;
an accepted one is written and answered with a redirect to the record's page.
Deletes are refused (the confirmation page is shown again) while dependent
records exist.
"""

import logging
from datetime import date

from flask import Blueprint, render_template, redirect, request, url_for, abort
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from data_models import db, Author, Book, Genre, BookInstance, BOOK_INSTANCE_STATUSES
from lookups import gather, all_of, filtered, count_of, by_id
from validation import (
    FieldError, AUTHOR_FORM, BOOK_FORM, GENRE_FORM, BOOK_INSTANCE_FORM,
)

logger = logging.getLogger(__name__)

catalog_bp = Blueprint("catalog", __name__, url_prefix="/catalog")


def _target_id(url_id, form_field):
    """Delete POSTs name their record in the URL or, on the id-less route, in the form."""
    if url_id is not None:
        return url_id
    ident = request.form.get(form_field, type=int)
    if ident is None:
        abort(404, description="Record not found")
    return ident


def _save(record):
    """
    Persist ``record``. Returns False when the store rejects it because a
    referenced record does not exist.
    """
    db.session.add(record)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return False
    return True


def _delete(model, ident):
    """
    Remove one row with a plain DELETE statement so the ORM never touches
    dependent rows. Returns False when foreign keys still reference it.
    """
    try:
        db.session.execute(db.delete(model).where(model.id == ident))
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return False
    return True


def _authors_by_name():
    return all_of(Author, Author.family_name.asc(), Author.first_name.asc())


@catalog_bp.route("/")
def index():
    """
    Home page: how many of each record the library holds.
    """
    counts = gather(
        book_count=count_of(Book),
        book_instance_count=count_of(BookInstance),
        book_instance_available_count=count_of(BookInstance, BookInstance.status == "Available"),
        author_count=count_of(Author),
        genre_count=count_of(Genre),
    )
    return render_template("index.html", title="Local Library Home", data=counts)


# ---------------- Authors ----------------

def _author_from(values, author_id=None):
    return Author(
        id=author_id,
        first_name=values.get("first_name"),
        family_name=values.get("family_name"),
        date_of_birth=values.get("date_of_birth"),
        date_of_death=values.get("date_of_death"),
    )


def _author_with_books(author_id):
    return gather(
        author=by_id(Author, author_id),
        book_list=filtered(Book, Book.author_id == author_id),
    )


@catalog_bp.route("/authors")
def author_list():
    """
    All authors, sorted by family name then first name.
    """
    authors = _authors_by_name()()
    return render_template("author_list.html", title="Author List", author_list=authors)


@catalog_bp.route("/author/<int:author_id>")
def author_detail(author_id):
    """
    One author and the books they wrote.
    """
    results = _author_with_books(author_id)
    if results["author"] is None:
        abort(404, description="Author not found")
    return render_template("author_detail.html", title="Author Detail", **results)


@catalog_bp.route("/author/create", methods=["GET"])
def author_create_get():
    return render_template("author_form.html", title="Create Author")


@catalog_bp.route("/author/create", methods=["POST"])
def author_create_post():
    """
    Validate the submitted author and save it, or show the form again with
    the errors.
    """
    result = AUTHOR_FORM.validate(request.form)
    author = _author_from(result.values)

    if not result.ok:
        return render_template("author_form.html", title="Create Author", author=author, errors=result.errors)

    db.session.add(author)
    db.session.commit()
    logger.info(f"Created author {author.id}")
    return redirect(author.url)


@catalog_bp.route("/author/<int:author_id>/delete", methods=["GET"])
def author_delete_get(author_id):
    """
    Confirmation page. A missing author has nothing to confirm, so go back to
    the list.
    """
    results = _author_with_books(author_id)
    if results["author"] is None:
        return redirect(url_for("catalog.author_list"))
    return render_template("author_delete.html", title="Delete Author", **results)


@catalog_bp.route("/author/<int:author_id>/delete", methods=["POST"])
@catalog_bp.route("/author/delete", methods=["POST"], defaults={"author_id": None})
def author_delete_post(author_id):
    """
    Delete the author unless books still reference them.
    """
    author_id = _target_id(author_id, "authorid")
    results = _author_with_books(author_id)
    if results["author"] is None:
        abort(404, description="Author not found")

    if results["book_list"] or not _delete(Author, author_id):
        logger.info(f"Refused to delete author {author_id}: books still reference it")
        return render_template("author_delete.html", title="Delete Author", **_author_with_books(author_id))

    logger.info(f"Deleted author {author_id}")
    return redirect(url_for("catalog.author_list"))


@catalog_bp.route("/author/<int:author_id>/update", methods=["GET"])
def author_update_get(author_id):
    author = db.get_or_404(Author, author_id, description="Author not found")
    return render_template("author_form.html", title="Update Author", author=author, update_flag=True)


@catalog_bp.route("/author/<int:author_id>/update", methods=["POST"])
def author_update_post(author_id):
    """
    Replace every field of an existing author with the validated submission.
    """
    author = db.get_or_404(Author, author_id, description="Author not found")
    result = AUTHOR_FORM.validate(request.form)

    if not result.ok:
        return render_template(
            "author_form.html",
            title="Update Author",
            author=_author_from(result.values, author_id),
            errors=result.errors,
            update_flag=True,
        )

    author.first_name = result.values["first_name"]
    author.family_name = result.values["family_name"]
    author.date_of_birth = result.values.get("date_of_birth")
    author.date_of_death = result.values.get("date_of_death")
    db.session.commit()

    logger.info(f"Updated author {author_id}")
    return redirect(author.url)


# ---------------- Books ----------------

def _book_from(values, book_id=None):
    return Book(
        id=book_id,
        title=values.get("title"),
        summary=values.get("summary"),
        isbn=values.get("isbn"),
        author_id=values.get("author"),
    )


def _book_form(title, book, selected_genres, errors=None, update_flag=False):
    """Render the book form with the author and genre choices it offers."""
    choices = gather(authors=_authors_by_name(), genres=all_of(Genre, Genre.name.asc()))
    return render_template(
        "book_form.html",
        title=title,
        book=book,
        selected_genres=set(selected_genres),
        errors=errors or [],
        update_flag=update_flag,
        **choices,
    )


def _book_with_instances(book_id):
    return gather(
        book=by_id(Book, book_id, selectinload(Book.author), selectinload(Book.genres)),
        book_instances=filtered(BookInstance, BookInstance.book_id == book_id),
    )


def _genres_named_by(values):
    """
    The genres picked on the form, and an error if any of them does not exist.
    """
    genre_ids = {genre_id for genre_id in values.get("genre", []) if isinstance(genre_id, int)}
    genres = filtered(Genre, Genre.id.in_(genre_ids))() if genre_ids else []
    if len(genres) != len(genre_ids):
        return genres, [FieldError("genre", "Genre must be a valid selection")]
    return genres, []


@catalog_bp.route("/books")
def book_list():
    """
    All books in storage order, with their authors.
    """
    books = db.session.scalars(db.select(Book).options(selectinload(Book.author))).all()
    return render_template("book_list.html", title="Book List", book_list=books)


@catalog_bp.route("/book/<int:book_id>")
def book_detail(book_id):
    """
    One book with its author, genres and copies.
    """
    results = _book_with_instances(book_id)
    if results["book"] is None:
        abort(404, description="Book not found")
    return render_template("book_detail.html", title=results["book"].title, **results)


@catalog_bp.route("/book/create", methods=["GET"])
def book_create_get():
    return _book_form("Create Book", book=None, selected_genres=[])


@catalog_bp.route("/book/create", methods=["POST"])
def book_create_post():
    """
    Validate and save a new book. The genre field may be sent zero, one or
    many times.
    """
    result = BOOK_FORM.validate(request.form)
    selected = result.values.get("genre", [])

    if not result.ok:
        return _book_form("Create Book", _book_from(result.values), selected, result.errors)

    genres, errors = _genres_named_by(result.values)
    if errors:
        return _book_form("Create Book", _book_from(result.values), selected, errors)

    book = _book_from(result.values)
    book.genres = genres
    if not _save(book):
        errors = [FieldError("author", "Author must be a valid selection")]
        return _book_form("Create Book", _book_from(result.values), selected, errors)

    logger.info(f"Created book {book.id}")
    return redirect(book.url)


@catalog_bp.route("/book/<int:book_id>/delete", methods=["GET"])
def book_delete_get(book_id):
    """
    Confirmation page listing any copies that block the delete.
    """
    results = _book_with_instances(book_id)
    if results["book"] is None:
        return redirect(url_for("catalog.book_list"))
    return render_template("book_delete.html", title="Delete Book", **results)


@catalog_bp.route("/book/<int:book_id>/delete", methods=["POST"])
@catalog_bp.route("/book/delete", methods=["POST"], defaults={"book_id": None})
def book_delete_post(book_id):
    book_id = _target_id(book_id, "bookid")
    results = _book_with_instances(book_id)
    if results["book"] is None:
        abort(404, description="Book not found")

    if results["book_instances"] or not _delete(Book, book_id):
        logger.info(f"Refused to delete book {book_id}: copies still reference it")
        return render_template("book_delete.html", title="Delete Book", **_book_with_instances(book_id))

    logger.info(f"Deleted book {book_id}")
    return redirect(url_for("catalog.book_list"))


@catalog_bp.route("/book/<int:book_id>/update", methods=["GET"])
def book_update_get(book_id):
    """
    Book form pre-filled with the stored book, its genres checked.
    """
    book = db.get_or_404(Book, book_id, description="Book not found")
    return _book_form("Update Book", book, [genre.id for genre in book.genres], update_flag=True)


@catalog_bp.route("/book/<int:book_id>/update", methods=["POST"])
def book_update_post(book_id):
    book = db.get_or_404(Book, book_id, description="Book not found")
    result = BOOK_FORM.validate(request.form)
    selected = result.values.get("genre", [])

    if not result.ok:
        return _book_form(
            "Update Book", _book_from(result.values, book_id), selected, result.errors, update_flag=True
        )

    # Genres first: loading them may autoflush, and the new author id is only checked on commit.
    genres, errors = _genres_named_by(result.values)
    if errors:
        return _book_form(
            "Update Book", _book_from(result.values, book_id), selected, errors, update_flag=True
        )

    book.genres = genres
    book.title = result.values["title"]
    book.summary = result.values["summary"]
    book.isbn = result.values["isbn"]
    book.author_id = result.values["author"]
    if not _save(book):
        errors = [FieldError("author", "Author must be a valid selection")]
        return _book_form(
            "Update Book", _book_from(result.values, book_id), selected, errors, update_flag=True
        )

    logger.info(f"Updated book {book_id}")
    return redirect(url_for("catalog.book_detail", book_id=book_id))


# ---------------- Genres ----------------

def _genre_with_books(genre_id):
    return gather(
        genre=by_id(Genre, genre_id),
        genre_books=filtered(Book, Book.genres.any(Genre.id == genre_id)),
    )


def _genre_named(name):
    return db.session.scalar(db.select(Genre).filter_by(name=name))


@catalog_bp.route("/genres")
def genre_list():
    genres = all_of(Genre, Genre.name.asc())()
    return render_template("genre_list.html", title="Genre List", genre_list=genres)


@catalog_bp.route("/genre/<int:genre_id>")
def genre_detail(genre_id):
    """
    One genre and the books filed under it.
    """
    results = _genre_with_books(genre_id)
    if results["genre"] is None:
        abort(404, description="Genre not found")
    return render_template("genre_detail.html", title="Genre Detail", **results)


@catalog_bp.route("/genre/create", methods=["GET"])
def genre_create_get():
    return render_template("genre_form.html", title="Create Genre")


@catalog_bp.route("/genre/create", methods=["POST"])
def genre_create_post():
    """
    Create a genre, or redirect to the existing one if the name is taken.
    """
    result = GENRE_FORM.validate(request.form)
    genre = Genre(name=result.values.get("name"))

    if not result.ok:
        return render_template("genre_form.html", title="Create Genre", genre=genre, errors=result.errors)

    existing = _genre_named(genre.name)
    if existing is not None:
        logger.info(f"Genre '{genre.name}' already exists as {existing.id}")
        return redirect(existing.url)

    db.session.add(genre)
    try:
        db.session.commit()
    except IntegrityError:
        # Created by someone else since the lookup above.
        db.session.rollback()
        existing = _genre_named(result.values["name"])
        if existing is None:
            raise
        return redirect(existing.url)

    logger.info(f"Created genre {genre.id}")
    return redirect(genre.url)


@catalog_bp.route("/genre/<int:genre_id>/delete", methods=["GET"])
def genre_delete_get(genre_id):
    results = _genre_with_books(genre_id)
    if results["genre"] is None:
        abort(404, description="Genre not found")
    return render_template("genre_delete.html", title="Delete Genre", **results)


@catalog_bp.route("/genre/<int:genre_id>/delete", methods=["POST"])
@catalog_bp.route("/genre/delete", methods=["POST"], defaults={"genre_id": None})
def genre_delete_post(genre_id):
    """
    Delete the genre unless books are still filed under it.
    """
    genre_id = _target_id(genre_id, "genreid")
    results = _genre_with_books(genre_id)
    if results["genre"] is None:
        abort(404, description="Genre not found")

    if results["genre_books"] or not _delete(Genre, genre_id):
        logger.info(f"Refused to delete genre {genre_id}: books still reference it")
        return render_template("genre_delete.html", title="Delete Genre", **_genre_with_books(genre_id))

    logger.info(f"Deleted genre {genre_id}")
    return redirect(url_for("catalog.genre_list"))


@catalog_bp.route("/genre/<int:genre_id>/update", methods=["GET"])
def genre_update_get(genre_id):
    genre = db.get_or_404(Genre, genre_id, description="Genre not found")
    return render_template("genre_form.html", title="Update Genre", genre=genre, update_flag=True)


@catalog_bp.route("/genre/<int:genre_id>/update", methods=["POST"])
def genre_update_post(genre_id):
    genre = db.get_or_404(Genre, genre_id, description="Genre not found")
    result = GENRE_FORM.validate(request.form)
    errors = list(result.errors)

    if result.ok:
        genre.name = result.values["name"]
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            errors.append(FieldError("name", "Genre name already exists"))
        else:
            logger.info(f"Updated genre {genre_id}")
            return redirect(url_for("catalog.genre_detail", genre_id=genre_id))

    return render_template(
        "genre_form.html",
        title="Update Genre",
        genre=Genre(id=genre_id, name=result.values.get("name")),
        errors=errors,
        update_flag=True,
    )


# ---------------- Book instances ----------------

def _book_instance_from(values, book_instance_id=None):
    fields = {
        "id": book_instance_id,
        "book_id": values.get("book"),
        "imprint": values.get("imprint"),
        "status": values.get("status"),
    }
    # Left out entirely when not given so new copies fall back to today's date.
    if "due_back" in values:
        fields["due_back"] = values["due_back"]
    return BookInstance(**fields)


def _book_instance_form(title, bookinstance, errors=None, update_flag=False):
    books = all_of(Book)()
    return render_template(
        "bookinstance_form.html",
        title=title,
        bookinstance=bookinstance,
        books=books,
        statuses=BOOK_INSTANCE_STATUSES,
        errors=errors or [],
        update_flag=update_flag,
    )


@catalog_bp.route("/bookinstances")
def bookinstance_list():
    """
    Every copy in storage order, with the book it is a copy of.
    """
    instances = db.session.scalars(db.select(BookInstance).options(selectinload(BookInstance.book))).all()
    return render_template("bookinstance_list.html", title="Book Instance List", bookinstance_list=instances)


@catalog_bp.route("/bookinstance/<int:bookinstance_id>")
def bookinstance_detail(bookinstance_id):
    bookinstance = by_id(BookInstance, bookinstance_id, selectinload(BookInstance.book))()
    if bookinstance is None:
        abort(404, description="Book instance not found")
    return render_template("bookinstance_detail.html", title="Book Instance", bookinstance=bookinstance)


@catalog_bp.route("/bookinstance/create", methods=["GET"])
def bookinstance_create_get():
    return _book_instance_form("Create Book Instance", bookinstance=None)


@catalog_bp.route("/bookinstance/create", methods=["POST"])
def bookinstance_create_post():
    result = BOOK_INSTANCE_FORM.validate(request.form)
    bookinstance = _book_instance_from(result.values)

    if not result.ok:
        return _book_instance_form("Create Book Instance", bookinstance, result.errors)

    if not _save(bookinstance):
        errors = [FieldError("book", "Book must be a valid selection")]
        return _book_instance_form("Create Book Instance", _book_instance_from(result.values), errors)

    logger.info(f"Created book instance {bookinstance.id}")
    return redirect(bookinstance.url)


@catalog_bp.route("/bookinstance/<int:bookinstance_id>/delete", methods=["GET"])
def bookinstance_delete_get(bookinstance_id):
    bookinstance = by_id(BookInstance, bookinstance_id, selectinload(BookInstance.book))()
    if bookinstance is None:
        abort(404, description="Book instance not found")
    return render_template("bookinstance_delete.html", title="Delete Book Instance", bookinstance=bookinstance)


@catalog_bp.route("/bookinstance/<int:bookinstance_id>/delete", methods=["POST"])
@catalog_bp.route("/bookinstance/delete", methods=["POST"], defaults={"bookinstance_id": None})
def bookinstance_delete_post(bookinstance_id):
    """
    Nothing depends on a copy, so there is no guard.
    """
    bookinstance_id = _target_id(bookinstance_id, "bookinstanceid")
    db.get_or_404(BookInstance, bookinstance_id, description="Book instance not found")

    _delete(BookInstance, bookinstance_id)
    logger.info(f"Deleted book instance {bookinstance_id}")
    return redirect(url_for("catalog.bookinstance_list"))


@catalog_bp.route("/bookinstance/<int:bookinstance_id>/update", methods=["GET"])
def bookinstance_update_get(bookinstance_id):
    bookinstance = db.get_or_404(BookInstance, bookinstance_id, description="Book instance not found")
    return _book_instance_form("Update Book Instance", bookinstance, update_flag=True)


@catalog_bp.route("/bookinstance/<int:bookinstance_id>/update", methods=["POST"])
def bookinstance_update_post(bookinstance_id):
    """
    Replace every field of an existing copy. A blank due date means today,
    as on create.
    """
    bookinstance = db.get_or_404(BookInstance, bookinstance_id, description="Book instance not found")
    result = BOOK_INSTANCE_FORM.validate(request.form)

    if not result.ok:
        return _book_instance_form(
            "Update Book Instance",
            _book_instance_from(result.values, bookinstance_id),
            result.errors,
            update_flag=True,
        )

    bookinstance.book_id = result.values["book"]
    bookinstance.imprint = result.values["imprint"]
    bookinstance.status = result.values["status"]
    bookinstance.due_back = result.values.get("due_back") or date.today()
    if not _save(bookinstance):
        errors = [FieldError("book", "Book must be a valid selection")]
        return _book_instance_form(
            "Update Book Instance", _book_instance_from(result.values, bookinstance_id), errors, update_flag=True
        )

    logger.info(f"Updated book instance {bookinstance_id}")
    return redirect(url_for("catalog.bookinstance_detail", bookinstance_id=bookinstance_id))
