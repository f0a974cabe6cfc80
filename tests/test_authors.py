# tests/test_authors.py
from datetime import date

import pytest

from conftest import make_author, make_book
from data_models import Author


def _valid_author_form(**overrides):
    form = {"first_name": "Jane", "family_name": "Austen", "date_of_birth": "", "date_of_death": ""}
    form.update(overrides)
    return form


def test_author_list_sorted_by_family_name(client, seed, rendered):
    seed(make_author("Mary", "Shelley"), make_author("Jane", "Austen"), make_author("Anne", "Bronte"),
         make_author("Charlotte", "Bronte"))

    response = client.get("/catalog/authors")

    assert response.status_code == 200
    name, context = rendered[0]
    assert name == "author_list.html"
    assert [author.name for author in context["author_list"]] == [
        "Austen, Jane", "Bronte, Anne", "Bronte, Charlotte", "Shelley, Mary",
    ]


def test_empty_author_list(client, rendered):
    response = client.get("/catalog/authors")
    assert response.status_code == 200
    assert rendered[0][1]["author_list"] == []


def test_author_detail_lists_books(client, seed, rendered):
    jane = make_author()
    author_id, _, _ = seed(jane, make_book(jane, "Emma"), make_book(jane, "Persuasion"))

    response = client.get(f"/catalog/author/{author_id}")

    assert response.status_code == 200
    name, context = rendered[0]
    assert name == "author_detail.html"
    assert context["author"].id == author_id
    assert sorted(book.title for book in context["book_list"]) == ["Emma", "Persuasion"]


def test_author_detail_not_found(client, rendered):
    response = client.get("/catalog/author/42")
    assert response.status_code == 404
    name, context = rendered[0]
    assert name == "error.html"
    assert context["message"] == "Author not found"
    assert context["status"] == 404


def test_author_create_form(client, rendered):
    assert client.get("/catalog/author/create").status_code == 200
    assert rendered[0][0] == "author_form.html"


def test_create_author_redirects_to_new_record(client, fetch):
    response = client.post("/catalog/author/create", data=_valid_author_form(date_of_birth="1775-12-16"))

    assert response.status_code == 302
    assert response.headers["Location"] == "/catalog/author/1"
    stored = fetch(Author, 1)
    assert (stored.first_name, stored.family_name) == ("Jane", "Austen")
    assert stored.date_of_birth == date(1775, 12, 16)
    assert stored.date_of_death is None


@pytest.mark.parametrize("field", ["first_name", "family_name"])
@pytest.mark.parametrize("blank", ["", "   "])
def test_create_author_rejects_blank_names(client, rendered, count, field, blank):
    response = client.post("/catalog/author/create", data=_valid_author_form(**{field: blank}))

    assert response.status_code == 200
    name, context = rendered[0]
    assert name == "author_form.html"
    assert [error.field for error in context["errors"]] == [field]
    assert count(Author) == 0


def test_create_author_rejects_digits_in_name(client, rendered, count):
    client.post("/catalog/author/create", data=_valid_author_form(first_name="J4ne"))
    errors = rendered[0][1]["errors"]
    assert [error.message for error in errors] == ["First name contains invalid character(s)."]
    assert count(Author) == 0


def test_rejected_author_form_keeps_user_input(client, rendered):
    client.post("/catalog/author/create", data=_valid_author_form(family_name="", date_of_birth="2020-02-30"))

    context = rendered[0][1]
    assert context["author"].first_name == "Jane"
    assert context["author"].date_of_birth_formatted == "2020-02-30"
    assert [error.message for error in context["errors"]] == ["Last name cannot be blank.", "Invalid date"]


def test_create_author_stores_escaped_apostrophe(client, fetch):
    client.post("/catalog/author/create", data=_valid_author_form(first_name="Flannery", family_name="O'Connor"))
    assert fetch(Author, 1).family_name == "O&#39;Connor"


def test_delete_page_lists_blocking_books(client, seed, rendered):
    jane = make_author()
    author_id, _ = seed(jane, make_book(jane))

    response = client.get(f"/catalog/author/{author_id}/delete")

    assert response.status_code == 200
    name, context = rendered[0]
    assert name == "author_delete.html"
    assert [book.title for book in context["book_list"]] == ["Emma"]


def test_delete_page_for_missing_author_goes_back_to_list(client):
    response = client.get("/catalog/author/7/delete")
    assert response.status_code == 302
    assert response.headers["Location"] == "/catalog/authors"


def test_delete_author_with_books_is_refused(client, seed, rendered, fetch):
    jane = make_author()
    author_id, _ = seed(jane, make_book(jane))

    response = client.post(f"/catalog/author/{author_id}/delete")

    assert response.status_code == 200
    assert rendered[0][0] == "author_delete.html"
    assert fetch(Author, author_id) is not None


def test_delete_author_without_books(client, seed, fetch):
    (author_id,) = seed(make_author())

    response = client.post(f"/catalog/author/{author_id}/delete")

    assert response.status_code == 302
    assert response.headers["Location"] == "/catalog/authors"
    assert fetch(Author, author_id) is None


def test_delete_author_by_form_field(client, seed, fetch):
    (author_id,) = seed(make_author())

    response = client.post("/catalog/author/delete", data={"authorid": str(author_id)})

    assert response.status_code == 302
    assert fetch(Author, author_id) is None


def test_delete_missing_author_is_not_found(client):
    assert client.post("/catalog/author/5/delete").status_code == 404
    assert client.post("/catalog/author/delete", data={}).status_code == 404


def test_update_form_prefilled(client, seed, rendered):
    (author_id,) = seed(make_author(date_of_birth=date(1775, 12, 16)))

    response = client.get(f"/catalog/author/{author_id}/update")

    assert response.status_code == 200
    context = rendered[0][1]
    assert context["update_flag"] is True
    assert context["author"].date_of_birth_formatted == "1775-12-16"
    assert b'value="1775-12-16"' in response.data


def test_update_form_for_missing_author(client):
    assert client.get("/catalog/author/3/update").status_code == 404
    assert client.post("/catalog/author/3/update", data=_valid_author_form()).status_code == 404


def test_update_author_replaces_every_field(client, seed, fetch):
    (author_id,) = seed(make_author("Jane", "Austin", date_of_birth=date(1775, 12, 16)))

    response = client.post(
        f"/catalog/author/{author_id}/update",
        data=_valid_author_form(family_name="Austen", date_of_death="1817-07-18"),
    )

    assert response.status_code == 302
    assert response.headers["Location"] == f"/catalog/author/{author_id}"
    stored = fetch(Author, author_id)
    assert stored.family_name == "Austen"
    assert stored.date_of_birth is None
    assert stored.date_of_death == date(1817, 7, 18)


def test_rejected_update_leaves_record_alone(client, seed, rendered, fetch):
    (author_id,) = seed(make_author("Jane", "Austen"))

    response = client.post(f"/catalog/author/{author_id}/update", data=_valid_author_form(first_name=""))

    assert response.status_code == 200
    context = rendered[0][1]
    assert context["update_flag"] is True
    assert context["author"].id == author_id
    assert fetch(Author, author_id).first_name == "Jane"
