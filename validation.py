"""
Form validation and sanitization for the catalog.

A rule is a plain callable ``rule(value) -> (value, error_message_or_None)``.
A Field runs its rules in order and keeps going after a failure, so every
problem with a submission is reported at once. A FormSchema applies its fields
to a submitted form and trims/escapes whatever fields it does not declare.
"""

import re
from collections import namedtuple
from datetime import datetime

from markupsafe import escape

from data_models import BOOK_INSTANCE_STATUSES


FieldError = namedtuple("FieldError", ["field", "message"])

ISO_DATE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")


def as_list(raw):
    """
    Normalize a possibly multi-valued form input to a list.

    Absent -> [], a single value -> [value], a list or tuple -> list of it.
    """
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        return list(raw)
    return [raw]


# --- Rules ---

def trim(value):
    if isinstance(value, str):
        value = value.strip()
    return value, None


def escape_html(value):
    if isinstance(value, str):
        value = str(escape(value))
    return value, None


def required(message):
    def rule(value):
        if value is None or not str(value).strip():
            return value, message
        return value, None
    return rule


def max_length(limit, message):
    def rule(value):
        if isinstance(value, str) and len(value) > limit:
            return value, message
        return value, None
    return rule


def charset(disallowed, message):
    """Fail when the value contains any character matched by ``disallowed``."""
    pattern = re.compile(disallowed)

    def rule(value):
        if isinstance(value, str) and pattern.search(value):
            return value, message
        return value, None
    return rule


def iso_date(message):
    """
    Accept a 'YYYY-MM-DD' calendar date and re-express it as 'MM-DD-YYYY'.

    Unpadded dates such as 2020-1-5 and impossible ones such as 2020-02-30
    fail.
    """
    def rule(value):
        if not isinstance(value, str) or not ISO_DATE.fullmatch(value):
            return value, message
        try:
            parsed = datetime.strptime(value, "%Y-%m-%d")
        except (TypeError, ValueError):
            return value, message
        return parsed.strftime("%m-%d-%Y"), None
    return rule


def to_date(value):
    """'MM-DD-YYYY' -> datetime.date. Values that never parsed are kept for redisplay."""
    try:
        return datetime.strptime(value, "%m-%d-%Y").date(), None
    except (TypeError, ValueError):
        return value, None


def one_of(choices, message):
    def rule(value):
        if value not in choices:
            return value, message
        return value, None
    return rule


def to_int(message):
    """Convert a selected record id to int. Blank input is left to ``required``."""
    def rule(value):
        if value in (None, ""):
            return value, None
        try:
            return int(value), None
        except (TypeError, ValueError):
            return value, message
    return rule


# --- Fields and schemas ---

class Field:
    def __init__(self, name, *rules, optional=False, multiple=False):
        self.name = name
        self.rules = rules
        self.optional = optional
        self.multiple = multiple

    def extract(self, form):
        if self.multiple:
            if hasattr(form, "getlist"):
                return form.getlist(self.name)
            return as_list(form.get(self.name))
        return form.get(self.name, "")

    def run(self, value):
        messages = []
        for rule in self.rules:
            value, message = rule(value)
            if message:
                messages.append(message)
        return value, messages

    def clean(self, raw):
        """Return (normalized value, [error messages])."""
        if not self.multiple:
            return self.run(raw)

        values, messages = [], []
        for item in raw:
            value, item_messages = self.run(item)
            values.append(value)
            messages.extend(item_messages)
        return values, messages


class ValidationResult:
    def __init__(self, values, errors):
        self.values = values
        self.errors = errors

    @property
    def ok(self):
        return not self.errors

    def errors_for(self, field):
        return [error.message for error in self.errors if error.field == field]

    def __repr__(self):
        return f"ValidationResult(values={self.values!r}, errors={self.errors!r})"


class FormSchema:
    def __init__(self, *fields, sanitize_rest=True):
        self.fields = fields
        self.sanitize_rest = sanitize_rest

    def validate(self, form):
        values, errors = {}, []

        for field in self.fields:
            raw = field.extract(form)
            # Optional fields left blank are not provided at all.
            if field.optional and not raw:
                continue
            value, messages = field.clean(raw)
            values[field.name] = value
            errors.extend(FieldError(field.name, message) for message in messages)

        if self.sanitize_rest:
            declared = {field.name for field in self.fields}
            for name in form.keys():
                if name in declared:
                    continue
                value, _ = trim(form.get(name))
                values[name], _ = escape_html(value)

        return ValidationResult(values, errors)


# --- Catalog forms ---

AUTHOR_FORM = FormSchema(
    Field(
        "first_name",
        trim,
        required("First name cannot be blank."),
        max_length(100, "First name must be at most 100 characters."),
        charset(r"[^A-Za-z' -]", "First name contains invalid character(s)."),
        escape_html,
    ),
    Field(
        "family_name",
        trim,
        required("Last name cannot be blank."),
        max_length(100, "Last name must be at most 100 characters."),
        charset(r"[^A-Za-z' ]", "Last name contains invalid character(s)."),
        escape_html,
    ),
    Field("date_of_birth", trim, iso_date("Invalid date"), to_date, optional=True),
    Field("date_of_death", trim, iso_date("Invalid date"), to_date, optional=True),
)

BOOK_FORM = FormSchema(
    Field("title", trim, required("Title cannot be empty"), escape_html),
    Field("summary", trim, required("Summary cannot be empty"), escape_html),
    Field("author", trim, required("Author cannot be empty"), to_int("Author must be a valid selection")),
    Field("isbn", trim, required("ISBN cannot be empty"), escape_html),
    Field("genre", trim, to_int("Genre must be a valid selection"), multiple=True),
)

GENRE_FORM = FormSchema(
    Field("name", trim, required("Genre name required"), escape_html),
)

BOOK_INSTANCE_FORM = FormSchema(
    Field("book", trim, required("Book must not be empty"), to_int("Book must be a valid selection")),
    Field("imprint", trim, required("Imprint must not be empty"), escape_html),
    Field("due_back", trim, iso_date("Invalid date"), to_date, optional=True),
    Field(
        "status",
        trim,
        required("Status must not be empty"),
        one_of(BOOK_INSTANCE_STATUSES, "Status must be one of " + ", ".join(BOOK_INSTANCE_STATUSES)),
    ),
)
