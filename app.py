"""
LocalLibrary - a library catalog built with Flask and SQLAlchemy.

Features:
- Authors, books, genres and book copies (instances), each with list,
  detail, create, update and delete pages
- Form validation and sanitization, with errors shown next to the fields
- Deletes refused while other records still depend on the target
- Home page with catalog counts
"""

import logging
import os

from flask import Flask, redirect, render_template, url_for
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from catalog import catalog_bp
from config import Config
from data_models import db

logger = logging.getLogger(__name__)


def register_error_handlers(app):
    """
    Not-found and storage errors end on the shared error page.
    """

    @app.errorhandler(HTTPException)
    def http_error(error):
        return render_template("error.html", title=error.name, message=error.description, status=error.code), error.code

    @app.errorhandler(SQLAlchemyError)
    def storage_error(error):
        db.session.rollback()
        logger.exception("Storage error")
        return render_template("error.html", title="Error", message="A storage error occurred.", status=500), 500

    @app.errorhandler(500)
    def internal_error(error):
        return render_template("error.html", title="Error", message="Something went wrong.", status=500), 500


def create_app(config_object=Config, **overrides):
    """
    Application factory.
    """
    app = Flask(__name__)
    app.config.from_object(config_object)
    app.config.update(overrides)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    db.init_app(app)
    app.register_blueprint(catalog_bp)
    register_error_handlers(app)

    @app.route("/")
    def home():
        return redirect(url_for("catalog.index"))

    return app


if __name__ == "__main__":
    app = create_app()
    with app.app_context():
        os.makedirs(os.path.join(app.root_path, "data"), exist_ok=True)
        db.create_all()

    app.run(debug=True)
