from flask import Flask, request
from werkzeug.exceptions import HTTPException
import click
import logging

from config import Config
from extensions import db
from errors import ApiError
from logging_setup import setup_logging
from responses import envelope
from routes import api
import reconcile

log = logging.getLogger(__name__)


def create_app(overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    if not app.testing:
        setup_logging(app.config["LOG_LEVEL"], app.config["LOG_FILE"])
    app.json.sort_keys = False

    # Initialize extensions
    db.init_app(app)

    with app.app_context():
        db.create_all()

    app.register_blueprint(api)
    register_error_handlers(app)
    register_commands(app)

    @app.after_request
    def log_request(response):
        log.debug("%s %s -> %s", request.method, request.full_path.rstrip("?"), response.status_code)
        return response

    return app


def register_error_handlers(app):

    @app.errorhandler(ApiError)
    def handle_api_error(err):
        if err.status_code >= 500:
            log.error("%s: %s", err.message, err.data)
        return envelope(err.message, err.data, err.status_code)

    @app.errorhandler(HTTPException)
    def handle_http_error(err):
        return envelope(err.name, {}, err.code)

    @app.errorhandler(Exception)
    def handle_unexpected(err):
        log.exception("unhandled error on %s %s", request.method, request.path)
        return envelope("Internal server error", str(err), 500)


def register_commands(app):

    @app.cli.command("reconcile")
    @click.option("--dry-run", is_flag=True, help="Only report drift, change nothing.")
    def reconcile_command(dry_run):
        """Rebuild every user's pendingTasks from the tasks' assignedUser."""
        report = reconcile.reconcile(dry_run=dry_run)
        if report.clean:
            click.echo("References are consistent.")
            return
        for drift in report.drifts:
            click.echo(f"user {drift.user_id}: missing {drift.missing}, extra {drift.extra}")
        if report.dangling:
            click.echo(f"tasks assigned to missing users: {report.dangling}")
        click.echo("Dry run, nothing changed." if dry_run else "Repaired.")


if __name__ == "__main__":
    create_app().run(debug=True)
