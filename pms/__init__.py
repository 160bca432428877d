from __future__ import annotations

import click
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from pms.core.auth import auth_bp
from pms.core.config import Config
from pms.core.extensions import db, login_manager, migrate
from pms.core.logging import setup_logging
from pms.core.models import User, seed_demo_data
from pms.workflow import public_bp, workflow_bp


def create_app(config_object: type[Config] | None = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_object or Config)
    setup_logging(app.config.get("LOG_LEVEL", "INFO"), app.config.get("LOG_FORMAT", "standard"))

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    app.register_blueprint(auth_bp)
    app.register_blueprint(workflow_bp)
    app.register_blueprint(public_bp)

    register_cli(app)
    register_routes(app)
    return app


def register_routes(app: Flask) -> None:
    @app.get("/health")
    def health():
        return jsonify({"status": "ok"})

    @app.errorhandler(HTTPException)
    def http_error(error: HTTPException):
        return jsonify({"error": error.name.lower().replace(" ", "_"), "message": error.description}), error.code


def register_cli(app: Flask) -> None:
    @app.cli.command("seed-demo")
    @click.option("--reset", is_flag=True, help="Delete existing data before seed.")
    def seed_demo(reset: bool) -> None:
        """Seed demo users, parties and properties."""
        if reset:
            db.drop_all()
            db.create_all()
        if not User.query.first():
            seed_demo_data(db.session)
            click.echo("Demo data seeded.")
        else:
            click.echo("Seed skipped: existing users found.")

    @app.cli.command("sequence-show")
    @click.option("--prefix", type=str, required=True, help="Number prefix, e.g. DEM or DEM-CERT.")
    @click.option("--year", type=int, required=True, help="Sequence year.")
    def sequence_show(prefix: str, year: int) -> None:
        """Print the last value handed out for a prefix and year."""
        from pms.workflow.sequences import current_value

        value = current_value(prefix, year)
        if value is None:
            click.echo(f"{prefix.upper()}-{year}: no numbers allocated")
        else:
            click.echo(f"{prefix.upper()}-{year}: {value}")

    @app.cli.command("sequence-reset")
    @click.option("--prefix", type=str, required=True, help="Number prefix, e.g. DEM or DEM-CERT.")
    @click.option("--year", type=int, required=True, help="Sequence year.")
    @click.option("--value", type=int, default=0, show_default=True, help="Last value already in use.")
    def sequence_reset(prefix: str, year: int, value: int) -> None:
        """Reseed a counter after importing numbered records."""
        from pms.workflow.sequences import reset_counter

        try:
            reset_counter(prefix, year, value)
        except ValueError as exc:
            raise click.BadParameter(str(exc)) from exc
        db.session.commit()
        click.echo(f"{prefix.upper()}-{year} reset to {value}")

    @app.cli.command("sla-breaches")
    def sla_breaches_command() -> None:
        """List connection cases past their SLA deadline."""
        from pms.workflow.reports import sla_breaches

        rows = sla_breaches()
        if not rows:
            click.echo("No SLA breaches.")
            return
        for row in rows:
            click.echo(
                f"{row['case_number']} [{row['status']}] due={row['sla_due']} overdue={row['hours_overdue']}h"
            )


@login_manager.user_loader
def load_user(user_id: str) -> User | None:
    return db.session.get(User, int(user_id))
