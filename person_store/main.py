from __future__ import annotations

import sys
from typing import Optional

import typer

from person_store.config import Settings, get_settings
from person_store.errors import PersistenceError
from person_store.infrastructure.db_factory import SessionFactory
from person_store.utils.logging import configure_logging, get_logger
from person_store.workflow import DEFAULT_LOOKUP_ID, WorkflowOptions, run_workflow

app = typer.Typer(help="person-store: insert, retrieve and delete a Person through a session.")
log = get_logger(__name__)


def _prepare() -> Settings:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    return settings


@app.callback(invoke_without_command=True)
def default(ctx: typer.Context) -> None:
    """
    Run the full workflow with the configured profile when no command is given.
    """
    if ctx.invoked_subcommand is None:
        run_workflow(_prepare(), echo=typer.echo)


@app.command()
def info() -> None:
    """
    Show the effective connection profile (password redacted).
    """
    settings = get_settings()
    typer.echo(
        f"unit={settings.persistence_unit} | driver={settings.db_driver} | "
        f"DB={settings.redacted_dsn()} | schema={settings.schema_policy.value}"
    )


@app.command()
def run(
    name: Optional[str] = typer.Option(
        None, "--name", "-n", help="Name of the person to insert (default from settings)."
    ),
    email: Optional[str] = typer.Option(
        None, "--email", "-e", help="E-mail of the person to insert (default from settings)."
    ),
    skip_insert: bool = typer.Option(
        False,
        "--skip-insert",
        help="Skip the insert step and look up an existing row instead.",
    ),
    lookup_id: Optional[int] = typer.Option(
        None,
        "--id",
        help=f"Id to retrieve (default: the inserted id, or {DEFAULT_LOOKUP_ID} with --skip-insert).",
    ),
    keep: bool = typer.Option(False, "--keep", help="Skip the delete step."),
) -> None:
    """
    Insert a person, print it back by id, then delete it.
    """
    settings = _prepare()
    options = WorkflowOptions(
        name=name,
        email=email,
        insert=not skip_insert,
        delete=not keep,
        lookup_id=lookup_id,
    )
    run_workflow(settings, options, echo=typer.echo)


@app.command("init-schema")
def init_schema() -> None:
    """
    Apply the configured schema policy and exit.
    """
    settings = _prepare()
    with SessionFactory(settings) as factory:
        factory.apply_schema()
    typer.echo(f"Schema policy '{settings.schema_policy.value}' applied.")


def main() -> None:
    try:
        app()
    except PersistenceError as exc:
        log.error("Workflow failed", exc_info=exc)
        typer.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
