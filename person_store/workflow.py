"""
Session workflow runner: insert, retrieve and delete one Person.

Usage (example from CLI):
    from person_store.config import get_settings
    from person_store.workflow import WorkflowOptions, run_workflow

    result = run_workflow(get_settings(), WorkflowOptions(name="A", email="a@x.com"))
    print(result["retrieved"])

Steps run strictly in sequence:
1. acquire a session from a SessionFactory built on the given profile
2. insert a new person in its own transaction (optional)
3. retrieve a person by id and print it
4. delete the retrieved person in its own transaction (optional)
5. close the session and the factory, on every exit path
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Optional, TypedDict

from person_store.config import Settings
from person_store.domain.models import Person
from person_store.infrastructure.db_factory import ConnectFn, SessionFactory
from person_store.utils.logging import get_logger
from person_store.utils.profiler import ProfileStats, profile_block

log = get_logger(__name__)

# Row looked up when the insert step is skipped; it must already exist.
DEFAULT_LOOKUP_ID = 1


class WorkflowResult(TypedDict, total=False):
    """
    Summary of a workflow run.

    `retrieved` is None when the lookup found nothing.
    """

    persistence_unit: str
    inserted: Optional[Person]
    lookup_id: int
    retrieved: Optional[Person]
    removed: bool
    steps: Dict[str, float]


@dataclass
class WorkflowOptions:
    """
    Per-run switches. Name and email fall back to the profile's sample values.

    Attributes
    ----------
    insert : bool
        Run the insert step. When False, `lookup_id` (default 1) must name a row
        that already exists.
    delete : bool
        Run the delete step on the retrieved person.
    lookup_id : int | None
        Id to retrieve. Defaults to the id assigned by the insert step.
    """

    name: Optional[str] = None
    email: Optional[str] = None
    insert: bool = True
    delete: bool = True
    lookup_id: Optional[int] = None


def _round_float(value: float, decimals: int = 4) -> float:
    return round(value, decimals)


def _record_step(steps: Dict[str, float], stats: ProfileStats) -> None:
    steps[stats.label] = _round_float(stats.duration_seconds)
    log.info(
        f"[STEP DONE] {stats.label}",
        extra={
            "step": stats.label,
            "duration_seconds": steps[stats.label],
            "rss_bytes": stats.rss_bytes,
        },
    )


def run_workflow(
    settings: Settings,
    options: Optional[WorkflowOptions] = None,
    *,
    connect: Optional[ConnectFn] = None,
    echo: Callable[[str], None] = print,
) -> WorkflowResult:
    """
    Run the acquire / insert / retrieve / delete / release sequence.

    Parameters
    ----------
    settings : Settings
        Connection profile; passed explicitly, never read from globals here.
    options : WorkflowOptions | None
        Per-run switches; defaults insert and delete a person built from the
        profile's sample name/email.
    connect : callable | None
        Connection constructor forwarded to the SessionFactory (tests inject fakes).
    echo : callable
        Sink for the retrieved person's text form. Defaults to stdout.

    Returns
    -------
    WorkflowResult
        What was inserted, retrieved and removed, plus per-step durations.

    Raises
    ------
    ConfigurationError
        When the session cannot be acquired.
    TransactionError
        When the insert or delete transaction fails (it has been rolled back).
    InvalidEntityError
        When the delete step receives a not-found result.
    """
    options = options or WorkflowOptions()
    steps: Dict[str, float] = {}
    result = WorkflowResult(persistence_unit=settings.persistence_unit, steps=steps)

    log.info(
        "[WORKFLOW START]",
        extra={
            "persistence_unit": settings.persistence_unit,
            "insert": options.insert,
            "delete": options.delete,
        },
    )

    with SessionFactory(settings, connect=connect) as factory:
        with profile_block("acquire") as stats:
            session = factory.create_session()
        _record_step(steps, stats)

        with session:
            lookup_id = options.lookup_id
            if options.insert:
                person = Person(
                    name=options.name if options.name is not None else settings.sample_name,
                    email=options.email if options.email is not None else settings.sample_email,
                )
                log.info("[STEP START] insert", extra={"step": "insert"})
                with profile_block("insert") as stats:
                    with session.transaction():
                        saved = session.persist(person)
                _record_step(steps, stats)
                result["inserted"] = saved
                if lookup_id is None:
                    lookup_id = saved.id

            if lookup_id is None:
                lookup_id = DEFAULT_LOOKUP_ID
            result["lookup_id"] = lookup_id

            log.info("[STEP START] retrieve", extra={"step": "retrieve", "person_id": lookup_id})
            with profile_block("retrieve") as stats:
                found = session.find(lookup_id)
            _record_step(steps, stats)
            result["retrieved"] = found
            if found is None:
                log.warning("Person not found", extra={"person_id": lookup_id})
            else:
                echo(str(found))

            if options.delete:
                log.info("[STEP START] delete", extra={"step": "delete", "person_id": lookup_id})
                with profile_block("delete") as stats:
                    with session.transaction():
                        result["removed"] = session.remove(found)
                _record_step(steps, stats)

    log.info(
        "[WORKFLOW COMPLETE]",
        extra={"persistence_unit": settings.persistence_unit, "steps": dict(steps)},
    )
    return result


__all__ = [
    "DEFAULT_LOOKUP_ID",
    "WorkflowOptions",
    "WorkflowResult",
    "run_workflow",
]
