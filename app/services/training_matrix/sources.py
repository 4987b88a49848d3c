"""
Training Matrix — source fetching.

Five logical sources feed one refresh cycle:

    people                  users table                     required
    modules                 modules table                   required
    documents               documents table                 required
    assignments             user_assignments table          required
    historical_completions  user_training_completions       optional

``fetch_snapshot`` fans the five reads out concurrently and only returns once
every one of them has settled, so a snapshot never mixes a stale subset with
fresh data. A failing required source raises ``MatrixSourceError``; a failing
historical source is logged and treated as empty (the table is not
provisioned in every deployment).

``SqlSourceGateway`` runs the blocking SQLAlchemy queries on a thread pool,
each inside its own app context (and therefore its own session).
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from flask import Flask
from sqlalchemy import select

from app.core.exceptions import MatrixSourceError
from app.models import db
from app.models.training import (
    Document,
    Module,
    User,
    UserAssignment,
    UserTrainingCompletion,
)

logger = logging.getLogger(__name__)

REQUIRED_SOURCES = ("people", "modules", "documents", "assignments")
HISTORICAL_SOURCE = "historical_completions"

Row = Mapping[str, Any]


@dataclass(frozen=True)
class SourceSnapshot:
    """Raw rows from one fetch cycle, in source order."""

    people: tuple[Row, ...] = ()
    modules: tuple[Row, ...] = ()
    documents: tuple[Row, ...] = ()
    assignments: tuple[Row, ...] = ()
    historical_completions: tuple[Row, ...] = ()
    historical_available: bool = True


class SourceGateway(ABC):
    """Async read access to the five training-matrix sources.

    Row shapes:
        people       {auth_id, first_name, last_name, department_id, role_id}
        modules      {id, name}      ordered by name
        documents    {id, title}     ordered by title
        assignments / historical_completions
                     {auth_id, item_id, item_type, completed_at}
    """

    @abstractmethod
    async def fetch_people(self) -> list[Row]: ...

    @abstractmethod
    async def fetch_modules(self) -> list[Row]: ...

    @abstractmethod
    async def fetch_documents(self) -> list[Row]: ...

    @abstractmethod
    async def fetch_assignments(self) -> list[Row]: ...

    @abstractmethod
    async def fetch_historical_completions(self) -> list[Row]: ...


async def fetch_snapshot(gateway: SourceGateway, timeout: float | None = None) -> SourceSnapshot:
    """Read every source concurrently and assemble one ``SourceSnapshot``.

    Raises:
        MatrixSourceError: a required source failed, or the whole fetch
            exceeded ``timeout`` seconds (``source="all"``).
    """
    names = REQUIRED_SOURCES + (HISTORICAL_SOURCE,)
    gathered = asyncio.gather(
        *(getattr(gateway, f"fetch_{name}")() for name in names),
        return_exceptions=True,
    )
    try:
        if timeout:
            results = await asyncio.wait_for(gathered, timeout)
        else:
            results = await gathered
    except asyncio.TimeoutError as exc:
        logger.error("Training matrix fetch timed out after %ss", timeout)
        raise MatrixSourceError("all", f"timed out after {timeout}s") from exc

    data: dict[str, tuple] = {}
    failures: list[tuple[str, BaseException]] = []
    historical_available = True
    for name, result in zip(names, results):
        if isinstance(result, Exception):
            if name == HISTORICAL_SOURCE:
                logger.info(
                    "Historical completions query failed (table may not exist yet): %s", result,
                    extra={"event_type": "training_matrix_source_degraded", "source": name},
                )
                historical_available = False
                data[name] = ()
                continue
            logger.error(
                "Training matrix source %s query failed: %s", name, result,
                extra={"event_type": "training_matrix_source_error", "source": name},
            )
            failures.append((name, result))
            continue
        if isinstance(result, BaseException):
            raise result
        data[name] = tuple(result or ())

    if failures:
        name, exc = failures[0]
        raise MatrixSourceError(name, str(exc)) from exc

    return SourceSnapshot(historical_available=historical_available, **data)


# ── SQLAlchemy-backed gateway ────────────────────────────────────────────────


def _rows(stmt) -> list[dict]:
    return [dict(row._mapping) for row in db.session.execute(stmt).all()]


def _select_people() -> list[dict]:
    return _rows(
        select(User.auth_id, User.first_name, User.last_name, User.department_id, User.role_id)
        .order_by(User.id)
    )


def _select_modules() -> list[dict]:
    return _rows(select(Module.ref_id.label("id"), Module.name).order_by(Module.name, Module.id))


def _select_documents() -> list[dict]:
    return _rows(
        select(Document.ref_id.label("id"), Document.title).order_by(Document.title, Document.id)
    )


def _select_assignments() -> list[dict]:
    return _rows(
        select(
            UserAssignment.auth_id,
            UserAssignment.item_id,
            UserAssignment.item_type,
            UserAssignment.completed_at,
        ).order_by(UserAssignment.id)
    )


def _select_historical_completions() -> list[dict]:
    return _rows(
        select(
            UserTrainingCompletion.auth_id,
            UserTrainingCompletion.item_id,
            UserTrainingCompletion.item_type,
            UserTrainingCompletion.completed_at,
        ).order_by(UserTrainingCompletion.id)
    )


class SqlSourceGateway(SourceGateway):
    """Reads the matrix sources from the application database.

    ``max_workers`` bounds how many queries run at once. In-memory SQLite
    shares a single connection, so the testing config sets it to 1.
    """

    def __init__(self, app: Flask, max_workers: int = 5) -> None:
        self._app = app
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="training-matrix-fetch",
        )

    def _run(self, query: Callable[[], list[dict]]) -> list[dict]:
        with self._app.app_context():
            return query()

    async def _query(self, query: Callable[[], list[dict]]) -> list[dict]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, self._run, query)

    async def fetch_people(self) -> list[dict]:
        return await self._query(_select_people)

    async def fetch_modules(self) -> list[dict]:
        return await self._query(_select_modules)

    async def fetch_documents(self) -> list[dict]:
        return await self._query(_select_documents)

    async def fetch_assignments(self) -> list[dict]:
        return await self._query(_select_assignments)

    async def fetch_historical_completions(self) -> list[dict]:
        return await self._query(_select_historical_completions)

    def close(self) -> None:
        self._executor.shutdown(wait=False)
