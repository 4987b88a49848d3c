"""
Training Matrix Service.

Business context:
    The training matrix shows, for every person in scope, the compliance
    status of each module and document they are (or were) required to
    complete. Current assignments take precedence over completions
    preserved from a previous role.

Two ways to get a matrix:
    - One-shot: ``get_training_matrix`` fetches all sources for this request
      and builds a fresh matrix (used by the JSON and export endpoints).
    - Live: ``LiveMatrixHost`` owns a ``MatrixRefresher`` running on its own
      event loop thread and keeps a published matrix current by polling.
      Request handlers read its latest immutable state.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import threading
from typing import Any

from flask import Flask, current_app
from sqlalchemy import select

from app.core.exceptions import LiveRefreshStoppedError
from app.models import db
from app.models.training import Department, Role
from app.services.training_matrix.builder import TrainingMatrix, materialize
from app.services.training_matrix.export import generate_matrix_csv, generate_matrix_excel
from app.services.training_matrix.filters import MatrixFilters
from app.services.training_matrix.refresh import (
    FetchFn,
    MatrixRefresher,
    RefreshState,
    validate_interval,
)
from app.services.training_matrix.sources import SqlSourceGateway, fetch_snapshot

logger = logging.getLogger(__name__)

EXPORT_FORMATS = {
    "csv": ("text/csv", "training-matrix-with-history.csv"),
    "excel": (
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "training-matrix-with-history.xlsx",
    ),
}


# ── One-shot matrix ──────────────────────────────────────────────────────────


def get_source_gateway(app: Flask | None = None) -> SqlSourceGateway:
    """Return the app's shared SQL gateway, creating it on first use."""
    app = app or current_app._get_current_object()
    gateway = app.extensions.get("training_matrix_gateway")
    if gateway is None:
        gateway = SqlSourceGateway(
            app, max_workers=app.config.get("TRAINING_MATRIX_FETCH_WORKERS", 5),
        )
        app.extensions["training_matrix_gateway"] = gateway
    return gateway


def make_fetch(app: Flask) -> FetchFn:
    """Zero-argument coroutine function that loads one ``SourceSnapshot``."""
    return functools.partial(
        fetch_snapshot,
        get_source_gateway(app),
        timeout=app.config.get("TRAINING_MATRIX_FETCH_TIMEOUT"),
    )


def get_training_matrix(filters: MatrixFilters | None = None) -> TrainingMatrix:
    """Fetch every source now and build the matrix for ``filters``.

    Raises:
        MatrixSourceError: A required source could not be read.
    """
    app = current_app._get_current_object()
    snapshot = asyncio.run(make_fetch(app)())
    return materialize(snapshot, filters)


def export_training_matrix(filters: MatrixFilters | None, fmt: str) -> tuple[Any, str, str]:
    """Build the matrix and serialize it.

    Returns:
        (content, mimetype, filename)

    Raises:
        ValueError: Unsupported format.
        MatrixSourceError: A required source could not be read.
    """
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported format '{fmt}'.")
    matrix = get_training_matrix(filters)
    content = generate_matrix_csv(matrix) if fmt == "csv" else generate_matrix_excel(matrix)
    mimetype, filename = EXPORT_FORMATS[fmt]
    logger.info(
        "Training matrix exported",
        extra={"event_type": "training_matrix_export", "export_format": fmt},
    )
    return content, mimetype, filename


def list_filter_options(department_id: str | None = None) -> dict:
    """Department and role options for the matrix filter bar.

    Role options are narrowed to ``department_id`` when one is selected.
    Rows with a blank name/title are left out.
    """
    departments = db.session.execute(
        select(Department).order_by(Department.name)
    ).scalars().all()
    roles = db.session.execute(select(Role).order_by(Role.title)).scalars().all()

    dept_options = [
        {"id": str(d.id), "name": d.name}
        for d in departments
        if d.name and d.name.strip()
    ]
    role_options = [
        {
            "id": str(r.id),
            "title": r.title,
            "department_id": str(r.department_id) if r.department_id is not None else None,
        }
        for r in roles
        if r.title and r.title.strip()
    ]
    if department_id:
        role_options = [r for r in role_options if r["department_id"] == str(department_id)]
    return {"departments": dept_options, "roles": role_options}


# ── Live matrix host ─────────────────────────────────────────────────────────


class LiveMatrixHost:
    """Runs a ``MatrixRefresher`` on a dedicated event-loop thread.

    Other threads never touch the refresher directly: commands are posted
    with ``call_soon_threadsafe`` and reads go through ``state``, which is
    an immutable snapshot swapped atomically by the refresher.
    """

    def __init__(
        self,
        fetch: FetchFn,
        *,
        auto_refresh: bool = True,
        interval_seconds: int = 30,
    ) -> None:
        self._fetch = fetch
        self._auto_refresh = auto_refresh
        self._interval = validate_interval(interval_seconds)
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._refresher: MatrixRefresher | None = None
        self._ready = threading.Event()

    @classmethod
    def init_app(cls, app: Flask) -> "LiveMatrixHost | None":
        """Start the live host when ``TRAINING_MATRIX_LIVE_ENABLED`` is set."""
        if not app.config.get("TRAINING_MATRIX_LIVE_ENABLED"):
            logger.info("Training matrix live refresh disabled")
            return None
        host = cls(
            make_fetch(app),
            auto_refresh=app.config.get("TRAINING_MATRIX_AUTO_REFRESH", True),
            interval_seconds=app.config.get("TRAINING_MATRIX_REFRESH_INTERVAL", 30),
        )
        host.start()
        app.extensions["training_matrix_live"] = host
        return host

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def state(self) -> RefreshState | None:
        refresher = self._refresher
        return refresher.state if refresher is not None else None

    def start(self, timeout: float = 5.0) -> None:
        if self.running:
            return
        self._ready.clear()
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._run, name="training-matrix-refresh", daemon=True,
        )
        self._thread.start()
        self._ready.wait(timeout)
        logger.info(
            "Training matrix live refresh started: auto_refresh=%s interval=%ss",
            self._auto_refresh, self._interval,
        )

    def _run(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._refresher = MatrixRefresher(
            self._fetch,
            auto_refresh=self._auto_refresh,
            interval_seconds=self._interval,
        )
        self._loop.call_soon(self._refresher.start)
        self._ready.set()
        try:
            self._loop.run_forever()
        finally:
            pending = asyncio.all_tasks(self._loop)
            for task in pending:
                task.cancel()
            if pending:
                self._loop.run_until_complete(
                    asyncio.gather(*pending, return_exceptions=True)
                )
            self._loop.close()

    def _post(self, fn, *args, **kwargs) -> None:
        if not self.running:
            raise LiveRefreshStoppedError("Training matrix live host is not running")
        try:
            self._loop.call_soon_threadsafe(functools.partial(fn, *args, **kwargs))
        except RuntimeError as exc:
            # loop closed between the running check and the call
            raise LiveRefreshStoppedError("Training matrix live host is not running") from exc

    def request_refresh(self) -> None:
        self._post(self._refresher.request_refresh)

    def apply_filters(self, filters: MatrixFilters) -> None:
        self._post(self._refresher.apply_filters, filters)

    def configure(self, *, auto_refresh: bool | None = None, interval_seconds: int | None = None) -> None:
        if interval_seconds is not None:
            interval_seconds = validate_interval(interval_seconds)
        self._post(
            self._refresher.configure,
            auto_refresh=auto_refresh,
            interval_seconds=interval_seconds,
        )

    def stop(self, timeout: float = 5.0) -> None:
        if not self.running:
            return
        self._post(self._shutdown)
        self._thread.join(timeout)
        logger.info("Training matrix live refresh stopped")

    def _shutdown(self) -> None:
        self._refresher.dispose()
        self._loop.stop()
