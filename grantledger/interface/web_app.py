"""Mini README: FastAPI JSON API over the grant ledger.

Structure:
    * create_application - application factory wiring routes to a ledger store.
    * Request models - pydantic payloads for projects, expenses and routing.

Budget and expense forms are filled in display units (thousands by default);
the API converts them to base units before the validator sees them and echoes
them back under ``display_units``. Balances are
never stored: ``/balance`` aggregates on read and the ``/live`` websocket
streams snapshots from a reconciliation session for as long as the client
stays connected. Sending the text ``refresh`` over the socket forces a
reload.
"""

from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Dict, List, Optional

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..access import AccessRouter, Identity
from ..configuration import get_settings
from ..errors import LedgerError, NotFoundError, StoreError, ValidationError
from ..ledger import (
    BudgetAllocation,
    BudgetLedgerService,
    Expense,
    InMemoryLedgerStore,
    LedgerStore,
    ProjectDetails,
    ReconciliationSession,
    SessionState,
    SnapshotUpdate,
    to_base_units,
    to_display_amount,
)
from ..logging_utils import get_logger

LOGGER = get_logger(__name__)


class ProjectPayload(BaseModel):
    """Project form values; budget fields are in display units."""

    name: str
    responsible_email: str
    responsible_name: Optional[str] = None
    total_budget: Optional[Decimal] = None
    materials: Optional[Decimal] = None
    student_labor: Optional[Decimal] = None
    equipment: Optional[Decimal] = None
    activity: Optional[Decimal] = None
    allowance: Optional[Decimal] = None

    def details(self) -> ProjectDetails:
        return ProjectDetails(
            name=self.name,
            responsible_email=self.responsible_email,
            responsible_name=self.responsible_name,
        )

    def allocation(self, scale: int) -> BudgetAllocation:
        return BudgetAllocation.from_display_units(
            self.model_dump(exclude={"name", "responsible_email", "responsible_name"}),
            scale=scale,
        )


class ExpensePayload(BaseModel):
    """Expense form values; ``amount`` is in display units."""

    category: str
    amount: Decimal
    description: str


class ExpenseEditPayload(BaseModel):
    category: Optional[str] = None
    amount: Optional[Decimal] = None
    description: Optional[str] = None

    def changes(self, scale: int) -> Dict[str, object]:
        changes = self.model_dump(exclude_none=True)
        if "amount" in changes:
            changes["amount"] = to_base_units(changes["amount"], scale, "amount")
        return changes


class IdentityPayload(BaseModel):
    email: str
    identity_id: str
    roles: List[str] = Field(default_factory=list)


def _error_response(error: LedgerError) -> HTTPException:
    """Translate ledger errors into HTTP errors with displayable details."""

    if isinstance(error, ValidationError):
        detail: Dict[str, object] = {"message": str(error)}
        if error.result is not None:
            detail.update(
                allocated_sum=error.result.allocated_sum,
                total=error.result.total,
                excess=error.result.excess,
                invalid_fields=list(error.result.invalid_fields),
            )
        return HTTPException(status_code=422, detail=detail)
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    LOGGER.error("Ledger store failure surfaced to client: %s", error)
    return HTTPException(status_code=503, detail=str(error))


def _expense_payload(expense: Expense, scale: int) -> Dict[str, object]:
    body = expense.as_dict()
    body["display_units"] = {"amount": to_display_amount(expense.amount, scale)}
    return jsonable_encoder(body)


def _update_payload(update: SnapshotUpdate) -> Dict[str, object]:
    return {
        "state": update.state.value,
        "degraded": update.degraded,
        "error": update.error,
        "snapshot": update.snapshot.as_dict() if update.snapshot else None,
    }


def create_application(store: Optional[LedgerStore] = None) -> FastAPI:
    """Create the FastAPI application bound to ``store``."""

    settings = get_settings()
    app = FastAPI(title="Grant Ledger", version="0.1.0")
    if store is None:
        store = InMemoryLedgerStore(seed_demo_data=settings.seed_demo_data)
    service = BudgetLedgerService(store)
    router = AccessRouter(store)
    scale = settings.display_unit_scale
    app.state.store = store

    @app.post("/route")
    async def route_identity(payload: IdentityPayload) -> JSONResponse:
        """Tell the client where an authenticated identity should land."""

        identity = Identity.build(payload.email, payload.identity_id, payload.roles)
        try:
            destination = await router.route(identity)
        except LedgerError as error:
            raise _error_response(error) from error
        return JSONResponse(destination.as_dict())

    @app.get("/projects")
    async def list_projects() -> JSONResponse:
        try:
            projects = await service.list_projects()
        except LedgerError as error:
            raise _error_response(error) from error
        LOGGER.debug("Returning %s projects", len(projects))
        return JSONResponse({"projects": [project.as_dict() for project in projects]})

    @app.post("/projects", status_code=201)
    async def create_project(payload: ProjectPayload) -> JSONResponse:
        try:
            allocation = payload.allocation(scale)
        except ValueError as error:
            raise HTTPException(status_code=422, detail=str(error)) from error
        try:
            project = await service.create_project(payload.details(), allocation)
        except LedgerError as error:
            raise _error_response(error) from error
        return JSONResponse(project.as_dict(), status_code=201)

    @app.get("/projects/{project_id}")
    async def get_project(project_id: str) -> JSONResponse:
        """Return the project with its budget also expressed in display units."""

        try:
            project = await service.get_project(project_id)
        except LedgerError as error:
            raise _error_response(error) from error
        body = project.as_dict()
        body["display_units"] = project.allocation.to_display_units(scale)
        return JSONResponse(jsonable_encoder(body))

    @app.put("/projects/{project_id}")
    async def update_project(project_id: str, payload: ProjectPayload) -> JSONResponse:
        try:
            allocation = payload.allocation(scale)
        except ValueError as error:
            raise HTTPException(status_code=422, detail=str(error)) from error
        try:
            project = await service.update_project(project_id, allocation, payload.details())
        except LedgerError as error:
            raise _error_response(error) from error
        return JSONResponse(project.as_dict())

    @app.delete("/projects/{project_id}")
    async def delete_project(project_id: str) -> JSONResponse:
        try:
            await service.delete_project(project_id)
        except LedgerError as error:
            raise _error_response(error) from error
        return JSONResponse({"deleted": project_id})

    @app.get("/projects/{project_id}/balance")
    async def project_balance(project_id: str) -> JSONResponse:
        try:
            snapshot = await service.balance(project_id)
        except LedgerError as error:
            raise _error_response(error) from error
        return JSONResponse(snapshot.as_dict())

    @app.get("/projects/{project_id}/expenses")
    async def project_expenses(project_id: str, show_all: bool = False) -> JSONResponse:
        """Recent expenses, newest first; ``show_all`` lifts the default limit."""

        limit = None if show_all else settings.recent_expense_limit
        try:
            expenses, total_count = await service.expense_history(project_id, limit)
        except LedgerError as error:
            raise _error_response(error) from error
        return JSONResponse(
            {
                "expenses": [_expense_payload(expense, scale) for expense in expenses],
                "total_count": total_count,
            }
        )

    @app.post("/projects/{project_id}/expenses", status_code=201)
    async def record_expense(project_id: str, payload: ExpensePayload) -> JSONResponse:
        try:
            amount = to_base_units(payload.amount, scale, "amount")
        except ValueError as error:
            raise HTTPException(status_code=422, detail=str(error)) from error
        try:
            expense = await service.record_expense(
                project_id, payload.category, amount, payload.description
            )
        except LedgerError as error:
            raise _error_response(error) from error
        return JSONResponse(_expense_payload(expense, scale), status_code=201)

    @app.patch("/expenses/{expense_id}")
    async def edit_expense(expense_id: str, payload: ExpenseEditPayload) -> JSONResponse:
        try:
            changes = payload.changes(scale)
        except ValueError as error:
            raise HTTPException(status_code=422, detail=str(error)) from error
        try:
            expense = await service.edit_expense(expense_id, changes)
        except LedgerError as error:
            raise _error_response(error) from error
        return JSONResponse(_expense_payload(expense, scale))

    @app.delete("/expenses/{expense_id}")
    async def remove_expense(expense_id: str) -> JSONResponse:
        try:
            await service.remove_expense(expense_id)
        except LedgerError as error:
            raise _error_response(error) from error
        return JSONResponse({"deleted": expense_id})

    @app.websocket("/projects/{project_id}/live")
    async def live_balance(websocket: WebSocket, project_id: str) -> None:
        """Stream balance snapshots until the client disconnects."""

        await websocket.accept()
        updates: "asyncio.Queue[SnapshotUpdate]" = asyncio.Queue()
        session = ReconciliationSession(store)
        session.on_snapshot_changed(updates.put_nowait)
        try:
            state = await session.open(project_id)
        except (StoreError, ValueError) as error:
            await websocket.send_json({"state": "closed", "error": str(error), "snapshot": None})
            await websocket.close(code=1011)
            return
        if state is SessionState.NOT_FOUND:
            await websocket.send_json(_update_payload(updates.get_nowait()))
            await websocket.close(code=4404)
            return

        incoming = asyncio.ensure_future(websocket.receive_text())
        outgoing: Optional[asyncio.Future] = None
        try:
            while True:
                outgoing = asyncio.ensure_future(updates.get())
                done, _ = await asyncio.wait(
                    {incoming, outgoing}, return_when=asyncio.FIRST_COMPLETED
                )
                if outgoing in done:
                    update = outgoing.result()
                    await websocket.send_json(_update_payload(update))
                    if update.state is SessionState.NOT_FOUND:
                        await websocket.close(code=4404)
                        break
                else:
                    outgoing.cancel()
                if incoming in done:
                    message = incoming.result()
                    if message.strip().lower() == "refresh":
                        try:
                            await session.refresh()
                        except (StoreError, RuntimeError) as error:
                            LOGGER.warning("Live refresh for %s failed: %s", project_id, error)
                    incoming = asyncio.ensure_future(websocket.receive_text())
        except WebSocketDisconnect:
            LOGGER.debug("Live balance client for %s disconnected", project_id)
        finally:
            incoming.cancel()
            if outgoing is not None:
                outgoing.cancel()
            session.close()

    return app
