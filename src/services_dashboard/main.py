# app/main.py
import logging
import os
from io import BytesIO
from pathlib import Path

from fastapi import FastAPI, Depends, HTTPException, Query, status, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, StreamingResponse
from fastapi.templating import Jinja2Templates

import openpyxl
from openpyxl.styles import Font, Alignment, PatternFill
from sqlalchemy.orm import Session

from . import database
from .app import schemas
from .app.gateway import ServiceGateway
from .cache import TaggedCache
from .filters import SERVICES_PATH, SEARCH_DEBOUNCE_SECONDS, update_query

# --- Logging Setup ---
logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)

# --- Template Setup ---
templates_path = Path(__file__).parent / "templates"
templates = Jinja2Templates(directory=templates_path)

# error_kind -> HTTP status for failed operations
_FAILURE_STATUS = {
    "validation": 422,
    "not_found": status.HTTP_404_NOT_FOUND,
    "persistence": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


# --- Dependencies ---
def get_gateway(request: Request, db: Session = Depends(database.get_db)) -> ServiceGateway:
    """Gateway bound to this request's session and the app-wide listing cache."""
    cache = request.app.state.service_cache
    return ServiceGateway(db, notifier=cache, cache=cache)


def _result_response(result: schemas.ServiceResult, success_code: int = status.HTTP_200_OK) -> JSONResponse:
    code = success_code if result.success else _FAILURE_STATUS.get(result.error_kind, status.HTTP_500_INTERNAL_SERVER_ERROR)
    return JSONResponse(status_code=code, content=result.model_dump(mode="json", by_alias=True))


def _listing_filters(request: Request) -> tuple[str | None, schemas.StatusFilter]:
    """The search and status the dashboard was opened with, carried through form posts."""
    params = request.query_params
    return params.get("search") or None, schemas.StatusFilter.parse(params.get("status"))


def _listing_url(search: str | None, status_filter: schemas.StatusFilter) -> str:
    query = update_query(update_query("", "search", search or ""), "status", status_filter.value)
    return f"{SERVICES_PATH}?{query}" if query else SERVICES_PATH


def create_app(cache: TaggedCache | None = None) -> FastAPI:
    # In production, use migrations (Alembic). create_all doesn't recreate existing tables.
    database.create_db_and_tables()

    app = FastAPI(
        title="Services Dashboard",
        description="Create, search, filter, edit and delete offered services.",
        version="1.0.0",
    )
    app.state.service_cache = cache if cache is not None else TaggedCache()

    # --- UI Endpoints ---

    def _render_dashboard(
        request: Request,
        gateway: ServiceGateway,
        search: str | None,
        status_filter: schemas.StatusFilter,
        form: dict | None = None,
        result: schemas.ServiceResult | None = None,
        editing: schemas.Service | None = None,
        status_code: int = status.HTTP_200_OK,
    ):
        services = gateway.list_services(search=search, status=status_filter)
        listing_url = _listing_url(search, status_filter)
        return templates.TemplateResponse(
            request,
            "services.html",
            {
                "services": services,
                "search": search or "",
                "status_filter": status_filter.value,
                "form": form or {},
                "result": result,
                "editing": editing,
                "debounce_ms": int(SEARCH_DEBOUNCE_SECONDS * 1000),
                "services_path": SERVICES_PATH,
                "listing_url": listing_url,
                # "?search=..&status=.." to append to form actions and links, or ""
                "listing_query": listing_url[len(SERVICES_PATH):],
            },
            status_code=status_code,
        )

    @app.get(SERVICES_PATH, response_class=HTMLResponse, tags=["Web UI"], summary="Services dashboard")
    def services_page(
        request: Request,
        search: str | None = None,
        status_value: str | None = Query(None, alias="status"),
        gateway: ServiceGateway = Depends(get_gateway),
    ):
        """Lists services, filtered by the ``search`` and ``status`` query parameters."""
        status_filter = schemas.StatusFilter.parse(status_value)
        return _render_dashboard(request, gateway, search, status_filter)

    @app.post(SERVICES_PATH, response_class=HTMLResponse, tags=["Web UI"], summary="Create a service from the dashboard form")
    async def create_service_page(request: Request, gateway: ServiceGateway = Depends(get_gateway)):
        search, status_filter = _listing_filters(request)
        form = dict(await request.form())
        result = gateway.create_service(form)
        if result.success:
            return RedirectResponse(url=_listing_url(search, status_filter), status_code=status.HTTP_303_SEE_OTHER)
        # Keep the form open with what the user typed, under the same filters.
        return _render_dashboard(
            request, gateway, search, status_filter,
            form=form, result=result, status_code=_FAILURE_STATUS[result.error_kind],
        )

    @app.get(SERVICES_PATH + "/export", tags=["Web UI"], summary="Download the filtered listing as Excel")
    def export_services(
        search: str | None = None,
        status_value: str | None = Query(None, alias="status"),
        gateway: ServiceGateway = Depends(get_gateway),
    ):
        status_filter = schemas.StatusFilter.parse(status_value)
        services = gateway.list_services(search=search, status=status_filter)

        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = "Services"

        header_fill = PatternFill(start_color="366092", end_color="366092", fill_type="solid")
        header_font = Font(bold=True, color="FFFFFF")
        header_alignment = Alignment(horizontal="center", vertical="center")

        headers = ["ID", "Name", "Description", "Price", "Active", "Featured", "Created At", "Updated At"]
        for col_num, header in enumerate(headers, 1):
            cell = ws.cell(row=1, column=col_num)
            cell.value = header
            cell.fill = header_fill
            cell.font = header_font
            cell.alignment = header_alignment

        for row_num, service in enumerate(services, 2):
            ws.cell(row=row_num, column=1, value=service.id)
            ws.cell(row=row_num, column=2, value=service.name)
            ws.cell(row=row_num, column=3, value=service.description)
            ws.cell(row=row_num, column=4, value=service.price)
            ws.cell(row=row_num, column=5, value="Yes" if service.is_active else "No")
            ws.cell(row=row_num, column=6, value="Yes" if service.is_featured else "No")
            ws.cell(row=row_num, column=7, value=service.created_at)
            ws.cell(row=row_num, column=8, value=service.updated_at)

        for col in ws.columns:
            longest = max(len(str(cell.value or "")) for cell in col)
            ws.column_dimensions[col[0].column_letter].width = min(longest + 2, 50)

        output = BytesIO()
        wb.save(output)
        output.seek(0)

        logger.info(f"Exported {len(services)} service(s) to Excel")
        return StreamingResponse(
            output,
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            headers={"Content-Disposition": "attachment; filename=services_export.xlsx"},
        )

    @app.get(SERVICES_PATH + "/{service_id}/edit", response_class=HTMLResponse, tags=["Web UI"], summary="Edit form for a service")
    def edit_service_page(request: Request, service_id: str, gateway: ServiceGateway = Depends(get_gateway)):
        result = gateway.get_service(service_id)
        if not result.success:
            raise HTTPException(status_code=_FAILURE_STATUS[result.error_kind], detail=result.error)
        search, status_filter = _listing_filters(request)
        return _render_dashboard(request, gateway, search, status_filter, editing=result.service)

    @app.post(SERVICES_PATH + "/{service_id}", response_class=HTMLResponse, tags=["Web UI"], summary="Update a service from the dashboard form")
    async def update_service_page(request: Request, service_id: str, gateway: ServiceGateway = Depends(get_gateway)):
        search, status_filter = _listing_filters(request)
        form = dict(await request.form())
        result = gateway.update_service(service_id, form)
        if result.success:
            return RedirectResponse(url=_listing_url(search, status_filter), status_code=status.HTTP_303_SEE_OTHER)
        if result.error_kind == "not_found":
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=result.error)
        existing = gateway.get_service(service_id)
        return _render_dashboard(
            request, gateway, search, status_filter,
            form=form, result=result, editing=existing.service,
            status_code=_FAILURE_STATUS[result.error_kind],
        )

    @app.post(SERVICES_PATH + "/{service_id}/delete", tags=["Web UI"], summary="Delete a service from the dashboard")
    def delete_service_page(request: Request, service_id: str, gateway: ServiceGateway = Depends(get_gateway)):
        result = gateway.delete_service(service_id)
        if not result.success:
            raise HTTPException(status_code=_FAILURE_STATUS[result.error_kind], detail=result.error)
        return RedirectResponse(url=_listing_url(*_listing_filters(request)), status_code=status.HTTP_303_SEE_OTHER)

    # --- API Endpoints ---

    @app.get("/api/services", response_model=list[schemas.Service], tags=["Services API"], summary="List services")
    def list_services_api(
        search: str | None = None,
        status_value: str | None = Query(None, alias="status"),
        gateway: ServiceGateway = Depends(get_gateway),
    ):
        """Services matching ``search`` and ``status``; an empty list if the database fails."""
        status_filter = schemas.StatusFilter.parse(status_value)
        return gateway.list_services(search=search, status=status_filter)

    @app.get("/api/services/{service_id}", tags=["Services API"], summary="Get one service")
    def get_service_api(service_id: str, gateway: ServiceGateway = Depends(get_gateway)):
        return _result_response(gateway.get_service(service_id))

    @app.post("/api/services", tags=["Services API"], summary="Create a service from form fields")
    async def create_service_api(request: Request, gateway: ServiceGateway = Depends(get_gateway)):
        form = dict(await request.form())
        return _result_response(gateway.create_service(form), success_code=status.HTTP_201_CREATED)

    @app.put("/api/services/{service_id}", tags=["Services API"], summary="Replace a service's fields")
    async def update_service_api(request: Request, service_id: str, gateway: ServiceGateway = Depends(get_gateway)):
        form = dict(await request.form())
        return _result_response(gateway.update_service(service_id, form))

    @app.delete("/api/services/{service_id}", tags=["Services API"], summary="Delete a service")
    def delete_service_api(service_id: str, gateway: ServiceGateway = Depends(get_gateway)):
        return _result_response(gateway.delete_service(service_id))

    @app.get("/health", tags=["Health"])
    def health():
        return {"status": "ok"}

    # --- Root Redirect ---
    @app.get("/", include_in_schema=False)
    def root_redirect():
        return RedirectResponse(url=SERVICES_PATH)

    return app


app = create_app()
