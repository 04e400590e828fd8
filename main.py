import json
import logging
import uuid
from typing import Any, Iterator, Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

import validation
from auth import (
    Identity,
    IdentityProvider,
    bearer_token,
    build_identity_provider,
)
from config import Settings, get_settings
from database import Database
from errors import (
    Conflict,
    IdentityUnavailable,
    NotFound,
    Unauthorized,
    Unavailable,
    ValidationError,
)
from fx_rates import FxRateService
from models import UtilityType
from schemas import (
    BreakdownOut,
    CurrencyIn,
    CurrencyOut,
    CurrencyPreferenceOut,
    EntryIn,
    EntryOut,
    MonthlyRow,
    RatesOut,
    StatsOut,
    UnitPriceIn,
    UnitPriceOut,
    UnitPriceSettingOut,
)
from services import (
    EntryFilters,
    EntryService,
    PreferencesService,
    SettingsService,
    StatsService,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def _load_app_version() -> str:
    try:
        import tomllib
    except Exception:
        return "unknown"
    try:
        with open("pyproject.toml", "rb") as f:
            data = tomllib.load(f)
        return str(data.get("project", {}).get("version", "unknown"))
    except Exception:
        return "unknown"


APP_VERSION = _load_app_version()

router = APIRouter()


def get_db(request: Request) -> Iterator[Session]:
    db = request.app.state.database.session()
    try:
        yield db
    finally:
        db.close()


def get_identity(request: Request) -> Identity:
    provider: Optional[IdentityProvider] = request.app.state.identity
    if provider is None:
        raise IdentityUnavailable()
    token = bearer_token(request.headers.get("Authorization"))
    return provider.verify(token)


def get_identity_provider(request: Request) -> IdentityProvider:
    provider = request.app.state.identity
    if provider is None:
        raise IdentityUnavailable()
    return provider


async def json_body(request: Request) -> Any:
    raw = await request.body()
    if not raw:
        return {}
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ValidationError("body", "Request body must be valid JSON") from exc


def enabled_types(request: Request) -> tuple[str, ...]:
    return request.app.state.settings.enabled_types


# Request validators run as dependencies declared ahead of get_db, so a bad
# request is rejected before any session is opened.


def valid_entry(request: Request, body: Any = Depends(json_body)) -> EntryIn:
    return validation.validate_entry(body, enabled_types(request))


def valid_filters(request: Request) -> EntryFilters:
    return validation.validate_list_filters(
        request.query_params, enabled_types(request)
    )


def valid_entry_id(entry_id: str) -> uuid.UUID:
    return validation.parse_entry_id(entry_id)


def valid_type(utility_type: str, request: Request) -> UtilityType:
    return validation.parse_type(utility_type, enabled_types(request))


def valid_breakdown(
    utility_type: str, request: Request
) -> validation.BreakdownQuery:
    return validation.validate_breakdown(
        utility_type, request.query_params, enabled_types(request)
    )


def valid_unit_price(
    utility_type: str, request: Request, body: Any = Depends(json_body)
) -> UnitPriceIn:
    return validation.validate_unit_price(utility_type, body, enabled_types(request))


def valid_currency(body: Any = Depends(json_body)) -> CurrencyIn:
    return validation.validate_currency(body)


def valid_limit(request: Request) -> Optional[int]:
    return validation.parse_limit(request.query_params.get("limit"))


@router.get("/health")
def health(request: Request):
    database: Database = request.app.state.database
    return {
        "status": "ok",
        "version": APP_VERSION,
        "database": "connected" if database.is_open else "Not configured",
    }


@router.post("/auth/register", status_code=201)
def register(
    body: Any = Depends(json_body),
    provider: IdentityProvider = Depends(get_identity_provider),
):
    credentials = validation.validate_credentials(body, registering=True)
    return provider.register(credentials.email, credentials.password).as_dict()


@router.post("/auth/login")
def login(
    body: Any = Depends(json_body),
    provider: IdentityProvider = Depends(get_identity_provider),
):
    credentials = validation.validate_credentials(body)
    return provider.login(credentials.email, credentials.password).as_dict()


@router.get("/auth/me")
def me(identity: Identity = Depends(get_identity)):
    return {"user": identity.as_dict()}


@router.post("/entries", status_code=201, response_model=EntryOut)
def create_entry(
    identity: Identity = Depends(get_identity),
    data: EntryIn = Depends(valid_entry),
    db: Session = Depends(get_db),
):
    entry = EntryService(db, identity.id).create(data)
    return EntryOut.model_validate(entry)


@router.get("/entries", response_model=list[EntryOut])
def list_entries(
    identity: Identity = Depends(get_identity),
    filters: EntryFilters = Depends(valid_filters),
    db: Session = Depends(get_db),
):
    entries = EntryService(db, identity.id).list(filters)
    return [EntryOut.model_validate(entry) for entry in entries]


@router.get("/entries/stats", response_model=StatsOut)
def entry_stats(
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    return StatsService(db, identity.id).overview()


@router.get("/entries/monthly", response_model=list[MonthlyRow])
def recent_months(
    identity: Identity = Depends(get_identity),
    limit: Optional[int] = Depends(valid_limit),
    db: Session = Depends(get_db),
):
    return StatsService(db, identity.id).recent_months(limit)


@router.get("/entries/breakdown/{utility_type}", response_model=BreakdownOut)
def entry_breakdown(
    identity: Identity = Depends(get_identity),
    query: validation.BreakdownQuery = Depends(valid_breakdown),
    db: Session = Depends(get_db),
):
    return StatsService(db, identity.id).breakdown(query.type, query.year, query.month)


@router.delete("/entries/{entry_id}")
def delete_entry(
    identity: Identity = Depends(get_identity),
    entry_id: uuid.UUID = Depends(valid_entry_id),
    db: Session = Depends(get_db),
):
    EntryService(db, identity.id).delete(entry_id)
    return {"message": "Entry deleted"}


@router.get("/settings/{utility_type}", response_model=UnitPriceOut)
def get_unit_price(
    identity: Identity = Depends(get_identity),
    utility_type: UtilityType = Depends(valid_type),
    db: Session = Depends(get_db),
):
    price = SettingsService(db, identity.id).get_unit_price(utility_type)
    return UnitPriceOut(unit_price=price)


@router.put("/settings/{utility_type}", response_model=UnitPriceSettingOut)
def update_unit_price(
    identity: Identity = Depends(get_identity),
    data: UnitPriceIn = Depends(valid_unit_price),
    db: Session = Depends(get_db),
):
    setting = SettingsService(db, identity.id).upsert_unit_price(
        data.type, data.unit_price
    )
    return UnitPriceSettingOut.model_validate(setting)


@router.get("/preferences/currency", response_model=CurrencyOut)
def get_currency(
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    return CurrencyOut(currency=PreferencesService(db, identity.id).get_currency())


@router.put("/preferences/currency", response_model=CurrencyPreferenceOut)
def update_currency(
    identity: Identity = Depends(get_identity),
    data: CurrencyIn = Depends(valid_currency),
    db: Session = Depends(get_db),
):
    preference = PreferencesService(db, identity.id).upsert_currency(data.currency)
    return CurrencyPreferenceOut.model_validate(preference)


@router.get("/rates", response_model=RatesOut)
def exchange_rates(request: Request, identity: Identity = Depends(get_identity)):
    base = validation.parse_currency_param(request.query_params.get("base"))
    rates = request.app.state.fx.latest(base)
    return RatesOut(base=rates.base, date=rates.rate_date, rates=rates.rates)


def _error(status_code: int, message: str, **extra: object) -> JSONResponse:
    content: dict[str, object] = {"error": message}
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content)


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    async def validation_error(request: Request, exc: ValidationError):
        if exc.field:
            return _error(400, exc.message, field=exc.field)
        return _error(400, exc.message)

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        field = ".".join(str(part) for part in first.get("loc", ())[1:]) or None
        return _error(400, str(first.get("msg", "Invalid request")), field=field)

    @app.exception_handler(Unauthorized)
    async def unauthorized(request: Request, exc: Unauthorized):
        return _error(401, str(exc) or "Unauthorized")

    @app.exception_handler(NotFound)
    async def not_found(request: Request, exc: NotFound):
        return _error(404, str(exc) or "Not found")

    @app.exception_handler(Conflict)
    async def conflict(request: Request, exc: Conflict):
        return _error(409, str(exc))

    @app.exception_handler(Unavailable)
    async def unavailable(request: Request, exc: Unavailable):
        logger.warning(f"dependency_unavailable: path={request.url.path} error={exc}")
        return _error(503, str(exc) or "Service unavailable")

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def internal_error(request: Request, exc: Exception):
        logger.exception(f"unhandled_error: path={request.url.path}")
        return _error(500, "Internal server error")


def create_app(
    settings: Optional[Settings] = None,
    *,
    database: Optional[Database] = None,
    identity: Optional[IdentityProvider] = None,
    fx: Optional[FxRateService] = None,
) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title="Utility Tracker API", version=APP_VERSION)
    app.state.settings = settings
    app.state.database = database or Database(settings.database_url)
    app.state.identity = identity or build_identity_provider(settings)
    app.state.fx = fx or FxRateService()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _register_error_handlers(app)
    app.include_router(router)

    @app.on_event("startup")
    def startup_event():
        try:
            app.state.database.open()
            app.state.database.create_all()
        except Unavailable as exc:
            # keep serving; store-backed routes answer 503 until restart
            logger.error(f"database_unavailable_at_startup: error={exc}")

    @app.on_event("shutdown")
    def shutdown_event():
        app.state.database.close()

    return app


app = create_app()


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
