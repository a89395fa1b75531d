import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, EmailStr, Field
from pydantic import ValidationError as SchemaValidationError
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from auth import AdminGate
from catalog import Catalog, page_count
from database import db, ensure_indexes, get_db
from errors import AppError
from inquiries import Inquiries
from orders import OrderEngine
from schemas import (
    DEFAULT_COLOR,
    CorporateInquiry,
    CreateOrderPayload,
    InquiryStatus,
    OrderStatus,
    PaymentStatus,
    Product,
    ProductUpdate,
    Role,
    SchoolCategory,
)
from settings import (
    ADMIN_EMAIL,
    ADMIN_NAME,
    ADMIN_PASSWORD,
    CORS_ORIGINS,
    DATABASE_URL,
    LOG_LEVEL,
    LOW_STOCK_THRESHOLD,
    PORT,
)

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

auth_scheme = HTTPBearer(auto_error=False)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if db is not None:
        ensure_indexes(db)
        AdminGate(db).ensure_super_admin(ADMIN_NAME, ADMIN_EMAIL, ADMIN_PASSWORD)
    else:
        logger.warning("DATABASE_URL is not set; API will answer 500 on data routes")
    yield


app = FastAPI(title="Uniform Store API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Response envelope
def ok(data=None, message: Optional[str] = None, **extra) -> dict:
    body = {"success": True}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    body.update(extra)
    return body


def paged(items: List[dict], total: int, page: int, limit: int) -> dict:
    return ok(items, count=len(items), total=total, page=page, pages=page_count(total, limit))


def fail(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


# Error handlers
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return fail(exc.status_code, exc.message)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if not errors:
        return fail(400, "Invalid request")
    first = errors[0]
    field = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path"))
    return fail(400, f"{field}: {first.get('msg')}" if field else first.get("msg", "Invalid request"))


@app.exception_handler(SchemaValidationError)
async def schema_validation_handler(request: Request, exc: SchemaValidationError):
    first = exc.errors()[0]
    field = ".".join(str(p) for p in first.get("loc", ()))
    return fail(400, f"{field}: {first.get('msg')}" if field else first.get("msg", "Invalid data"))


@app.exception_handler(DuplicateKeyError)
async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
    fields = list(((exc.details or {}).get("keyValue") or {}).keys())
    return fail(400, f"Duplicate value for {', '.join(fields)}" if fields else "Duplicate value")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return fail(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return fail(500, "Server Error")


# Components
def get_catalog(database: Database = Depends(get_db)) -> Catalog:
    return Catalog(database, low_stock_threshold=LOW_STOCK_THRESHOLD)


def get_order_engine(database: Database = Depends(get_db), catalog: Catalog = Depends(get_catalog)) -> OrderEngine:
    return OrderEngine(database, catalog)


def get_admin_gate(database: Database = Depends(get_db)) -> AdminGate:
    return AdminGate(database)


def get_inquiries(database: Database = Depends(get_db)) -> Inquiries:
    return Inquiries(database)


def get_current_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(auth_scheme),
    gate: AdminGate = Depends(get_admin_gate),
) -> dict:
    return gate.authenticate(credentials.credentials if credentials else None)


def require_roles(*roles: Role):
    def dependency(admin: dict = Depends(get_current_admin)) -> dict:
        return AdminGate.authorize(admin, roles)
    return dependency


require_super_admin = require_roles(Role.SUPER_ADMIN)


# Health checks
@app.get("/")
def root():
    return {"message": "Uniform Store API running"}


@app.get("/api/health")
def health():
    return ok(message="Server is running", timestamp=datetime.now(timezone.utc).isoformat())


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if DATABASE_URL else "❌ Not Set",
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    if db is None:
        response["database"] = "⚠️ Available but not initialized"
        return response
    response["database_name"] = db.name
    try:
        response["collections"] = db.list_collection_names()
        response["database"] = "✅ Connected & Working"
        response["connection_status"] = "Connected"
    except Exception as e:
        logger.warning("Database check failed: %s", e)
        response["database"] = f"❌ Error: {str(e)[:100]}"
    return response


# Admin auth
class LoginPayload(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class RegisterPayload(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: Role = Role.ADMIN


@app.post("/api/admin/login")
def login(payload: LoginPayload, gate: AdminGate = Depends(get_admin_gate)):
    return ok(gate.login(payload.email, payload.password))


@app.post("/api/admin/register", status_code=201)
def register_admin(
    payload: RegisterPayload,
    gate: AdminGate = Depends(get_admin_gate),
    _: dict = Depends(require_super_admin),
):
    return ok(gate.register_admin(payload.name, payload.email, payload.password, payload.role))


@app.get("/api/admin/me")
def me(admin: dict = Depends(get_current_admin)):
    return ok(admin)


@app.get("/api/admin")
def list_admins(gate: AdminGate = Depends(get_admin_gate), _: dict = Depends(require_super_admin)):
    admins = gate.list_admins()
    return ok(admins, count=len(admins))


# Schools
class SchoolPayload(BaseModel):
    name: str = Field(..., min_length=1)
    logo: Optional[str] = None
    image: Optional[str] = None
    color: str = "#0ea5e9"
    category: SchoolCategory = "primary"
    description: str = ""


class SchoolUpdatePayload(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    logo: Optional[str] = None
    image: Optional[str] = None
    color: Optional[str] = None
    category: Optional[SchoolCategory] = None
    description: Optional[str] = None


@app.get("/api/schools")
def list_schools(catalog: Catalog = Depends(get_catalog)):
    schools = catalog.list_schools()
    return ok(schools, count=len(schools))


@app.get("/api/schools/admin/all", dependencies=[Depends(get_current_admin)])
def list_admin_schools(catalog: Catalog = Depends(get_catalog)):
    schools = catalog.list_schools_with_stats()
    return ok(schools, count=len(schools))


@app.get("/api/schools/{id_or_slug}")
def get_school(id_or_slug: str, catalog: Catalog = Depends(get_catalog)):
    return ok(catalog.get_school(id_or_slug))


@app.post("/api/schools", status_code=201, dependencies=[Depends(get_current_admin)])
def create_school(payload: SchoolPayload, catalog: Catalog = Depends(get_catalog)):
    return ok(catalog.create_school(payload.model_dump()))


@app.put("/api/schools/{school_id}", dependencies=[Depends(get_current_admin)])
def update_school(school_id: str, payload: SchoolUpdatePayload, catalog: Catalog = Depends(get_catalog)):
    return ok(catalog.update_school(school_id, payload.model_dump(exclude_unset=True)))


@app.delete("/api/schools/{school_id}", dependencies=[Depends(get_current_admin)])
def delete_school(school_id: str, catalog: Catalog = Depends(get_catalog)):
    catalog.delete_school(school_id)
    return ok(message="School deleted successfully")


# Products
class StockPayload(BaseModel):
    size: str = Field(..., min_length=1)
    color: Optional[str] = None
    quantity: int


@app.get("/api/products")
def list_products(
    school: Optional[str] = None,
    category: Optional[str] = None,
    institution: Optional[str] = None,
    search: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    page: int = 1,
    limit: int = 20,
    catalog: Catalog = Depends(get_catalog),
):
    items, total = catalog.list_products(
        page=page, limit=limit, school=school, category=category, institution=institution,
        search=search, min_price=min_price, max_price=max_price,
    )
    return paged(items, total, page, limit)


@app.get("/api/products/admin/all", dependencies=[Depends(get_current_admin)])
def list_admin_products(
    school: Optional[str] = None,
    category: Optional[str] = None,
    search: Optional[str] = None,
    low_stock: bool = False,
    out_of_stock: bool = False,
    page: int = 1,
    limit: int = 50,
    catalog: Catalog = Depends(get_catalog),
):
    items, total = catalog.list_admin_products(
        page=page, limit=limit, low_stock=low_stock, out_of_stock=out_of_stock,
        school=school, category=category, search=search,
    )
    return paged(items, total, page, limit)


@app.put("/api/products/admin/{product_id}/stock", dependencies=[Depends(get_current_admin)])
def update_product_stock(product_id: str, payload: StockPayload, catalog: Catalog = Depends(get_catalog)):
    product = catalog.set_stock(product_id, payload.size, payload.color or DEFAULT_COLOR, payload.quantity)
    return ok(product, message="Stock updated successfully")


@app.get("/api/products/{product_id}")
def get_product(product_id: str, catalog: Catalog = Depends(get_catalog)):
    return ok(catalog.get_public_product(product_id))


@app.post("/api/products", status_code=201, dependencies=[Depends(get_current_admin)])
def create_product(payload: Product, catalog: Catalog = Depends(get_catalog)):
    return ok(catalog.create_product(payload.model_dump(exclude={"low_stock_alert", "lifecycle"})))


@app.put("/api/products/{product_id}", dependencies=[Depends(get_current_admin)])
def update_product(product_id: str, payload: ProductUpdate, catalog: Catalog = Depends(get_catalog)):
    return ok(catalog.update_product(product_id, payload.model_dump(exclude_unset=True)))


@app.delete("/api/products/{product_id}", dependencies=[Depends(get_current_admin)])
def delete_product(product_id: str, catalog: Catalog = Depends(get_catalog)):
    catalog.delete_product(product_id)
    return ok(message="Product deleted successfully")


# Orders
class OrderUpdatePayload(BaseModel):
    status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None
    notes: Optional[str] = None


@app.post("/api/orders", status_code=201)
def create_order(payload: CreateOrderPayload, engine: OrderEngine = Depends(get_order_engine)):
    return ok(engine.place_order(payload))


@app.get("/api/orders/admin/all", dependencies=[Depends(get_current_admin)])
def list_orders(
    status: Optional[OrderStatus] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: int = 1,
    limit: int = 50,
    engine: OrderEngine = Depends(get_order_engine),
):
    items, total = engine.list_orders(status, start_date, end_date, page, limit)
    return paged(items, total, page, limit)


@app.get("/api/orders/admin/stats", dependencies=[Depends(get_current_admin)])
def order_stats(engine: OrderEngine = Depends(get_order_engine)):
    return ok(engine.order_stats())


@app.put("/api/orders/admin/{order_id}", dependencies=[Depends(get_current_admin)])
def update_order(order_id: str, payload: OrderUpdatePayload, engine: OrderEngine = Depends(get_order_engine)):
    return ok(engine.update_order(order_id, payload.status, payload.payment_status, payload.notes))


@app.get("/api/orders/{order_number}")
def get_order(order_number: str, engine: OrderEngine = Depends(get_order_engine)):
    return ok(engine.get_order(order_number))


# Corporate inquiries
class InquiryUpdatePayload(BaseModel):
    status: Optional[InquiryStatus] = None
    notes: Optional[str] = None


@app.post("/api/inquiries", status_code=201)
def create_inquiry(payload: CorporateInquiry, inquiries: Inquiries = Depends(get_inquiries)):
    return ok(inquiries.create_inquiry(payload), message="Inquiry submitted successfully")


@app.get("/api/inquiries/admin/all", dependencies=[Depends(get_current_admin)])
def list_inquiries(
    status: Optional[InquiryStatus] = None,
    page: int = 1,
    limit: int = 50,
    inquiries: Inquiries = Depends(get_inquiries),
):
    items, total = inquiries.list_inquiries(status, page, limit)
    return paged(items, total, page, limit)


@app.get("/api/inquiries/admin/stats", dependencies=[Depends(get_current_admin)])
def inquiry_stats(inquiries: Inquiries = Depends(get_inquiries)):
    return ok(inquiries.inquiry_stats())


@app.get("/api/inquiries/admin/{inquiry_id}", dependencies=[Depends(get_current_admin)])
def get_inquiry(inquiry_id: str, inquiries: Inquiries = Depends(get_inquiries)):
    return ok(inquiries.get_inquiry(inquiry_id))


@app.put("/api/inquiries/admin/{inquiry_id}", dependencies=[Depends(get_current_admin)])
def update_inquiry(inquiry_id: str, payload: InquiryUpdatePayload, inquiries: Inquiries = Depends(get_inquiries)):
    return ok(inquiries.update_inquiry(inquiry_id, payload.status, payload.notes))


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=PORT)
