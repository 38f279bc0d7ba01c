import logging
from typing import Any, Dict, List

from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field

from auth import Claims, issue_token, require_admin, require_auth
from config import get_settings
from database import db, ensure_indexes
from errors import ShopError, StorageTimeout, StorageUnavailable
from repositories import build_repositories
from schemas import Product as ProductSchema
from services import Catalog, CartEngine, CredentialStore, public_user

settings = get_settings()
logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger(__name__)

# App and CORS
app = FastAPI(title="Shop API")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def install_services(target: FastAPI, database=None) -> None:
    """Wire repositories and services onto ``target.state``."""
    repos = build_repositories(database)
    target.state.credentials = CredentialStore(repos.users)
    target.state.catalog = Catalog(repos.products)
    target.state.carts = CartEngine(repos.carts, repos.products)


if db is not None:
    try:
        ensure_indexes(db)
    except (StorageTimeout, StorageUnavailable) as exc:
        # requests surface the same storage error until the database is reachable
        logger.error("Could not create indexes at startup, database unreachable: %s", exc)
install_services(app, db)


def get_credentials(request: Request) -> CredentialStore:
    return request.app.state.credentials


def get_catalog(request: Request) -> Catalog:
    return request.app.state.catalog


def get_carts(request: Request) -> CartEngine:
    return request.app.state.carts


# Error handlers

@app.exception_handler(ShopError)
async def shop_error_handler(request: Request, exc: ShopError):
    body: Dict[str, Any] = {"detail": exc.message}
    headers = None
    if exc.retryable:
        body["retryable"] = True
    if exc.status_code == 401:
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(status_code=exc.status_code, content=body, headers=headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": "Invalid input", "errors": jsonable_encoder(exc.errors())})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# Request/Response Models
class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    email: EmailStr
    password: str = Field(..., min_length=1)

class RegisterResponse(BaseModel):
    id: str

class LoginRequest(BaseModel):
    email: EmailStr
    password: str

class TokenResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    user: Dict[str, Any]

class UpdatePasswordRequest(BaseModel):
    old_password: str
    new_password: str = Field(..., min_length=1)

class AddToCartRequest(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)

class CartItemOut(BaseModel):
    product_id: str
    quantity: int

class CartResponse(BaseModel):
    id: str
    user_id: str
    items: List[CartItemOut]
    total_price: float

class ProductResponse(ProductSchema):
    id: str

# Auth Routes
@app.post("/auth/register", status_code=201, response_model=RegisterResponse)
def register(payload: RegisterRequest, credentials: CredentialStore = Depends(get_credentials)):
    user_id = credentials.register(payload.name, payload.email, payload.password)
    return RegisterResponse(id=user_id)

@app.post("/auth/login", response_model=TokenResponse)
def login(payload: LoginRequest, credentials: CredentialStore = Depends(get_credentials)):
    user = credentials.authenticate(payload.email, payload.password)
    token = issue_token(user["id"], user.get("is_admin", False))
    return TokenResponse(token=token, user=public_user(user))

@app.get("/auth/me")
def me(claims: Claims = Depends(require_auth), credentials: CredentialStore = Depends(get_credentials)):
    return credentials.get_user(claims.user_id)

@app.put("/auth/password")
def update_password(
    payload: UpdatePasswordRequest,
    claims: Claims = Depends(require_auth),
    credentials: CredentialStore = Depends(get_credentials),
):
    credentials.change_password(claims.user_id, payload.old_password, payload.new_password)
    return {"message": "Password updated"}

# Product Routes
@app.get("/products", response_model=List[ProductResponse])
def list_products(catalog: Catalog = Depends(get_catalog)):
    return catalog.list_products()

@app.get("/products/{product_id}", response_model=ProductResponse)
def get_product(product_id: str, catalog: Catalog = Depends(get_catalog)):
    return catalog.get_product(product_id)

@app.post("/products", status_code=201, response_model=ProductResponse)
def create_product(
    payload: ProductSchema,
    admin: Claims = Depends(require_admin),
    catalog: Catalog = Depends(get_catalog),
):
    product = catalog.create_product(payload)
    logger.info("Product %s created by %s", product["id"], admin.user_id)
    return product

# Cart Routes
@app.get("/cart", response_model=CartResponse)
def get_cart(claims: Claims = Depends(require_auth), carts: CartEngine = Depends(get_carts)):
    return carts.get_cart(claims.user_id)

@app.post("/cart", response_model=CartResponse)
def add_to_cart(
    payload: AddToCartRequest,
    claims: Claims = Depends(require_auth),
    carts: CartEngine = Depends(get_carts),
):
    return carts.add_item(claims.user_id, payload.product_id, payload.quantity)

@app.delete("/cart/{product_id}", response_model=CartResponse)
def remove_from_cart(product_id: str, claims: Claims = Depends(require_auth), carts: CartEngine = Depends(get_carts)):
    return carts.remove_item(claims.user_id, product_id)

@app.delete("/cart", response_model=CartResponse)
def clear_cart(claims: Claims = Depends(require_auth), carts: CartEngine = Depends(get_carts)):
    return carts.clear_cart(claims.user_id)

# Utility endpoints
@app.get("/")
def root():
    return {"message": "Shop API running"}

@app.get("/test")
def test_database():
    try:
        collections = db.list_collection_names() if db is not None else []
        return {"backend": "ok", "database": "ok" if db is not None else "in-memory", "collections": collections}
    except Exception as e:
        logger.warning("Database check failed: %s", e)
        return {"backend": "ok", "database": "error"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
