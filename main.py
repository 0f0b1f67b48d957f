import logging
import os
from contextlib import asynccontextmanager
from typing import List, Optional

import structlog
from fastapi import Depends, FastAPI, File, Form, HTTPException, Query, Response, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from pymongo.database import Database

import database
from config import Settings, get_settings
from database import ProductRepository, Repository
from ownership import (
    assign_owner_on_create,
    assign_owner_on_update,
    authorize_product_change,
    authorize_vendor_update,
)
from payloads import (
    append_product_images,
    apply_blog_images,
    apply_vendor_banner,
    UploadSizeLimitMiddleware,
    bad_request,
    parse_payload,
)
from schemas import (
    AuthResponse,
    Blog,
    Category,
    LoginRequest,
    Product,
    RegisterRequest,
    Role,
    User,
    UserOut,
    Vendor,
)
from security import Principal, require_roles
from services import (
    AuthResult,
    AuthService,
    BlogService,
    BusinessRuleError,
    CategoryService,
    ProductService,
    VendorService,
    seed_admin,
)
from storage import get_image_storage

settings = get_settings()

# ---------- Logging ----------
logging.basicConfig(format="%(message)s", level=settings.log_level)
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(),
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is None:
        logger.warning("database_not_configured")
    else:
        seed_admin(Repository(database.db["user"], User), settings)
    yield


app = FastAPI(title="Multi-Vendor E-commerce API", version="1.0.0", lifespan=lifespan)

app.add_middleware(UploadSizeLimitMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ADMIN = require_roles(Role.ADMIN)
VENDOR_OR_ADMIN = require_roles(Role.VENDOR, Role.ADMIN)


# ---------- Service wiring ----------
def get_db() -> Database:
    if database.db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return database.db


def get_auth_service(db: Database = Depends(get_db), settings: Settings = Depends(get_settings)) -> AuthService:
    return AuthService(Repository(db["user"], User), settings)


def get_vendor_service(db: Database = Depends(get_db)) -> VendorService:
    return VendorService(Repository(db["vendor"], Vendor))


def get_category_service(db: Database = Depends(get_db)) -> CategoryService:
    return CategoryService(Repository(db["category"], Category))


def get_product_service(db: Database = Depends(get_db)) -> ProductService:
    return ProductService(ProductRepository(db["product"]), Repository(db["category"], Category))


def get_blog_service(db: Database = Depends(get_db)) -> BlogService:
    return BlogService(Repository(db["blog"], Blog))


def no_content() -> Response:
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def to_auth_response(result: AuthResult) -> AuthResponse:
    return AuthResponse(token=result.token, user=UserOut.model_validate(result.user.model_dump()))


@app.get("/health", response_class=PlainTextResponse)
def health():
    return "OK"


# ---------- Auth Endpoints ----------
@app.post("/api/auth/register")
def register(payload: RegisterRequest, auth: AuthService = Depends(get_auth_service)) -> AuthResponse:
    user = User(
        username=payload.username,
        email=payload.email,
        role=payload.role or Role.CUSTOMER,
    )
    result = auth.register(user, payload.password)
    if result is None:
        raise HTTPException(status_code=400, detail="User already exists")
    return to_auth_response(result)


@app.post("/api/auth/login")
def login(payload: LoginRequest, auth: AuthService = Depends(get_auth_service)) -> AuthResponse:
    result = auth.login(payload.email, payload.password)
    if result is None:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return to_auth_response(result)


# ---------- Product Endpoints ----------
@app.get("/api/products")
def list_products(products: ProductService = Depends(get_product_service)) -> List[Product]:
    return products.get_all()


@app.get("/api/products/search")
def search_products(
    q: Optional[str] = Query(None, description="Search in name/description"),
    products: ProductService = Depends(get_product_service),
) -> List[Product]:
    if not q or not q.strip():
        raise bad_request("Search term is required")
    return products.search(q.strip())


@app.get("/api/products/vendor/{vendor_id}")
def products_by_vendor(vendor_id: str, products: ProductService = Depends(get_product_service)) -> List[Product]:
    return products.get_by_vendor(vendor_id)


@app.get("/api/products/category/{category_id}")
def products_by_category(category_id: str, products: ProductService = Depends(get_product_service)) -> List[Product]:
    return products.get_by_category(category_id)


@app.get("/api/products/{product_id}")
def get_product(product_id: str, products: ProductService = Depends(get_product_service)) -> Product:
    product = products.get_by_id(product_id)
    if product is None:
        raise HTTPException(status_code=404, detail="Not found")
    return product


@app.post("/api/products", status_code=status.HTTP_201_CREATED)
def create_product(
    product: Product,
    principal: Principal = Depends(VENDOR_OR_ADMIN),
    products: ProductService = Depends(get_product_service),
    vendors: VendorService = Depends(get_vendor_service),
) -> Product:
    assign_owner_on_create(principal, product, vendors)
    try:
        return products.create(product)
    except BusinessRuleError as e:
        raise bad_request(str(e))


@app.post("/api/products/with-images", status_code=status.HTTP_201_CREATED)
def create_product_with_images(
    product_json: Optional[str] = Form(None, alias="productJson"),
    files: Optional[List[UploadFile]] = File(None),
    principal: Principal = Depends(VENDOR_OR_ADMIN),
    products: ProductService = Depends(get_product_service),
    vendors: VendorService = Depends(get_vendor_service),
    storage=Depends(get_image_storage),
) -> Product:
    product = parse_payload(product_json, Product, "product")
    assign_owner_on_create(principal, product, vendors)
    try:
        # Checked before uploading so a bad category list leaves no stray objects
        products.validate_categories(product)
        append_product_images(product, files, storage)
        return products.create(product)
    except BusinessRuleError as e:
        raise bad_request(str(e))


@app.put("/api/products/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
def update_product(
    product_id: str,
    product: Product,
    principal: Principal = Depends(VENDOR_OR_ADMIN),
    products: ProductService = Depends(get_product_service),
    vendors: VendorService = Depends(get_vendor_service),
):
    existing = products.get_by_id(product_id)
    assign_owner_on_update(principal, existing, product, vendors)
    try:
        ok = products.update(product_id, product)
    except BusinessRuleError as e:
        raise bad_request(str(e))
    if not ok:
        raise HTTPException(status_code=404, detail="Not found")
    return no_content()


@app.delete("/api/products/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_product(
    product_id: str,
    principal: Principal = Depends(VENDOR_OR_ADMIN),
    products: ProductService = Depends(get_product_service),
    vendors: VendorService = Depends(get_vendor_service),
):
    authorize_product_change(principal, products.get_by_id(product_id), vendors)
    if not products.delete(product_id):
        raise HTTPException(status_code=404, detail="Not found")
    return no_content()


@app.post("/api/products/{product_id}/images")
def upload_product_images(
    product_id: str,
    files: Optional[List[UploadFile]] = File(None),
    principal: Principal = Depends(VENDOR_OR_ADMIN),
    products: ProductService = Depends(get_product_service),
    vendors: VendorService = Depends(get_vendor_service),
    storage=Depends(get_image_storage),
) -> Product:
    if not files:
        raise bad_request("At least one image file is required.")

    product = authorize_product_change(principal, products.get_by_id(product_id), vendors)
    append_product_images(product, files, storage)
    return products.save_images(product)


# ---------- Vendor Endpoints ----------
@app.get("/api/vendors", dependencies=[Depends(ADMIN)])
def list_vendors(vendors: VendorService = Depends(get_vendor_service)) -> List[Vendor]:
    return vendors.get_all()


@app.get("/api/vendors/me")
def current_vendor(
    principal: Principal = Depends(VENDOR_OR_ADMIN),
    vendors: VendorService = Depends(get_vendor_service),
) -> Vendor:
    vendor = vendors.get_by_user_id(principal.subject_id)
    if vendor is None:
        raise HTTPException(status_code=404, detail="Not found")
    return vendor


@app.get("/api/vendors/{vendor_id}", dependencies=[Depends(ADMIN)])
def get_vendor(vendor_id: str, vendors: VendorService = Depends(get_vendor_service)) -> Vendor:
    vendor = vendors.get_by_id(vendor_id)
    if vendor is None:
        raise HTTPException(status_code=404, detail="Not found")
    return vendor


@app.post("/api/vendors", status_code=status.HTTP_201_CREATED, dependencies=[Depends(ADMIN)])
def create_vendor(vendor: Vendor, vendors: VendorService = Depends(get_vendor_service)) -> Vendor:
    return vendors.create(vendor)


@app.post(
    "/api/vendors/with-banner",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(ADMIN)],
)
def create_vendor_with_banner(
    vendor_json: Optional[str] = Form(None, alias="vendorJson"),
    banner: Optional[UploadFile] = File(None),
    vendors: VendorService = Depends(get_vendor_service),
    storage=Depends(get_image_storage),
) -> Vendor:
    vendor = parse_payload(vendor_json, Vendor, "vendor")
    apply_vendor_banner(vendor, banner, storage)
    return vendors.create(vendor)


@app.put("/api/vendors/{vendor_id}", status_code=status.HTTP_204_NO_CONTENT)
def update_vendor(
    vendor_id: str,
    vendor_json: Optional[str] = Form(None, alias="vendorJson"),
    banner: Optional[UploadFile] = File(None),
    principal: Principal = Depends(VENDOR_OR_ADMIN),
    vendors: VendorService = Depends(get_vendor_service),
    storage=Depends(get_image_storage),
):
    vendor = parse_payload(vendor_json, Vendor, "vendor")
    existing = authorize_vendor_update(principal, vendor_id, vendor, vendors)
    apply_vendor_banner(vendor, banner, storage, existing)
    if not vendors.update(vendor_id, vendor):
        raise HTTPException(status_code=404, detail="Not found")
    return no_content()


@app.delete("/api/vendors/{vendor_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(ADMIN)])
def delete_vendor(vendor_id: str, vendors: VendorService = Depends(get_vendor_service)):
    if not vendors.delete(vendor_id):
        raise HTTPException(status_code=404, detail="Not found")
    return no_content()


# ---------- Category Endpoints ----------
@app.get("/api/categories")
def list_categories(categories: CategoryService = Depends(get_category_service)) -> List[Category]:
    return categories.get_all()


@app.get("/api/categories/{category_id}")
def get_category(category_id: str, categories: CategoryService = Depends(get_category_service)) -> Category:
    category = categories.get_by_id(category_id)
    if category is None:
        raise HTTPException(status_code=404, detail="Not found")
    return category


@app.post("/api/categories", status_code=status.HTTP_201_CREATED, dependencies=[Depends(ADMIN)])
def create_category(category: Category, categories: CategoryService = Depends(get_category_service)) -> Category:
    return categories.create(category)


@app.put("/api/categories/{category_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(ADMIN)])
def update_category(
    category_id: str, category: Category, categories: CategoryService = Depends(get_category_service)
):
    if not categories.update(category_id, category):
        raise HTTPException(status_code=404, detail="Not found")
    return no_content()


@app.delete("/api/categories/{category_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(ADMIN)])
def delete_category(category_id: str, categories: CategoryService = Depends(get_category_service)):
    if not categories.delete(category_id):
        raise HTTPException(status_code=404, detail="Not found")
    return no_content()


# ---------- Blog Endpoints ----------
@app.get("/api/blogs")
def list_blogs(blogs: BlogService = Depends(get_blog_service)) -> List[Blog]:
    return blogs.get_all()


@app.get("/api/blogs/{blog_id}")
def get_blog(blog_id: str, blogs: BlogService = Depends(get_blog_service)) -> Blog:
    blog = blogs.get_by_id(blog_id)
    if blog is None:
        raise HTTPException(status_code=404, detail="Not found")
    return blog


@app.post(
    "/api/blogs",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(ADMIN)],
)
def create_blog(
    blog_json: Optional[str] = Form(None, alias="blogJson"),
    files: Optional[List[UploadFile]] = File(None),
    blogs: BlogService = Depends(get_blog_service),
    storage=Depends(get_image_storage),
) -> Blog:
    blog = parse_payload(blog_json, Blog, "blog")
    apply_blog_images(blog, files, storage)
    return blogs.create(blog)


@app.put(
    "/api/blogs/{blog_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(ADMIN)],
)
def update_blog(
    blog_id: str,
    blog_json: Optional[str] = Form(None, alias="blogJson"),
    files: Optional[List[UploadFile]] = File(None),
    blogs: BlogService = Depends(get_blog_service),
    storage=Depends(get_image_storage),
):
    if not blog_json or not blog_json.strip():
        raise bad_request("Blog payload is required.")

    existing = blogs.get_by_id(blog_id)
    if existing is None:
        raise HTTPException(status_code=404, detail="Not found")

    blog = parse_payload(blog_json, Blog, "blog")
    apply_blog_images(blog, files, storage, baseline=existing)
    if not blogs.update(blog_id, blog):
        raise HTTPException(status_code=404, detail="Not found")
    return no_content()


@app.delete("/api/blogs/{blog_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(ADMIN)])
def delete_blog(blog_id: str, blogs: BlogService = Depends(get_blog_service)):
    if not blogs.delete(blog_id):
        raise HTTPException(status_code=404, detail="Not found")
    return no_content()


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
