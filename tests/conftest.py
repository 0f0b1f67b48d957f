import io

import mongomock
import pytest
from fastapi.testclient import TestClient
from starlette.datastructures import Headers, UploadFile

from config import get_settings
from database import ProductRepository, Repository
from main import app, get_db
from schemas import Blog, Category, User, Vendor
from services import AuthService, BlogService, CategoryService, ProductService, VendorService
from storage import get_image_storage


class FakeImageStorage:
    """Records uploads in memory and hands back predictable URLs"""

    def __init__(self):
        self.uploads = []

    def upload(self, stream, file_name, content_type):
        self.uploads.append((file_name, content_type, stream.read()))
        return f"https://cdn.example.com/products/{len(self.uploads)}-{file_name}"


def make_upload(name, content=b"img", content_type="image/png"):
    return UploadFile(
        file=io.BytesIO(content),
        size=len(content),
        filename=name,
        headers=Headers({"content-type": content_type}),
    )


@pytest.fixture
def mongo_db():
    return mongomock.MongoClient()["marketplace_test"]


@pytest.fixture
def storage():
    return FakeImageStorage()


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def client(mongo_db, storage):
    app.dependency_overrides[get_db] = lambda: mongo_db
    app.dependency_overrides[get_image_storage] = lambda: storage
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ---------- Services over the mock database ----------

@pytest.fixture
def users(mongo_db):
    return Repository(mongo_db["user"], User)


@pytest.fixture
def auth_service(users, settings):
    return AuthService(users, settings)


@pytest.fixture
def vendor_service(mongo_db):
    return VendorService(Repository(mongo_db["vendor"], Vendor))


@pytest.fixture
def category_service(mongo_db):
    return CategoryService(Repository(mongo_db["category"], Category))


@pytest.fixture
def product_service(mongo_db):
    return ProductService(ProductRepository(mongo_db["product"]), Repository(mongo_db["category"], Category))


@pytest.fixture
def blog_service(mongo_db):
    return BlogService(Repository(mongo_db["blog"], Blog))


# ---------- API helpers ----------

def register(client, email, role="Customer", password="secret123"):
    response = client.post(
        "/api/auth/register",
        json={"username": email.split("@")[0], "email": email, "password": password, "role": role},
    )
    assert response.status_code == 200, response.text
    body = response.json()
    return {"Authorization": f"Bearer {body['token']}"}, body["user"]["id"]


@pytest.fixture
def admin_headers(client):
    headers, _ = register(client, "admin@example.com", role="Admin")
    return headers


@pytest.fixture
def make_vendor(client, admin_headers):
    """Register a Vendor-role user and provision its vendor profile"""

    def _make(email, business_name="Shop"):
        headers, user_id = register(client, email, role="Vendor")
        response = client.post(
            "/api/vendors",
            json={"userId": user_id, "businessName": business_name},
            headers=admin_headers,
        )
        assert response.status_code == 201, response.text
        return headers, response.json()

    return _make
