from datetime import datetime, timezone
from typing import List, Optional

import structlog
from pydantic import BaseModel

from config import Settings
from database import ProductRepository, Repository, to_object_id
from schemas import Blog, Category, Product, Role, User, Vendor
from security import create_access_token, hash_password, verify_password

logger = structlog.get_logger(__name__)


class BusinessRuleError(Exception):
    """A request that is well formed but breaks a business rule"""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------- Auth ----------

class AuthResult(BaseModel):
    token: str
    user: User


class AuthService:
    def __init__(self, users: Repository[User], settings: Settings):
        self.users = users
        self.settings = settings

    def register(self, user: User, password: str) -> Optional[AuthResult]:
        if self.users.find({"email": user.email}):
            return None

        user.id = None
        user.password_hash = hash_password(password)
        user.created_at = utcnow()
        self.users.create(user)
        logger.info("user_registered", user_id=user.id, role=user.role)
        return AuthResult(token=create_access_token(user, self.settings), user=user)

    def login(self, email: str, password: str) -> Optional[AuthResult]:
        users = self.users.find({"email": email})
        user = users[0] if users else None
        if user is None or not verify_password(password, user.password_hash):
            return None
        return AuthResult(token=create_access_token(user, self.settings), user=user)


def seed_admin(users: Repository[User], settings: Settings) -> Optional[User]:
    """Create the configured admin account unless config is incomplete or it exists"""
    seed = settings.admin_seed
    if not (seed.email or "").strip() or not (seed.password or "").strip():
        logger.info("admin_seed_skipped", reason="configuration incomplete")
        return None

    if users.find({"email": seed.email}):
        logger.info("admin_seed_skipped", reason="admin exists", email=seed.email)
        return None

    admin = User(
        username=(seed.username or "").strip() or "admin",
        email=seed.email,
        role=Role.ADMIN,
        password_hash=hash_password(seed.password),
        created_at=utcnow(),
    )
    users.create(admin)
    logger.info("admin_seeded", email=seed.email)
    return admin


# ---------- Vendors ----------

class VendorService:
    def __init__(self, vendors: Repository[Vendor]):
        self.vendors = vendors

    def get_all(self) -> List[Vendor]:
        return self.vendors.get_all()

    def get_by_id(self, id: str) -> Optional[Vendor]:
        return self.vendors.get_by_id(id)

    def get_by_user_id(self, user_id: str) -> Optional[Vendor]:
        # At most one vendor per user is assumed, not enforced
        matches = self.vendors.find({"user_id": user_id})
        return matches[0] if matches else None

    def create(self, vendor: Vendor) -> Vendor:
        vendor.id = None
        vendor.created_at = utcnow()
        vendor.updated_at = vendor.created_at
        self.vendors.create(vendor)
        logger.info("vendor_created", vendor_id=vendor.id, user_id=vendor.user_id)
        return vendor

    def update(self, id: str, vendor: Vendor) -> bool:
        existing = self.vendors.get_by_id(id)
        if existing is None:
            return False

        vendor.id = id
        vendor.created_at = existing.created_at
        vendor.updated_at = utcnow()
        self.vendors.update(id, vendor)
        logger.info("vendor_updated", vendor_id=id)
        return True

    def delete(self, id: str) -> bool:
        if self.vendors.get_by_id(id) is None:
            return False
        self.vendors.delete(id)
        logger.info("vendor_deleted", vendor_id=id)
        return True


# ---------- Categories ----------

class CategoryService:
    def __init__(self, categories: Repository[Category]):
        self.categories = categories

    def get_all(self) -> List[Category]:
        return self.categories.get_all()

    def get_by_id(self, id: str) -> Optional[Category]:
        return self.categories.get_by_id(id)

    def create(self, category: Category) -> Category:
        category.id = None
        category.created_at = utcnow()
        self.categories.create(category)
        logger.info("category_created", category_id=category.id)
        return category

    def update(self, id: str, category: Category) -> bool:
        existing = self.categories.get_by_id(id)
        if existing is None:
            return False

        category.id = id
        category.created_at = existing.created_at
        self.categories.update(id, category)
        return True

    def delete(self, id: str) -> bool:
        if self.categories.get_by_id(id) is None:
            return False
        self.categories.delete(id)
        logger.info("category_deleted", category_id=id)
        return True


# ---------- Products ----------

class ProductService:
    def __init__(self, products: ProductRepository, categories: Repository[Category]):
        self.products = products
        self.categories = categories

    def get_all(self) -> List[Product]:
        return self.products.get_all()

    def get_by_id(self, id: str) -> Optional[Product]:
        return self.products.get_by_id(id)

    def get_by_vendor(self, vendor_id: str) -> List[Product]:
        return self.products.get_by_vendor(vendor_id)

    def get_by_category(self, category_id: str) -> List[Product]:
        return self.products.get_by_category(category_id)

    def search(self, term: str) -> List[Product]:
        return self.products.search(term)

    def create(self, product: Product) -> Product:
        self.validate_categories(product)
        product.id = None
        product.created_at = utcnow()
        self.products.create(product)
        logger.info("product_created", product_id=product.id, vendor_id=product.vendor_id)
        return product

    def update(self, id: str, product: Product) -> bool:
        existing = self.products.get_by_id(id)
        if existing is None:
            return False

        product.id = id
        product.created_at = existing.created_at
        product.updated_at = utcnow()
        self.validate_categories(product)
        self.products.update(id, product)
        logger.info("product_updated", product_id=id, vendor_id=product.vendor_id)
        return True

    def save_images(self, product: Product) -> Product:
        """Persist a loaded product after new image URLs were appended"""
        product.updated_at = utcnow()
        self.products.update(product.id, product)
        return product

    def delete(self, id: str) -> bool:
        if self.products.get_by_id(id) is None:
            return False
        self.products.delete(id)
        logger.info("product_deleted", product_id=id)
        return True

    def validate_categories(self, product: Product) -> None:
        if not product.categories:
            return

        ids = list(dict.fromkeys(product.categories))
        object_ids = [to_object_id(i) for i in ids]
        if any(oid is None for oid in object_ids):
            raise BusinessRuleError("One or more category IDs are invalid.")

        found = {c.id for c in self.categories.find({"_id": {"$in": object_ids}})}
        if any(i not in found for i in ids):
            raise BusinessRuleError("One or more category IDs are invalid.")


# ---------- Blogs ----------

class BlogService:
    def __init__(self, blogs: Repository[Blog]):
        self.blogs = blogs

    def get_all(self) -> List[Blog]:
        return self.blogs.get_all()

    def get_by_id(self, id: str) -> Optional[Blog]:
        return self.blogs.get_by_id(id)

    def create(self, blog: Blog) -> Blog:
        blog.id = None
        blog.created_at = utcnow()
        self.blogs.create(blog)
        logger.info("blog_created", blog_id=blog.id)
        return blog

    def update(self, id: str, blog: Blog) -> bool:
        existing = self.blogs.get_by_id(id)
        if existing is None:
            return False

        blog.id = id
        blog.created_at = existing.created_at
        blog.updated_at = utcnow()
        self.blogs.update(id, blog)
        logger.info("blog_updated", blog_id=id)
        return True

    def delete(self, id: str) -> bool:
        if self.blogs.get_by_id(id) is None:
            return False
        self.blogs.delete(id)
        logger.info("blog_deleted", blog_id=id)
        return True
