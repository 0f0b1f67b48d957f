import os
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel


class MongoSettings(BaseModel):
    connection_string: Optional[str] = None
    database_name: Optional[str] = None


class JwtSettings(BaseModel):
    key: str
    issuer: str = "marketplace-api"
    audience: str = "marketplace-clients"
    expire_days: int = 7
    algorithm: str = "HS256"


class R2Settings(BaseModel):
    """Cloudflare R2 (S3 compatible) bucket used for image uploads"""
    account_id: str = ""
    access_key_id: str = ""
    secret_access_key: str = ""
    bucket_name: str = ""
    # Base URL used to serve images (public bucket URL or CDN domain)
    public_base_url: str = ""


class AdminSeedSettings(BaseModel):
    email: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None


class Settings(BaseModel):
    mongo: MongoSettings
    jwt: JwtSettings
    r2: R2Settings
    admin_seed: AdminSeedSettings
    log_level: str = "INFO"
    max_upload_bytes: int = 10_000_000


def load_settings() -> Settings:
    return Settings(
        mongo=MongoSettings(
            connection_string=os.getenv("DATABASE_URL"),
            database_name=os.getenv("DATABASE_NAME"),
        ),
        jwt=JwtSettings(
            key=os.getenv("JWT_KEY", "your-super-secret-key-change-in-production"),
            issuer=os.getenv("JWT_ISSUER", "marketplace-api"),
            audience=os.getenv("JWT_AUDIENCE", "marketplace-clients"),
            expire_days=int(os.getenv("JWT_EXPIRE_DAYS", 7)),
        ),
        r2=R2Settings(
            account_id=os.getenv("R2_ACCOUNT_ID", ""),
            access_key_id=os.getenv("R2_ACCESS_KEY_ID", ""),
            secret_access_key=os.getenv("R2_SECRET_ACCESS_KEY", ""),
            bucket_name=os.getenv("R2_BUCKET_NAME", ""),
            public_base_url=os.getenv("R2_PUBLIC_BASE_URL", ""),
        ),
        admin_seed=AdminSeedSettings(
            email=os.getenv("ADMIN_EMAIL"),
            username=os.getenv("ADMIN_USERNAME"),
            password=os.getenv("ADMIN_PASSWORD"),
        ),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        max_upload_bytes=int(os.getenv("MAX_UPLOAD_BYTES", 10_000_000)),
    )


@lru_cache
def get_settings() -> Settings:
    return load_settings()
