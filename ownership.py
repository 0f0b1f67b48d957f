"""
Ownership resolution

Decides, per request, whether the calling principal may act on a vendor or
product record, and which owner reference ends up on the written document.
Admins act on anything. A Vendor acts only on its own profile and on products
whose vendorId is its profile id. A Vendor-role caller without a vendor
profile is always refused.
"""

from enum import Enum
from typing import Optional

import structlog
from fastapi import HTTPException, status

from schemas import Product, Role, Vendor
from security import Principal
from services import VendorService

logger = structlog.get_logger(__name__)


class Decision(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


def decide(role: Role, actor_owner_id: Optional[str], resource_owner_id: Optional[str]) -> Decision:
    """
    `actor_owner_id` is the id the caller owns resources under (a Vendor's
    profile id), `resource_owner_id` the owner recorded on the target.
    """
    if role == Role.ADMIN:
        return Decision.ALLOW
    if role == Role.VENDOR and actor_owner_id and actor_owner_id == resource_owner_id:
        return Decision.ALLOW
    return Decision.DENY


def forbidden(detail: str = "Forbidden") -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


def not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")


def resolve_caller_vendor(principal: Principal, vendors: VendorService) -> Vendor:
    vendor = vendors.get_by_user_id(principal.subject_id)
    if vendor is None:
        logger.warning("vendor_profile_missing", user_id=principal.subject_id)
        raise forbidden("Vendor profile not found for current user")
    return vendor


def _caller_owner_id(principal: Principal, vendors: VendorService) -> Optional[str]:
    if principal.is_in_role(Role.VENDOR):
        return resolve_caller_vendor(principal, vendors).id
    return None


# ---------- Vendors ----------

def authorize_vendor_update(
    principal: Principal, vendor_id: str, incoming: Vendor, vendors: VendorService
) -> Vendor:
    """Return the record being updated; pins userId for Vendor callers"""
    if principal.is_in_role(Role.VENDOR):
        current = resolve_caller_vendor(principal, vendors)
        if decide(principal.role, current.id, vendor_id) is Decision.DENY:
            logger.warning("vendor_access_denied", user_id=principal.subject_id, vendor_id=vendor_id)
            raise forbidden()
        incoming.user_id = current.user_id
        return current

    if decide(principal.role, None, vendor_id) is Decision.DENY:
        raise forbidden()

    existing = vendors.get_by_id(vendor_id)
    if existing is None:
        raise not_found()
    return existing


# ---------- Products ----------

def assign_owner_on_create(principal: Principal, product: Product, vendors: VendorService) -> Product:
    if principal.is_in_role(Role.VENDOR):
        product.vendor_id = resolve_caller_vendor(principal, vendors).id
    elif not principal.is_in_role(Role.ADMIN):
        raise forbidden()
    return product


def authorize_product_change(
    principal: Principal, existing: Optional[Product], vendors: VendorService
) -> Product:
    """Ownership check shared by product update, delete and image upload"""
    if existing is None:
        raise not_found()

    owner_id = _caller_owner_id(principal, vendors)
    if decide(principal.role, owner_id, existing.vendor_id) is Decision.DENY:
        logger.warning(
            "product_access_denied",
            user_id=principal.subject_id,
            product_id=existing.id,
            vendor_id=existing.vendor_id,
        )
        raise forbidden()
    return existing


def assign_owner_on_update(
    principal: Principal, existing: Optional[Product], incoming: Product, vendors: VendorService
) -> Product:
    existing = authorize_product_change(principal, existing, vendors)

    if principal.is_in_role(Role.VENDOR):
        # Vendors cannot hand a product over to another vendor
        incoming.vendor_id = existing.vendor_id
    elif not (incoming.vendor_id or "").strip():
        incoming.vendor_id = existing.vendor_id
    return incoming
