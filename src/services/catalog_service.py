"""Catalog Service - gigs and their pricing packages.

Gig browsing and editing screens are out of scope; this module provides the
write operations needed to put a purchasable gig in place and the package
snapshot the order ledger copies at purchase time.

All functions follow the session pattern: pass ``session`` to join an
existing transaction, otherwise a new session_scope() is opened.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from src.models import Gig, GigPackage, GigStatus, PackageTier, SellerProfile
from src.services.database import session_scope
from src.services.dto import PackageSnapshot
from src.services.escrow_service import to_money
from src.services.exceptions import NotFoundError, ValidationError
from src.services.order_state_service import service_operation
from src.utils.constants import MAX_TITLE_LENGTH


def create_gig(
    seller_id: int,
    title: str,
    description: Optional[str] = None,
    status: GigStatus = GigStatus.ACTIVE,
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """Create a gig for a seller.

    Args:
        seller_id: Seller profile offering the gig
        title: Listing title
        description: Optional description
        status: Initial status (default ACTIVE)
        session: Optional database session

    Returns:
        Created gig as dictionary

    Raises:
        NotFoundError: If the seller does not exist
        ValidationError: If the title is blank or too long
    """
    if session is not None:
        return _create_gig_impl(seller_id, title, description, status, session)
    with session_scope() as session:
        return _create_gig_impl(seller_id, title, description, status, session)


def _create_gig_impl(
    seller_id: int,
    title: str,
    description: Optional[str],
    status: GigStatus,
    session: Session,
) -> Dict[str, Any]:
    if not title or not title.strip():
        raise ValidationError(["Title is required"])
    if len(title.strip()) > MAX_TITLE_LENGTH:
        raise ValidationError([f"Title must be at most {MAX_TITLE_LENGTH} characters"])
    if session.query(SellerProfile).filter(SellerProfile.id == seller_id).first() is None:
        raise NotFoundError("SellerProfile", seller_id)

    gig = Gig(
        seller_id=seller_id,
        title=title.strip(),
        description=description,
        status=GigStatus(status),
        orders_count=0,
    )
    session.add(gig)
    session.flush()
    return gig.to_dict()


def add_package(
    gig_id: int,
    tier: PackageTier,
    name: str,
    price,
    delivery_days: int,
    revisions: Optional[int] = None,
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """Add a pricing package to a gig.

    Args:
        gig_id: Gig receiving the package
        tier: basic, standard or premium (one per gig)
        name: Package display name
        price: Positive price
        delivery_days: Days until the delivery deadline (>= 1)
        revisions: Revision allowance, None for unlimited
        session: Optional database session

    Returns:
        Created package as dictionary

    Raises:
        NotFoundError: If the gig does not exist
        ValidationError: If any value is out of range or the tier exists
    """
    if session is not None:
        return _add_package_impl(gig_id, tier, name, price, delivery_days, revisions, session)
    with session_scope() as session:
        return _add_package_impl(gig_id, tier, name, price, delivery_days, revisions, session)


def _add_package_impl(
    gig_id: int,
    tier: PackageTier,
    name: str,
    price,
    delivery_days: int,
    revisions: Optional[int],
    session: Session,
) -> Dict[str, Any]:
    gig = session.query(Gig).filter(Gig.id == gig_id).first()
    if gig is None:
        raise NotFoundError("Gig", gig_id)

    errors = []
    try:
        tier = PackageTier(tier)
    except ValueError:
        errors.append(f"Unknown package tier '{tier}'")
    if not name or not name.strip():
        errors.append("Package name is required")
    amount = to_money(price)
    if amount <= Decimal("0"):
        errors.append("Price must be positive")
    errors.extend(_delivery_terms_errors(delivery_days, revisions))
    if errors:
        raise ValidationError(errors)

    existing = (
        session.query(GigPackage)
        .filter(GigPackage.gig_id == gig_id, GigPackage.tier == tier)
        .first()
    )
    if existing is not None:
        raise ValidationError([f"Gig {gig_id} already has a {tier.value} package"])

    package = GigPackage(
        gig_id=gig_id,
        tier=tier,
        name=name.strip(),
        price=amount,
        delivery_days=delivery_days,
        revisions=revisions,
    )
    session.add(package)
    session.flush()
    return package.to_dict()


def _delivery_terms_errors(delivery_days, revisions) -> List[str]:
    errors = []
    if not isinstance(delivery_days, int) or isinstance(delivery_days, bool) or delivery_days < 1:
        errors.append("Delivery days must be at least 1")
    if revisions is not None and (
        not isinstance(revisions, int) or isinstance(revisions, bool) or revisions < 0
    ):
        errors.append("Revisions must be a non-negative integer or None for unlimited")
    return errors


def set_gig_status(gig_id: int, status: GigStatus, session: Optional[Session] = None) -> Dict[str, Any]:
    """Change a gig's publication status (only ACTIVE gigs can be purchased).

    Raises:
        NotFoundError: If the gig does not exist
        ValidationError: If status is not a GigStatus value
        DatabaseError: If the write fails
    """
    with service_operation("set_gig_status", gig_id=gig_id):
        if session is not None:
            return _set_gig_status_impl(gig_id, status, session)
        with session_scope() as session:
            return _set_gig_status_impl(gig_id, status, session)


def _set_gig_status_impl(gig_id: int, status: GigStatus, session: Session) -> Dict[str, Any]:
    try:
        status = GigStatus(status)
    except ValueError:
        raise ValidationError([f"Unknown gig status '{status}'"])

    gig = session.query(Gig).filter(Gig.id == gig_id).first()
    if gig is None:
        raise NotFoundError("Gig", gig_id)
    gig.status = status
    session.flush()
    return gig.to_dict()


def update_package(package_id: int, session: Optional[Session] = None, **changes) -> Dict[str, Any]:
    """Edit a package's name, price, delivery_days or revisions.

    Existing orders keep the values they copied at purchase time.

    Raises:
        NotFoundError: If the package does not exist
        ValidationError: If a field is unknown or a value is out of range
        DatabaseError: If the write fails
    """
    with service_operation("update_package", package_id=package_id):
        if session is not None:
            return _update_package_impl(package_id, changes, session)
        with session_scope() as session:
            return _update_package_impl(package_id, changes, session)


def _update_package_impl(package_id: int, changes: Dict[str, Any], session: Session) -> Dict[str, Any]:
    package = session.query(GigPackage).filter(GigPackage.id == package_id).first()
    if package is None:
        raise NotFoundError("GigPackage", package_id)

    unknown = set(changes) - {"name", "price", "delivery_days", "revisions"}
    if unknown:
        raise ValidationError([f"Cannot update package field(s): {', '.join(sorted(unknown))}"])

    errors = []
    if "name" in changes:
        if not changes["name"] or not changes["name"].strip():
            errors.append("Package name is required")
        else:
            changes["name"] = changes["name"].strip()
    if "price" in changes:
        changes["price"] = to_money(changes["price"])
        if changes["price"] <= 0:
            errors.append("Price must be positive")
    errors.extend(
        _delivery_terms_errors(
            changes.get("delivery_days", package.delivery_days),
            changes.get("revisions", package.revisions),
        )
    )
    if errors:
        raise ValidationError(errors)

    for field_name, value in changes.items():
        setattr(package, field_name, value)
    session.flush()
    return package.to_dict()


def get_package_snapshot(gig_id: int, package_id: int, session: Session) -> PackageSnapshot:
    """Load a purchasable package and freeze the values an order needs.

    Transaction boundary: Inherits session from caller.

    Raises:
        NotFoundError: If the gig or package does not exist
        ValidationError: If the package belongs to another gig or the gig
            is not active
    """
    gig = session.query(Gig).filter(Gig.id == gig_id).first()
    if gig is None:
        raise NotFoundError("Gig", gig_id)

    package = session.query(GigPackage).filter(GigPackage.id == package_id).first()
    if package is None:
        raise NotFoundError("GigPackage", package_id)

    errors = []
    if package.gig_id != gig.id:
        errors.append(f"Package {package_id} does not belong to gig {gig_id}")
    if not gig.is_purchasable:
        errors.append(f"Gig {gig_id} is not available for purchase (status: {gig.status.value})")
    if errors:
        raise ValidationError(errors)

    return PackageSnapshot(
        package_id=package.id,
        gig_id=gig.id,
        tier=package.tier.value,
        price=to_money(package.price),
        delivery_days=package.delivery_days,
        revisions=package.revisions,
    )


def load_gig(gig_id: int, session: Session) -> Gig:
    """Get gig by ID or raise NotFoundError.

    Transaction boundary: Inherits session from caller.
    """
    gig = session.query(Gig).filter(Gig.id == gig_id).first()
    if gig is None:
        raise NotFoundError("Gig", gig_id)
    return gig


def increment_orders_count(gig_id: int, session: Session) -> None:
    """Add one to a gig's orders_count with a SQL-level increment.

    Transaction boundary: Inherits session from caller.
    """
    session.query(Gig).filter(Gig.id == gig_id).update(
        {Gig.orders_count: Gig.orders_count + 1}, synchronize_session=False
    )


def get_gig(gig_id: int, session: Optional[Session] = None) -> Optional[Dict[str, Any]]:
    """Get gig (with packages) by ID, or None if not found."""
    if session is not None:
        return _get_gig_impl(gig_id, session)
    with session_scope() as session:
        return _get_gig_impl(gig_id, session)


def _get_gig_impl(gig_id: int, session: Session) -> Optional[Dict[str, Any]]:
    gig = session.query(Gig).filter(Gig.id == gig_id).first()
    if gig is None:
        return None
    session.refresh(gig)
    result = gig.to_dict()
    result["packages"] = [p.to_dict() for p in gig.packages]
    return result
