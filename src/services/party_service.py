"""Party Service - users, customer profiles and seller profiles.

Profile management belongs to an external subsystem; this module holds the
minimal registration and lookup operations the order engine needs, plus the
seller statistics that order completion maintains.

All functions follow the session pattern: pass ``session`` to join an
existing transaction, otherwise a new session_scope() is opened.

Example Usage:
    >>> user = create_user("buyer@example.com", "Buyer")
    >>> customer = create_customer_profile(user["id"])
    >>> seller_user = create_user("seller@example.com", "Seller")
    >>> seller = create_seller_profile(seller_user["id"])
    >>> get_seller_stats(seller["id"])["completed_tasks"]
    0
"""

from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.models import CustomerProfile, SellerProfile, User
from src.services.database import session_scope
from src.services.exceptions import NotFoundError, ValidationError


def create_user(
    email: str,
    display_name: str,
    is_admin: bool = False,
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """Register a user identity.

    Args:
        email: Unique email (stored lower-cased)
        display_name: Name shown to other parties
        is_admin: Grants administrative cancel/refund rights
        session: Optional database session

    Returns:
        Created user as dictionary

    Raises:
        ValidationError: If email or name is blank, or the email is taken
    """
    if session is not None:
        return _create_user_impl(email, display_name, is_admin, session)
    with session_scope() as session:
        return _create_user_impl(email, display_name, is_admin, session)


def _create_user_impl(email: str, display_name: str, is_admin: bool, session: Session) -> Dict[str, Any]:
    errors = []
    if not email or not email.strip():
        errors.append("Email is required")
    if not display_name or not display_name.strip():
        errors.append("Display name is required")
    if errors:
        raise ValidationError(errors)

    email = email.strip().lower()
    if session.query(User).filter(User.email == email).first() is not None:
        raise ValidationError([f"Email '{email}' is already registered"])

    user = User(email=email, display_name=display_name.strip(), is_admin=is_admin)
    session.add(user)
    session.flush()
    return user.to_dict()


def create_customer_profile(user_id: int, session: Optional[Session] = None) -> Dict[str, Any]:
    """Attach a customer profile to a user.

    Raises:
        NotFoundError: If the user does not exist
        ValidationError: If the user already has a customer profile
    """
    if session is not None:
        return _create_profile_impl(CustomerProfile, user_id, session)
    with session_scope() as session:
        return _create_profile_impl(CustomerProfile, user_id, session)


def create_seller_profile(user_id: int, session: Optional[Session] = None) -> Dict[str, Any]:
    """Attach a seller profile to a user.

    Raises:
        NotFoundError: If the user does not exist
        ValidationError: If the user already has a seller profile
    """
    if session is not None:
        return _create_profile_impl(SellerProfile, user_id, session)
    with session_scope() as session:
        return _create_profile_impl(SellerProfile, user_id, session)


def _create_profile_impl(model, user_id: int, session: Session) -> Dict[str, Any]:
    if session.query(User).filter(User.id == user_id).first() is None:
        raise NotFoundError("User", user_id)
    if session.query(model).filter(model.user_id == user_id).first() is not None:
        raise ValidationError([f"User {user_id} already has a {model.__name__}"])

    profile = model(user_id=user_id)
    session.add(profile)
    try:
        session.flush()
    except IntegrityError:
        raise ValidationError([f"User {user_id} already has a {model.__name__}"])
    return profile.to_dict()


def get_customer_by_user(user_id: int, session: Session) -> CustomerProfile:
    """Customer profile for a user, or NotFoundError.

    Transaction boundary: Inherits session from caller.
    """
    customer = session.query(CustomerProfile).filter(CustomerProfile.user_id == user_id).first()
    if customer is None:
        raise NotFoundError("CustomerProfile", user_id)
    return customer


def get_seller_by_user(user_id: int, session: Session) -> SellerProfile:
    """Seller profile for a user, or NotFoundError.

    Transaction boundary: Inherits session from caller.
    """
    seller = session.query(SellerProfile).filter(SellerProfile.user_id == user_id).first()
    if seller is None:
        raise NotFoundError("SellerProfile", user_id)
    return seller


def get_seller_stats(seller_id: int, session: Optional[Session] = None) -> Dict[str, Any]:
    """Aggregate statistics for a seller.

    Returns:
        Dict with seller_id, user_id and completed_tasks

    Raises:
        NotFoundError: If the seller does not exist
    """
    if session is not None:
        return _get_seller_stats_impl(seller_id, session)
    with session_scope() as session:
        return _get_seller_stats_impl(seller_id, session)


def _get_seller_stats_impl(seller_id: int, session: Session) -> Dict[str, Any]:
    seller = session.query(SellerProfile).filter(SellerProfile.id == seller_id).first()
    if seller is None:
        raise NotFoundError("SellerProfile", seller_id)
    session.refresh(seller)
    return {
        "seller_id": seller.id,
        "user_id": seller.user_id,
        "completed_tasks": seller.completed_tasks,
    }


def increment_completed_tasks(seller_id: int, session: Session) -> None:
    """Add exactly one to a seller's completed_tasks.

    Transaction boundary: Inherits session from caller. Issues
    ``UPDATE ... SET completed_tasks = completed_tasks + 1`` so concurrent
    completions for the same seller never overwrite each other.
    """
    matched = (
        session.query(SellerProfile)
        .filter(SellerProfile.id == seller_id)
        .update(
            {SellerProfile.completed_tasks: SellerProfile.completed_tasks + 1},
            synchronize_session=False,
        )
    )
    if matched != 1:
        raise NotFoundError("SellerProfile", seller_id)
