"""
Claimant dashboard API
======================
GET / - organization card (status + risk badges) and the active fund
        vaults, newest first. Vaults can be petitioned only once the
        organization is approved.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import CurrentUser, get_current_user
from app.core.exceptions import PersistenceError
from app.core.status_projection import project_organization
from app.db.session import get_db
from app.services.sql_store import SqlRelationalStore
from app.services.stores import FUND_VAULTS, ORGANIZATIONS

router = APIRouter()
logger = logging.getLogger(__name__)

ACTIVE_VAULT_STATUS = "active"
START_KYB_HINT = "Complete KYB verification to access fund vaults."
PENDING_HINT = "Your organization must be approved before petitioning fund vaults."


@router.get("")
async def get_dashboard(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    store = SqlRelationalStore(db)
    try:
        organizations = await store.select(ORGANIZATIONS, {"user_id": user.id}, limit=1)
        vaults = await store.select(
            FUND_VAULTS,
            {"status": ACTIVE_VAULT_STATUS},
            order_by="created_at",
            descending=True,
        )
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=e.to_dict()) from e

    organization = organizations[0] if organizations else None
    card = project_organization(organization) if organization else None
    can_petition = bool(card and card["can_petition"])

    if card is None:
        hint = START_KYB_HINT
    elif not can_petition:
        hint = PENDING_HINT
    else:
        hint = None

    return {
        "user": {"id": user.id, "email": user.email},
        "organization": (
            {
                "id": str(organization["id"]),
                "logo_url": organization.get("logo_url"),
                **card,
            }
            if card else None
        ),
        "hint": hint,
        "fund_vaults": [
            {
                "id": str(vault["id"]),
                "vault_name": vault["vault_name"],
                "disaster_type": vault.get("disaster_type"),
                "location": vault.get("location"),
                "description": vault.get("description"),
                "total_amount": vault.get("total_amount"),
                "remaining_amount": vault.get("remaining_amount"),
                "created_at": vault.get("created_at"),
                "can_petition": can_petition,
            }
            for vault in vaults
        ],
    }
