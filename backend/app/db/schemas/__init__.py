"""
SQLAlchemy ORM schema module
Imports every table class so it is registered on Base.metadata.
"""
from app.db.schemas.organization import Organization
from app.db.schemas.ubo import UltimateBeneficialOwner
from app.db.schemas.kyb_document import KYBDocument
from app.db.schemas.fund_vault import FundVault

__all__ = [
    "Organization",
    "UltimateBeneficialOwner",
    "KYBDocument",
    "FundVault",
]
