"""Service for managing customer rate contracts and their slabs."""
import logging
import uuid
from datetime import date, datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.exceptions import AuthorizationDenied, NotFound, ValidationError
from app.core.permissions import CONTRACT_MANAGER_ROLES
from app.core.tenancy import Action, Principal, require
from app.models.customer import Article, Customer
from app.models.rate_contract import ChargeBasis, ContractStatus, RateContract, RateSlab
from app.schemas.rate_contract import RateContractCreate, RateSlabCreate
from app.services.audit_service import AuditService


logger = logging.getLogger(__name__)

# Rate fields each charge basis needs
REQUIRED_RATE_FIELDS = {
    ChargeBasis.WEIGHT.value: ("rate_per_kg",),
    ChargeBasis.UNIT.value: ("rate_per_unit",),
    ChargeBasis.FIXED.value: ("rate_per_unit",),
    ChargeBasis.WHICHEVER_HIGHER.value: ("rate_per_kg", "rate_per_unit"),
}


class RateContractService:
    """Contract lifecycle: draft -> active -> expired / terminated."""

    def __init__(self, db: AsyncSession, principal: Principal):
        self.db = db
        self.principal = principal
        self.audit = AuditService(db)

    def _require_manager(self) -> None:
        if self.principal.role not in CONTRACT_MANAGER_ROLES:
            raise AuthorizationDenied("Rate contract", "contract management requires an admin role")

    def _contract_scope(self, contract: RateContract) -> dict:
        # Contracts without a branch are org-wide
        return {
            "org_id": contract.organization_id,
            "branch_id": contract.branch_id or self.principal.branch_id,
        }

    # ============================================
    # READ
    # ============================================

    async def get_contract(self, contract_id: uuid.UUID) -> RateContract:
        result = await self.db.execute(
            select(RateContract)
            .options(selectinload(RateContract.slabs))
            .where(RateContract.id == contract_id)
            .execution_options(populate_existing=True)
        )
        contract = result.scalar_one_or_none()
        if contract is None:
            raise NotFound("Rate contract")
        require(self.principal, Action.READ, self._contract_scope(contract), entity="Rate contract")
        return contract

    async def list_contracts(
        self,
        page: int = 1,
        size: int = 20,
        customer_id: Optional[uuid.UUID] = None,
        status: Optional[str] = None,
        active_on: Optional[date] = None,
    ) -> Tuple[List[RateContract], int]:
        query = select(RateContract)
        count_query = select(func.count(RateContract.id))
        if not self.principal.is_super_admin:
            # Contracts are org-wide reference data for every role in the org
            query = query.where(RateContract.organization_id == self.principal.org_id)
            count_query = count_query.where(RateContract.organization_id == self.principal.org_id)

        if customer_id:
            query = query.where(RateContract.customer_id == customer_id)
            count_query = count_query.where(RateContract.customer_id == customer_id)

        if status:
            query = query.where(RateContract.status == status)
            count_query = count_query.where(RateContract.status == status)

        if active_on:
            window = (
                RateContract.status == ContractStatus.ACTIVE.value,
                RateContract.valid_from <= active_on,
                RateContract.valid_until >= active_on,
            )
            query = query.where(*window)
            count_query = count_query.where(*window)

        total_result = await self.db.execute(count_query)
        total = total_result.scalar() or 0

        query = query.order_by(RateContract.created_at.desc()).offset((page - 1) * size).limit(size)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    # ============================================
    # WRITE
    # ============================================

    async def _validate_slab(self, slab: RateSlabCreate, org_id: uuid.UUID, index: int) -> None:
        if slab.weight_from >= slab.weight_to:
            raise ValidationError(
                f"Slab {index}: weight_from must be below weight_to",
                {"slab": index, "weight_from": str(slab.weight_from), "weight_to": str(slab.weight_to)},
            )
        if slab.article_id is not None and slab.article_category is not None:
            raise ValidationError(
                f"Slab {index}: set article_id or article_category, not both",
                {"slab": index},
            )
        for field_name in REQUIRED_RATE_FIELDS[slab.charge_basis.value]:
            if getattr(slab, field_name) is None:
                raise ValidationError(
                    f"Slab {index}: charge basis '{slab.charge_basis.value}' requires {field_name}",
                    {"slab": index, "missing": field_name},
                )
        if slab.article_id is not None:
            article = await self.db.get(Article, slab.article_id)
            if article is None or article.organization_id != org_id:
                raise ValidationError(
                    f"Slab {index}: article not found in this organization",
                    {"slab": index, "article_id": str(slab.article_id)},
                )

    async def create_contract(self, data: RateContractCreate) -> RateContract:
        """Create a DRAFT contract, optionally with its slabs."""
        self._require_manager()

        customer = await self.db.get(Customer, data.customer_id)
        if customer is None:
            raise ValidationError("Customer not found", {"customer_id": str(data.customer_id)})
        require(
            self.principal, Action.CREATE,
            {"org_id": customer.organization_id, "branch_id": data.branch_id},
            entity="Customer",
        )
        org_id = customer.organization_id

        existing = await self.db.execute(
            select(RateContract.id).where(
                RateContract.organization_id == org_id,
                RateContract.contract_number == data.contract_number,
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise ValidationError(
                f"Contract number {data.contract_number} already exists",
                {"contract_number": data.contract_number},
            )

        for index, slab in enumerate(data.slabs, start=1):
            await self._validate_slab(slab, org_id, index)

        contract = RateContract(
            organization_id=org_id,
            branch_id=data.branch_id,
            customer_id=data.customer_id,
            contract_number=data.contract_number,
            contract_type=data.contract_type.value,
            valid_from=data.valid_from,
            valid_until=data.valid_until,
            payment_terms=data.payment_terms,
            credit_limit=data.credit_limit,
            base_discount_percentage=data.base_discount_percentage,
            notes=data.notes,
            status=ContractStatus.DRAFT.value,
            created_by=self.principal.user_id,
            slabs=[self._build_slab(slab) for slab in data.slabs],
        )
        self.db.add(contract)
        await self.db.flush()

        await self.audit.log(
            action="CREATE",
            entity_type="RATE_CONTRACT",
            entity_id=contract.id,
            user_id=self.principal.user_id,
            organization_id=org_id,
            new_values={"contract_number": contract.contract_number, "slabs": len(data.slabs)},
            description=f"Created rate contract {contract.contract_number}",
        )
        return await self.get_contract(contract.id)

    @staticmethod
    def _build_slab(data: RateSlabCreate) -> RateSlab:
        values = data.model_dump()
        values["charge_basis"] = data.charge_basis.value
        return RateSlab(**values)

    async def add_slabs(self, contract_id: uuid.UUID, slabs: List[RateSlabCreate]) -> RateContract:
        self._require_manager()
        contract = await self.get_contract(contract_id)
        require(self.principal, Action.UPDATE, self._contract_scope(contract), entity="Rate contract")
        if contract.status in (ContractStatus.EXPIRED.value, ContractStatus.TERMINATED.value):
            raise ValidationError(
                f"Cannot add slabs to a {contract.status} contract",
                {"status": contract.status},
            )

        for index, slab in enumerate(slabs, start=1):
            await self._validate_slab(slab, contract.organization_id, index)
            new_slab = self._build_slab(slab)
            new_slab.rate_contract_id = contract.id
            self.db.add(new_slab)
        await self.db.flush()

        await self.audit.log(
            action="ADD_SLABS",
            entity_type="RATE_CONTRACT",
            entity_id=contract.id,
            user_id=self.principal.user_id,
            organization_id=contract.organization_id,
            new_values={"slabs": len(slabs)},
            description=f"Added {len(slabs)} slabs to {contract.contract_number}",
        )
        return await self.get_contract(contract.id)

    async def deactivate_slab(self, slab_id: uuid.UUID) -> RateSlab:
        self._require_manager()
        slab = await self.db.get(RateSlab, slab_id)
        if slab is None:
            raise NotFound("Rate slab")
        contract = await self.db.get(RateContract, slab.rate_contract_id)
        require(self.principal, Action.UPDATE, self._contract_scope(contract), entity="Rate slab")

        slab.is_active = False
        await self.db.flush()

        await self.audit.log(
            action="DEACTIVATE",
            entity_type="RATE_SLAB",
            entity_id=slab.id,
            user_id=self.principal.user_id,
            organization_id=contract.organization_id,
            old_values={"is_active": True},
            new_values={"is_active": False},
        )
        return slab

    async def _change_status(
        self,
        contract_id: uuid.UUID,
        allowed_from: Tuple[str, ...],
        new_status: str,
        action: str,
    ) -> RateContract:
        self._require_manager()
        contract = await self.get_contract(contract_id)
        require(self.principal, Action.UPDATE, self._contract_scope(contract), entity="Rate contract")

        if contract.status not in allowed_from:
            raise ValidationError(
                f"Cannot {action.lower()} a contract in '{contract.status}' status",
                {"status": contract.status, "allowed_from": list(allowed_from)},
            )

        old_status = contract.status
        contract.status = new_status
        if new_status == ContractStatus.ACTIVE.value:
            contract.approved_by = self.principal.user_id
            contract.approved_at = datetime.now(timezone.utc)
        await self.db.flush()

        await self.audit.log(
            action=action,
            entity_type="RATE_CONTRACT",
            entity_id=contract.id,
            user_id=self.principal.user_id,
            organization_id=contract.organization_id,
            old_values={"status": old_status},
            new_values={"status": new_status},
            description=f"{action.capitalize()} rate contract {contract.contract_number}",
        )
        logger.info(f"Rate contract {contract.contract_number}: {old_status} -> {new_status}")
        return contract

    async def activate_contract(self, contract_id: uuid.UUID) -> RateContract:
        return await self._change_status(
            contract_id, (ContractStatus.DRAFT.value,), ContractStatus.ACTIVE.value, "ACTIVATE"
        )

    async def terminate_contract(self, contract_id: uuid.UUID) -> RateContract:
        return await self._change_status(
            contract_id,
            (ContractStatus.DRAFT.value, ContractStatus.ACTIVE.value),
            ContractStatus.TERMINATED.value,
            "TERMINATE",
        )

    async def expire_contracts(self, as_of: date) -> int:
        """Mark ACTIVE contracts of the principal's organization that ended before as_of."""
        self._require_manager()
        query = (
            update(RateContract)
            .where(
                RateContract.status == ContractStatus.ACTIVE.value,
                RateContract.valid_until < as_of,
            )
            .values(status=ContractStatus.EXPIRED.value, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        if not self.principal.is_super_admin:
            query = query.where(RateContract.organization_id == self.principal.org_id)

        result = await self.db.execute(query)
        expired = result.rowcount or 0
        if expired:
            await self.audit.log(
                action="EXPIRE",
                entity_type="RATE_CONTRACT",
                user_id=self.principal.user_id,
                organization_id=self.principal.org_id,
                new_values={"expired": expired, "as_of": as_of.isoformat()},
                description=f"Expired {expired} rate contracts ending before {as_of.isoformat()}",
            )
        logger.info(f"Expired {expired} rate contracts as of {as_of}")
        return expired
