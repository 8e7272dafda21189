"""
Rate Resolver.

Finds the contract slab that prices a shipment line:

1. Contracts of the customer that are ACTIVE and valid on the booking date.
2. Active slabs of those contracts on the exact route whose half-open
   weight range [weight_from, weight_to) contains the weight.
3. Rank by specificity: article match > category match > wildcard. Slabs
   naming another article or another category are not candidates.
4. Narrower weight range wins a specificity tie. A tie that survives that
   is a configuration error and raises AmbiguousRateConfiguration.

The ranking is a pure function over already loaded rows so it can be
tested without a database.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.exceptions import AmbiguousRateConfiguration
from app.models.customer import Article
from app.models.rate_contract import RateContract, RateSlab, ContractStatus
from app.models.booking import RateSource
from app.services.tariff_calculator import ResolvedRate


logger = logging.getLogger(__name__)

SPECIFICITY_ARTICLE = 3
SPECIFICITY_CATEGORY = 2
SPECIFICITY_WILDCARD = 1


# ============================================
# RESULTS
# ============================================

@dataclass(frozen=True)
class ContractRate:
    """A contract slab matched."""
    contract: RateContract
    slab: RateSlab

    def to_resolved_rate(self) -> ResolvedRate:
        return ResolvedRate(
            charge_basis=self.slab.charge_basis,
            rate_per_kg=self.slab.rate_per_kg,
            rate_per_unit=self.slab.rate_per_unit,
            minimum_charge=self.slab.minimum_charge or Decimal("0"),
            source=RateSource.CONTRACT_SLAB.value,
            rate_contract_id=self.contract.id,
            rate_slab_id=self.slab.id,
            loyalty_discount_percentage=self.contract.base_discount_percentage or Decimal("0"),
        )


@dataclass(frozen=True)
class NoContractRate:
    """The customer has a usable contract but no slab covers this line."""
    contract: RateContract


@dataclass(frozen=True)
class NoContract:
    pass


ResolutionResult = Union[ContractRate, NoContractRate, NoContract]


# ============================================
# PURE RANKING
# ============================================

def slab_specificity(
    slab: RateSlab,
    article_id: Optional[uuid.UUID],
    article_category: Optional[str],
) -> Optional[int]:
    """Specificity score of a slab for the line, or None if it does not apply."""
    if slab.article_id is not None:
        if article_id is not None and slab.article_id == article_id:
            return SPECIFICITY_ARTICLE
        return None
    if slab.article_category is not None:
        if article_category is not None and slab.article_category == article_category:
            return SPECIFICITY_CATEGORY
        return None
    return SPECIFICITY_WILDCARD


def slab_covers(slab: RateSlab, from_location: str, to_location: str, weight: Decimal) -> bool:
    return (
        slab.is_active
        and slab.from_location == from_location
        and slab.to_location == to_location
        and Decimal(str(slab.weight_from)) <= weight < Decimal(str(slab.weight_to))
    )


def rank_slabs(
    candidates: Iterable[Tuple[RateContract, RateSlab]],
    from_location: str,
    to_location: str,
    weight: Decimal,
    article_id: Optional[uuid.UUID] = None,
    article_category: Optional[str] = None,
) -> Optional[Tuple[RateContract, RateSlab]]:
    """
    Pick the single best (contract, slab) pair for a line.

    Returns None when nothing matches.

    Raises:
        AmbiguousRateConfiguration: two slabs share the best specificity and
            weight range width
    """
    weight = Decimal(str(weight))
    ranked: List[Tuple[Tuple[int, Decimal], RateContract, RateSlab]] = []

    for contract, slab in candidates:
        if not slab_covers(slab, from_location, to_location, weight):
            continue
        specificity = slab_specificity(slab, article_id, article_category)
        if specificity is None:
            continue
        width = Decimal(str(slab.weight_to)) - Decimal(str(slab.weight_from))
        # Higher specificity first, then narrower range
        ranked.append(((-specificity, width), contract, slab))

    if not ranked:
        return None

    ranked.sort(key=lambda item: item[0])
    best_key = ranked[0][0]
    best = [item for item in ranked if item[0] == best_key]

    if len(best) > 1:
        slab_ids = [str(item[2].id) for item in best]
        logger.warning(
            f"Ambiguous slabs for {from_location}->{to_location} at {weight}kg: {slab_ids}"
        )
        raise AmbiguousRateConfiguration(
            f"{len(best)} equally specific rate slabs match {from_location} -> {to_location} "
            f"at {weight} kg",
            {
                "slab_ids": slab_ids,
                "contract_ids": sorted({str(item[1].id) for item in best}),
                "from_location": from_location,
                "to_location": to_location,
                "weight": str(weight),
            },
        )

    _, contract, slab = best[0]
    return contract, slab


def resolve_from_rows(
    contracts: Sequence[RateContract],
    from_location: str,
    to_location: str,
    weight: Decimal,
    booking_date: date,
    article_id: Optional[uuid.UUID] = None,
    article_category: Optional[str] = None,
) -> ResolutionResult:
    """Resolution over already loaded contracts (with slabs)."""
    usable = [c for c in contracts if c.covers(booking_date)]
    if not usable:
        return NoContract()

    match = rank_slabs(
        ((contract, slab) for contract in usable for slab in contract.slabs),
        from_location,
        to_location,
        weight,
        article_id=article_id,
        article_category=article_category,
    )
    if match is None:
        # Report the most recently starting contract
        return NoContractRate(contract=max(usable, key=lambda c: c.valid_from))

    contract, slab = match
    return ContractRate(contract=contract, slab=slab)


# ============================================
# DATABASE LOADER
# ============================================

class RateResolver:
    """Loads contract state and resolves rates for booking lines."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def load_contracts(
        self,
        org_id: uuid.UUID,
        customer_id: uuid.UUID,
        booking_date: date,
    ) -> List[RateContract]:
        stmt = (
            select(RateContract)
            .options(selectinload(RateContract.slabs))
            .where(
                RateContract.organization_id == org_id,
                RateContract.customer_id == customer_id,
                RateContract.status == ContractStatus.ACTIVE.value,
                RateContract.valid_from <= booking_date,
                RateContract.valid_until >= booking_date,
            )
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def _article_category(self, article_id: Optional[uuid.UUID]) -> Optional[str]:
        if article_id is None:
            return None
        result = await self.db.execute(select(Article.category).where(Article.id == article_id))
        return result.scalar_one_or_none()

    async def resolve(
        self,
        org_id: uuid.UUID,
        customer_id: uuid.UUID,
        from_location: str,
        to_location: str,
        article_id: Optional[uuid.UUID],
        weight: Decimal,
        booking_date: date,
        article_category: Optional[str] = None,
    ) -> ResolutionResult:
        """
        Resolve the contract rate for one line.

        booking_date is always supplied by the caller; the resolver never
        reads the clock.
        """
        contracts = await self.load_contracts(org_id, customer_id, booking_date)
        if article_category is None:
            article_category = await self._article_category(article_id)

        return resolve_from_rows(
            contracts,
            from_location,
            to_location,
            Decimal(str(weight)),
            booking_date,
            article_id=article_id,
            article_category=article_category,
        )

    async def lookup(
        self,
        org_id: uuid.UUID,
        customer_id: uuid.UUID,
        from_location: str,
        to_location: str,
        article_id: Optional[uuid.UUID],
        weight: Decimal,
        booking_date: date,
    ) -> dict:
        """
        Display oriented lookup for the pricing screen.

        Returns {hasContract, hasRate, rate_contract, rate_slab, message}.
        Bookings re-resolve independently at creation.
        """
        result = await self.resolve(
            org_id, customer_id, from_location, to_location, article_id, weight, booking_date
        )

        if isinstance(result, ContractRate):
            return {
                "hasContract": True,
                "hasRate": True,
                "rate_contract": result.contract,
                "rate_slab": result.slab,
                "message": "Contract rate found",
            }
        if isinstance(result, NoContractRate):
            return {
                "hasContract": True,
                "hasRate": False,
                "rate_contract": result.contract,
                "rate_slab": None,
                "message": "Contract found but no rate slab matches this route and weight",
            }
        return {
            "hasContract": False,
            "hasRate": False,
            "rate_contract": None,
            "rate_slab": None,
            "message": "No active contract found for this customer",
        }
