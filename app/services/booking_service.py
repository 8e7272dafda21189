"""
Booking Service.

Every booking mutation runs inside the caller's transaction and goes
through the same steps:

    authorize -> validate -> price (resolver + tariff) or transition
    (state machine) -> persist header, lines, LR number and audit entry

Nothing is committed here; get_db commits on success and rolls back on any
error, so a failure at any step leaves no partial booking behind.
"""
import logging
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.exceptions import (
    ConcurrencyConflict, CreditLimitExceeded, NotFound, ValidationError,
)
from app.core.tenancy import Action, Principal, require
from app.middleware.scope_filter import ScopeFilter
from app.models.booking import Booking, BookingArticle, PaymentType
from app.models.customer import Article, Customer
from app.models.organization import Branch
from app.schemas.booking import BookingArticleCreate, BookingCreate, BookingStatusUpdate
from app.services.audit_service import AuditService
from app.services.booking_state_machine import (
    TERMINAL_STATUSES, can_modify_articles, get_transition_action, milestone_values,
    validate_transition,
)
from app.services.document_sequence_service import DocumentSequenceService
from app.services.rate_resolver import ContractRate, RateResolver
from app.services.tariff_calculator import (
    LineOptions, ResolvedRate, TariffCalculator, check_total,
)


logger = logging.getLogger(__name__)

# Payment modes settled after dispatch, and so drawn against customer credit
CREDIT_PAYMENT_TYPES = frozenset({
    PaymentType.TO_PAY.value,
    PaymentType.TO_BE_BILLED.value,
})


class BookingService:
    """Creates bookings and drives them through their lifecycle."""

    def __init__(
        self,
        db: AsyncSession,
        principal: Principal,
        calculator: Optional[TariffCalculator] = None,
        today: Callable[[], date] = date.today,
    ):
        self.db = db
        self.principal = principal
        self.calculator = calculator or TariffCalculator()
        self.resolver = RateResolver(db)
        self.audit = AuditService(db)
        self.today = today

    # ============================================
    # LOADING / AUTHORIZATION
    # ============================================

    async def _load(self, booking_id: uuid.UUID) -> Optional[Booking]:
        result = await self.db.execute(
            select(Booking)
            .options(selectinload(Booking.articles))
            .where(Booking.id == booking_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _get_authorized(self, booking_id: uuid.UUID, action: Action) -> Booking:
        """Load a booking the principal may act on. Denial looks like absence."""
        booking = await self._load(booking_id)
        if booking is None:
            raise NotFound("Booking")
        require(self.principal, action, booking.scope, entity="Booking")
        return booking

    async def get_booking(self, booking_id: uuid.UUID) -> Booking:
        return await self._get_authorized(booking_id, Action.READ)

    async def list_bookings(
        self,
        page: int = 1,
        size: int = 20,
        status: Optional[str] = None,
        search: Optional[str] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> Tuple[List[Booking], int]:
        """Bookings visible to the principal, newest first."""
        scope = ScopeFilter(self.principal)
        query = scope.apply(select(Booking), Booking)
        count_query = scope.apply(select(func.count(Booking.id)), Booking)

        if status:
            query = query.where(Booking.status == status)
            count_query = count_query.where(Booking.status == status)

        if search:
            query = query.where(Booking.lr_number.ilike(f"%{search}%"))
            count_query = count_query.where(Booking.lr_number.ilike(f"%{search}%"))

        if from_date:
            query = query.where(Booking.booking_date >= from_date)
            count_query = count_query.where(Booking.booking_date >= from_date)

        if to_date:
            query = query.where(Booking.booking_date <= to_date)
            count_query = count_query.where(Booking.booking_date <= to_date)

        total_result = await self.db.execute(count_query)
        total = total_result.scalar() or 0

        query = query.order_by(Booking.created_at.desc()).offset((page - 1) * size).limit(size)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    # ============================================
    # VALIDATION
    # ============================================

    def _validate_line(self, line: BookingArticleCreate, line_number: int) -> None:
        if line.quantity is None or line.quantity <= 0:
            raise ValidationError(
                f"Article {line_number}: quantity must be greater than zero",
                {"line": line_number, "quantity": line.quantity},
            )
        if line.weight is None or line.weight <= 0:
            raise ValidationError(
                f"Article {line_number}: weight must be greater than zero",
                {"line": line_number, "weight": str(line.weight)},
            )
        if line.charged_weight is not None and line.charged_weight <= 0:
            raise ValidationError(
                f"Article {line_number}: charged weight must be greater than zero",
                {"line": line_number, "charged_weight": str(line.charged_weight)},
            )
        if line.rate_value is not None and line.rate_value < 0:
            raise ValidationError(
                f"Article {line_number}: rate value cannot be negative",
                {"line": line_number, "rate_value": str(line.rate_value)},
            )
        if (line.rate_type is None) != (line.rate_value is None):
            raise ValidationError(
                f"Article {line_number}: rate_type and rate_value must be given together",
                {"line": line_number},
            )
        if line.article_id is None and not line.name:
            raise ValidationError(
                f"Article {line_number}: either article_id or name is required",
                {"line": line_number},
            )

    def _validate_create(self, data: BookingCreate, booking_date: date) -> None:
        if not data.articles:
            raise ValidationError("At least one article is required", {"articles": []})
        if data.pickup_date < booking_date:
            raise ValidationError(
                "Pickup date cannot be in the past",
                {"pickup_date": data.pickup_date.isoformat(), "booking_date": booking_date.isoformat()},
            )
        for index, line in enumerate(data.articles, start=1):
            self._validate_line(line, index)

    async def _branch_in_org(self, branch_id: uuid.UUID, org_id: uuid.UUID) -> Branch:
        branch = await self.db.get(Branch, branch_id)
        if branch is None or branch.organization_id != org_id:
            raise ValidationError(
                "Branch does not belong to this organization",
                {"branch_id": str(branch_id)},
            )
        return branch

    async def _customer_in_org(self, customer_id: uuid.UUID, org_id: uuid.UUID, role: str) -> Customer:
        customer = await self.db.get(Customer, customer_id)
        if customer is None or customer.organization_id != org_id:
            raise ValidationError(
                f"{role.capitalize()} does not belong to this organization",
                {f"{role}_id": str(customer_id)},
            )
        return customer

    async def _articles_by_id(
        self,
        lines: Sequence[BookingArticleCreate],
        org_id: uuid.UUID,
    ) -> Dict[uuid.UUID, Article]:
        article_ids = {line.article_id for line in lines if line.article_id is not None}
        if not article_ids:
            return {}
        result = await self.db.execute(
            select(Article).where(
                Article.id.in_(article_ids),
                Article.organization_id == org_id,
            )
        )
        articles = {article.id: article for article in result.scalars().all()}
        missing = article_ids - set(articles)
        if missing:
            raise ValidationError(
                "Article not found in this organization",
                {"article_ids": sorted(str(a) for a in missing)},
            )
        return articles

    # ============================================
    # PRICING
    # ============================================

    @staticmethod
    def billing_customer_id(payment_type: str, sender_id: uuid.UUID, receiver_id: uuid.UUID) -> uuid.UUID:
        """The party whose contract prices the booking: receiver for to-pay, else sender."""
        if payment_type == PaymentType.TO_PAY.value:
            return receiver_id
        return sender_id

    # ============================================
    # CREDIT
    # ============================================

    async def outstanding_credit(
        self,
        org_id: uuid.UUID,
        customer_id: uuid.UUID,
        exclude_booking_id: Optional[uuid.UUID] = None,
    ) -> Decimal:
        """Total of open credit bookings billed to the customer."""
        billed_to_customer = or_(
            and_(Booking.payment_type == PaymentType.TO_PAY.value, Booking.receiver_id == customer_id),
            and_(Booking.payment_type == PaymentType.TO_BE_BILLED.value, Booking.sender_id == customer_id),
        )
        query = select(func.coalesce(func.sum(Booking.total_amount), 0)).where(
            Booking.organization_id == org_id,
            Booking.status.not_in(TERMINAL_STATUSES),
            billed_to_customer,
        )
        if exclude_booking_id is not None:
            query = query.where(Booking.id != exclude_booking_id)
        result = await self.db.execute(query)
        return Decimal(str(result.scalar() or 0))

    async def _check_credit(
        self,
        *,
        org_id: uuid.UUID,
        payment_type: str,
        customer_id: uuid.UUID,
        booking_date: date,
        amount: Decimal,
        exclude_booking_id: Optional[uuid.UUID] = None,
    ) -> None:
        """
        Reject a credit booking that would push the billing customer past the
        credit limit of its contract in force on booking_date.

        Paid bookings are never checked. A limit of 0 means no limit.
        """
        if payment_type not in CREDIT_PAYMENT_TYPES:
            return
        contracts = await self.resolver.load_contracts(org_id, customer_id, booking_date)
        if not contracts:
            return
        contract = max(contracts, key=lambda c: c.valid_from)
        limit = Decimal(str(contract.credit_limit or 0))
        if limit <= 0:
            return

        outstanding = await self.outstanding_credit(org_id, customer_id, exclude_booking_id)
        if outstanding + amount > limit:
            logger.warning(
                f"Credit limit {limit} of contract {contract.contract_number} exceeded: "
                f"outstanding {outstanding} + {amount}"
            )
            raise CreditLimitExceeded(
                f"Booking of {amount} exceeds the available credit of contract {contract.contract_number}",
                {
                    "customer_id": str(customer_id),
                    "rate_contract_id": str(contract.id),
                    "credit_limit": str(limit),
                    "outstanding": str(outstanding),
                    "amount": str(amount),
                },
            )

    async def _price_line(
        self,
        line: BookingArticleCreate,
        line_number: int,
        *,
        org_id: uuid.UUID,
        customer_id: uuid.UUID,
        from_location: str,
        to_location: str,
        urgency: str,
        booking_date: date,
        article: Optional[Article],
    ) -> BookingArticle:
        charged_weight = self.calculator.chargeable_weight(
            line.weight,
            charged_weight=line.charged_weight,
            dimensions=line.dimensions.model_dump() if line.dimensions else None,
            quantity=line.quantity,
        )

        resolution = await self.resolver.resolve(
            org_id,
            customer_id,
            from_location,
            to_location,
            line.article_id,
            charged_weight,
            booking_date,
            article_category=article.category if article else None,
        )

        if isinstance(resolution, ContractRate):
            rate = resolution.to_resolved_rate()
        elif line.rate_type is not None:
            rate = ResolvedRate.manual(line.rate_type.value, line.rate_value)
        elif article is not None and article.base_rate and article.base_rate > 0:
            rate = ResolvedRate.article_base(article.base_rate)
        else:
            raise ValidationError(
                f"Article {line_number}: no contract rate applies and no rate was supplied",
                {"line": line_number, "from_location": from_location, "to_location": to_location},
            )

        is_fragile = line.is_fragile
        if is_fragile is None:
            is_fragile = bool(article and article.is_fragile)

        options = LineOptions(
            urgency=urgency,
            is_fragile=is_fragile,
            requires_special_handling=bool(article and article.requires_special_handling),
            loading_charge_per_unit=line.loading_charge_per_unit,
            unloading_charge_per_unit=line.unloading_charge_per_unit,
            adjustment_amount=line.adjustment_amount or Decimal("0"),
            loyalty_discount_percentage=line.loyalty_discount_percentage,
        )
        breakdown = self.calculator.price_line(rate, line.quantity, charged_weight, options)

        return BookingArticle(
            line_number=line_number,
            article_id=line.article_id,
            description=line.name or (article.name if article else None),
            quantity=line.quantity,
            actual_weight=line.weight,
            charged_weight=breakdown.charged_weight,
            rate_type=rate.rate_type,
            rate_value=rate.rate_value,
            charge_basis=rate.charge_basis,
            rate_source=rate.source,
            rate_contract_id=rate.rate_contract_id,
            rate_slab_id=rate.rate_slab_id,
            freight_amount=breakdown.freight_amount,
            loading_charges=breakdown.loading_charges,
            unloading_charges=breakdown.unloading_charges,
            surcharge_amount=breakdown.surcharge_amount,
            adjustment_amount=breakdown.adjustment_amount,
            discount_amount=breakdown.discount_amount,
            tax_amount=breakdown.tax_amount,
            declared_value=line.declared_value,
            total_amount=breakdown.total_amount,
        )

    # ============================================
    # CREATE
    # ============================================

    async def create_booking(self, data: BookingCreate) -> Booking:
        """
        Create a booking with its priced lines and a fresh LR number.

        Raises:
            ValidationError: bad input, foreign branch/customer/article, or a
                line with no applicable rate
            AuthorizationDenied: principal may not book for this branch
            AmbiguousRateConfiguration: contract slabs tie for a line
            TotalMismatch: supplied total_amount disagrees with the lines
            CreditLimitExceeded: a to-pay or to-be-billed booking would take
                the billing customer past its contract credit limit
        """
        booking_date = self.today()
        org_id = data.org_id or self.principal.org_id
        from_branch_id = data.from_branch_id or data.branch_id

        self._validate_create(data, booking_date)

        require(
            self.principal,
            Action.CREATE,
            {
                "org_id": org_id,
                "branch_id": data.branch_id,
                "from_branch_id": from_branch_id,
                "to_branch_id": data.to_branch_id,
            },
            entity="Branch",
        )

        branch = await self._branch_in_org(data.branch_id, org_id)
        origin = branch if from_branch_id == branch.id else await self._branch_in_org(from_branch_id, org_id)
        if data.to_branch_id is not None:
            await self._branch_in_org(data.to_branch_id, org_id)
        await self._customer_in_org(data.sender_id, org_id, "sender")
        await self._customer_in_org(data.receiver_id, org_id, "receiver")
        articles = await self._articles_by_id(data.articles, org_id)

        customer_id = self.billing_customer_id(data.payment_mode.value, data.sender_id, data.receiver_id)
        lines = []
        for index, line in enumerate(data.articles, start=1):
            lines.append(await self._price_line(
                line,
                index,
                org_id=org_id,
                customer_id=customer_id,
                from_location=data.from_location,
                to_location=data.to_location,
                urgency=data.urgency.value,
                booking_date=booking_date,
                article=articles.get(line.article_id) if line.article_id else None,
            ))

        totals = self.calculator.aggregate(lines)
        check_total(data.total_amount, totals.total_amount)
        await self._check_credit(
            org_id=org_id,
            payment_type=data.payment_mode.value,
            customer_id=customer_id,
            booking_date=booking_date,
            amount=totals.total_amount,
        )

        lr_number = await DocumentSequenceService(self.db, org_id).next_lr_number(
            origin.code, booking_date
        )

        booking = Booking(
            lr_number=lr_number,
            organization_id=org_id,
            branch_id=data.branch_id,
            from_branch_id=from_branch_id,
            to_branch_id=data.to_branch_id,
            from_location=data.from_location,
            to_location=data.to_location,
            sender_id=data.sender_id,
            receiver_id=data.receiver_id,
            payment_type=data.payment_mode.value,
            urgency=data.urgency.value,
            booking_date=booking_date,
            pickup_date=data.pickup_date,
            total_amount=totals.total_amount,
            version=1,
            created_by=self.principal.user_id,
            articles=lines,
        )
        self.db.add(booking)
        await self.db.flush()

        await self.audit.log(
            action="CREATE",
            entity_type="BOOKING",
            entity_id=booking.id,
            user_id=self.principal.user_id,
            organization_id=org_id,
            new_values={
                "lr_number": lr_number,
                "total_amount": str(totals.total_amount),
                "articles": totals.line_count,
            },
            description=f"Created booking {lr_number}",
        )
        logger.info(f"Booking {lr_number} created with {totals.line_count} lines, total {totals.total_amount}")

        return await self._load(booking.id)

    # ============================================
    # STATUS
    # ============================================

    async def update_status(self, booking_id: uuid.UUID, data: BookingStatusUpdate) -> Booking:
        """
        Move a booking to a new status.

        The caller's expected_status is checked before the transition rules,
        so a writer acting on a stale view always gets a conflict. The write
        itself is a compare-and-swap on (expected_status, version).

        Raises:
            NotFound / AuthorizationDenied: unknown or out-of-scope booking
            ConcurrencyConflict: expected_status is stale or another writer
                changed the booking first
            InvalidStateTransition / WrongWorkflowContext: see the state machine
        """
        booking = await self._get_authorized(booking_id, Action.UPDATE)
        expected_status = data.expected_status.value
        observed_version = booking.version
        new_status = data.status.value
        context = data.workflow_context.value

        if booking.status != expected_status:
            logger.info(
                f"Stale status change on {booking.lr_number}: "
                f"expected '{expected_status}', found '{booking.status}'"
            )
            raise ConcurrencyConflict(
                f"Booking status is '{booking.status}', not '{expected_status}'",
                {"current_status": booking.status, "expected_status": expected_status},
            )
        observed_status = expected_status

        validate_transition(observed_status, new_status, context)

        result = await self.db.execute(
            update(Booking)
            .where(
                Booking.id == booking_id,
                Booking.status == observed_status,
                Booking.version == observed_version,
            )
            .values(
                status=new_status,
                version=Booking.version + 1,
                updated_at=datetime.now(timezone.utc),
                **milestone_values(new_status, data.cancellation_reason),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.warning(f"Concurrent status change on booking {booking.lr_number}")
            raise ConcurrencyConflict(
                "Booking was modified by another request",
                {"current_status": observed_status, "version": observed_version},
            )

        await self.audit.log(
            action="STATUS_CHANGE",
            entity_type="BOOKING",
            entity_id=booking.id,
            user_id=self.principal.user_id,
            organization_id=booking.organization_id,
            old_values={"status": observed_status},
            new_values={"status": new_status, "workflow_context": context},
            description=f"{get_transition_action(observed_status, new_status)} {booking.lr_number}",
        )
        logger.info(f"Booking {booking.lr_number}: {observed_status} -> {new_status} ({context})")

        return await self._load(booking_id)

    # ============================================
    # LINES
    # ============================================

    async def add_article(self, booking_id: uuid.UUID, line: BookingArticleCreate) -> Booking:
        """
        Add a priced line to a booking and rewrite the header total.

        Lines are priced against the original booking date so the contract
        terms in force when the booking was made still apply.
        """
        booking = await self._get_authorized(booking_id, Action.UPDATE)
        if not can_modify_articles(booking.status):
            raise ValidationError(
                f"Booking in '{booking.status}' status cannot be modified",
                {"status": booking.status},
            )

        line_number = max((a.line_number for a in booking.articles), default=0) + 1
        self._validate_line(line, line_number)
        articles = await self._articles_by_id([line], booking.organization_id)
        customer_id = self.billing_customer_id(booking.payment_type, booking.sender_id, booking.receiver_id)

        new_line = await self._price_line(
            line,
            line_number,
            org_id=booking.organization_id,
            customer_id=customer_id,
            from_location=booking.from_location,
            to_location=booking.to_location,
            urgency=booking.urgency,
            booking_date=booking.booking_date,
            article=articles.get(line.article_id) if line.article_id else None,
        )
        new_line.booking_id = booking.id

        totals = self.calculator.aggregate([*booking.articles, new_line])
        await self._check_credit(
            org_id=booking.organization_id,
            payment_type=booking.payment_type,
            customer_id=customer_id,
            booking_date=booking.booking_date,
            amount=totals.total_amount,
            exclude_booking_id=booking.id,
        )
        observed_version = booking.version
        old_total = booking.total_amount

        self.db.add(new_line)
        await self.db.flush()

        result = await self.db.execute(
            update(Booking)
            .where(Booking.id == booking_id, Booking.version == observed_version)
            .values(
                total_amount=totals.total_amount,
                version=Booking.version + 1,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise ConcurrencyConflict(
                "Booking was modified by another request",
                {"version": observed_version},
            )

        await self.audit.log(
            action="ADD_ARTICLE",
            entity_type="BOOKING",
            entity_id=booking.id,
            user_id=self.principal.user_id,
            organization_id=booking.organization_id,
            old_values={"total_amount": str(old_total)},
            new_values={"total_amount": str(totals.total_amount), "line_number": line_number},
            description=f"Added article line {line_number} to {booking.lr_number}",
        )

        return await self._load(booking_id)
