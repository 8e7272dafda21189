"""
Shared fixtures.

Settings are read at import time, so the environment is prepared before
anything under app is imported.
"""
import os
import tempfile
from types import SimpleNamespace

_TEST_DB_DIR = tempfile.mkdtemp(prefix="booking-core-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TEST_DB_DIR, 'test.db')}"
os.environ["SECRET_KEY"] = "test-secret-key-not-for-production"
os.environ.setdefault("DEBUG", "false")

import uuid
from datetime import date, timedelta
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient

from app.core.security import create_access_token, get_password_hash
from app.core.tenancy import Principal
from app.database import Base, async_session_factory, engine
from app.main import app
from app.models import (
    Article, Branch, Customer, Organization, RateContract, RateSlab, User, UserRole,
)


TEST_PASSWORD = "Secret@123"
# One bcrypt round trip per session instead of per user
PASSWORD_HASH = get_password_hash(TEST_PASSWORD)


@pytest.fixture(autouse=True)
async def reset_database():
    """Fresh schema for every test."""
    from app import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield


def _user(org, branch, email, role, full_name):
    return User(
        id=uuid.uuid4(),
        organization_id=org.id,
        branch_id=branch.id if branch else None,
        email=email,
        password_hash=PASSWORD_HASH,
        full_name=full_name,
        role=role,
        is_active=True,
    )


@pytest.fixture
async def seed(reset_database):
    """
    Two organizations.

    ACME has branches MUM, DEL and BLR with one user per role, two
    customers and three catalogue articles. BETA has one branch, an admin
    and a customer.
    """
    acme = Organization(id=uuid.uuid4(), name="Acme Freight", code="ACME", is_active=True)
    beta = Organization(id=uuid.uuid4(), name="Beta Logistics", code="BETA", is_active=True)

    mum = Branch(id=uuid.uuid4(), organization_id=acme.id, name="Mumbai", code="MUM", city="Mumbai", is_active=True)
    dl = Branch(id=uuid.uuid4(), organization_id=acme.id, name="Delhi", code="DEL", city="Delhi", is_active=True)
    blr = Branch(id=uuid.uuid4(), organization_id=acme.id, name="Bengaluru", code="BLR", city="Bengaluru", is_active=True)
    chn = Branch(id=uuid.uuid4(), organization_id=beta.id, name="Chennai", code="CHN", city="Chennai", is_active=True)

    users = SimpleNamespace(
        super_admin=_user(acme, mum, "root@acme.in", UserRole.SUPER_ADMIN.value, "Root User"),
        org_admin=_user(acme, mum, "owner@acme.in", UserRole.ORG_ADMIN.value, "Org Owner"),
        admin=_user(acme, mum, "admin@acme.in", UserRole.ADMIN.value, "Branch Admin"),
        operator_mum=_user(acme, mum, "mum.ops@acme.in", UserRole.OPERATOR.value, "Mumbai Operator"),
        operator_del=_user(acme, dl, "del.ops@acme.in", UserRole.OPERATOR.value, "Delhi Operator"),
        operator_blr=_user(acme, blr, "blr.ops@acme.in", UserRole.OPERATOR.value, "Bengaluru Operator"),
        beta_admin=_user(beta, chn, "admin@beta.in", UserRole.ADMIN.value, "Beta Admin"),
    )

    sender = Customer(id=uuid.uuid4(), organization_id=acme.id, name="Reliance Traders", code="C001", is_active=True)
    receiver = Customer(id=uuid.uuid4(), organization_id=acme.id, name="Tata Stores", code="C002", is_active=True)
    beta_customer = Customer(id=uuid.uuid4(), organization_id=beta.id, name="Zeta Retail", code="Z001", is_active=True)

    carton = Article(
        id=uuid.uuid4(), organization_id=acme.id, name="Carton", category="general",
        base_rate=Decimal("100.00"), requires_special_handling=False, is_fragile=False, is_active=True,
    )
    glassware = Article(
        id=uuid.uuid4(), organization_id=acme.id, name="Glassware", category="fragile_goods",
        base_rate=Decimal("200.00"), requires_special_handling=False, is_fragile=True, is_active=True,
    )
    machinery = Article(
        id=uuid.uuid4(), organization_id=acme.id, name="Machinery", category="heavy",
        base_rate=Decimal("0"), requires_special_handling=True, is_fragile=False, is_active=True,
    )

    async with async_session_factory() as session:
        session.add_all([acme, beta])
        await session.flush()
        session.add_all([mum, dl, blr, chn])
        await session.flush()
        session.add_all(list(vars(users).values()))
        session.add_all([sender, receiver, beta_customer, carton, glassware, machinery])
        await session.commit()

    return SimpleNamespace(
        acme=acme,
        beta=beta,
        branches=SimpleNamespace(mum=mum, dl=dl, blr=blr, chn=chn),
        users=users,
        customers=SimpleNamespace(sender=sender, receiver=receiver, beta=beta_customer),
        articles=SimpleNamespace(carton=carton, glassware=glassware, machinery=machinery),
    )


@pytest.fixture
async def db(seed):
    async with async_session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def client(seed):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def principal_for(user: User) -> Principal:
    return Principal(
        user_id=user.id,
        role=user.role,
        org_id=user.organization_id,
        branch_id=user.branch_id,
    )


def auth_headers(user: User) -> dict:
    token = create_access_token(subject=user.id, additional_claims={"role": user.role})
    return {"Authorization": f"Bearer {token}"}


async def create_contract(
    customer: Customer,
    slabs: list,
    *,
    status: str = "active",
    valid_from: date = None,
    valid_until: date = None,
    contract_number: str = None,
    base_discount_percentage: Decimal = Decimal("0"),
    credit_limit: Decimal = Decimal("0"),
) -> RateContract:
    """Insert a contract with slabs directly, committed."""
    today = date.today()
    contract = RateContract(
        id=uuid.uuid4(),
        organization_id=customer.organization_id,
        customer_id=customer.id,
        contract_number=contract_number or f"RC-{uuid.uuid4().hex[:8].upper()}",
        contract_type="standard",
        valid_from=valid_from or today - timedelta(days=30),
        valid_until=valid_until or today + timedelta(days=30),
        payment_terms=30,
        credit_limit=credit_limit,
        base_discount_percentage=base_discount_percentage,
        status=status,
    )
    contract.slabs = [
        RateSlab(
            id=uuid.uuid4(),
            from_location=slab.get("from_location", "Mumbai"),
            to_location=slab.get("to_location", "Delhi"),
            article_id=slab.get("article_id"),
            article_category=slab.get("article_category"),
            weight_from=Decimal(str(slab.get("weight_from", "0"))),
            weight_to=Decimal(str(slab.get("weight_to", "1000"))),
            charge_basis=slab.get("charge_basis", "weight"),
            rate_per_kg=slab.get("rate_per_kg"),
            rate_per_unit=slab.get("rate_per_unit"),
            minimum_charge=Decimal(str(slab.get("minimum_charge", "0"))),
            is_active=slab.get("is_active", True),
        )
        for slab in slabs
    ]
    async with async_session_factory() as session:
        session.add(contract)
        await session.commit()
    return contract


def booking_payload(seed, **overrides) -> dict:
    """JSON body for POST /bookings from MUM to DEL."""
    payload = {
        "branch_id": str(seed.branches.mum.id),
        "from_branch_id": str(seed.branches.mum.id),
        "to_branch_id": str(seed.branches.dl.id),
        "from_location": "Mumbai",
        "to_location": "Delhi",
        "sender_id": str(seed.customers.sender.id),
        "receiver_id": str(seed.customers.receiver.id),
        "payment_mode": "paid",
        "pickup_date": date.today().isoformat(),
        "articles": [
            {"name": "Cartons", "quantity": 1, "weight": "26", "rate_type": "per_kg", "rate_value": "50"},
        ],
    }
    payload.update(overrides)
    return payload
