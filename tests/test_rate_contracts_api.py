from datetime import date, timedelta
from decimal import Decimal

from conftest import auth_headers, booking_payload, create_contract


RATES = "/api/v1/rates"


def contract_body(seed, **overrides):
    today = date.today()
    body = {
        "customer_id": str(seed.customers.sender.id),
        "contract_number": "RC-2026-001",
        "valid_from": (today - timedelta(days=1)).isoformat(),
        "valid_until": (today + timedelta(days=90)).isoformat(),
        "base_discount_percentage": "2.5",
        "slabs": [
            {
                "from_location": "Mumbai",
                "to_location": "Delhi",
                "weight_from": "0",
                "weight_to": "100",
                "charge_basis": "weight",
                "rate_per_kg": "35",
            },
            {
                "from_location": "Mumbai",
                "to_location": "Delhi",
                "weight_from": "100",
                "weight_to": "1000",
                "charge_basis": "weight",
                "rate_per_kg": "30",
            },
        ],
    }
    body.update(overrides)
    return body


async def create_draft(client, seed, user=None, **overrides):
    response = await client.post(
        f"{RATES}/contracts",
        json=contract_body(seed, **overrides),
        headers=auth_headers(user or seed.users.admin),
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestContractLifecycle:

    async def test_create_is_draft(self, client, seed):
        contract = await create_draft(client, seed)

        assert contract["status"] == "draft"
        assert contract["organization_id"] == str(seed.acme.id)
        assert len(contract["slabs"]) == 2
        assert contract["approved_by"] is None

    async def test_operator_cannot_manage_contracts(self, client, seed):
        response = await client.post(
            f"{RATES}/contracts", json=contract_body(seed), headers=auth_headers(seed.users.operator_mum)
        )
        assert response.status_code == 404

    async def test_draft_does_not_price_bookings(self, client, seed):
        await create_draft(client, seed)

        response = await client.post(
            "/api/v1/bookings", json=booking_payload(seed), headers=auth_headers(seed.users.admin)
        )
        assert response.json()["articles"][0]["rate_source"] == "manual"

    async def test_activate_then_book(self, client, seed):
        contract = await create_draft(client, seed)

        response = await client.post(
            f"{RATES}/contracts/{contract['id']}/activate", headers=auth_headers(seed.users.org_admin)
        )
        assert response.status_code == 200
        assert response.json()["status"] == "active"
        assert response.json()["approved_by"] == str(seed.users.org_admin.id)

        booking = await client.post(
            "/api/v1/bookings", json=booking_payload(seed), headers=auth_headers(seed.users.operator_mum)
        )
        line = booking.json()["articles"][0]
        assert line["rate_source"] == "contract_slab"
        assert line["rate_contract_id"] == contract["id"]
        assert Decimal(line["rate_value"]) == Decimal("35")

    async def test_terminate_then_reactivate_is_400(self, client, seed):
        contract = await create_draft(client, seed)
        headers = auth_headers(seed.users.admin)

        await client.post(f"{RATES}/contracts/{contract['id']}/activate", headers=headers)
        response = await client.post(f"{RATES}/contracts/{contract['id']}/terminate", headers=headers)
        assert response.json()["status"] == "terminated"

        response = await client.post(f"{RATES}/contracts/{contract['id']}/activate", headers=headers)
        assert response.status_code == 400
        assert response.json()["details"]["status"] == "terminated"

    async def test_expire_contracts(self, client, seed):
        contract = await create_draft(client, seed)
        headers = auth_headers(seed.users.admin)
        await client.post(f"{RATES}/contracts/{contract['id']}/activate", headers=headers)

        as_of = (date.today() + timedelta(days=91)).isoformat()
        response = await client.post(f"{RATES}/contracts/expire", json={"as_of": as_of}, headers=headers)
        assert response.status_code == 200
        assert response.json() == {"expired": 1}

        fetched = await client.get(f"{RATES}/contracts/{contract['id']}", headers=headers)
        assert fetched.json()["status"] == "expired"

    async def test_expire_only_touches_own_organization(self, client, seed):
        await create_contract(seed.customers.beta, [{}], valid_until=date.today() - timedelta(days=1))

        response = await client.post(
            f"{RATES}/contracts/expire",
            json={"as_of": date.today().isoformat()},
            headers=auth_headers(seed.users.admin),
        )
        assert response.json() == {"expired": 0}


class TestContractValidation:

    async def test_duplicate_number_is_400(self, client, seed):
        await create_draft(client, seed)
        response = await client.post(
            f"{RATES}/contracts", json=contract_body(seed), headers=auth_headers(seed.users.admin)
        )
        assert response.status_code == 400
        assert "already exists" in response.json()["error"]

    async def test_inverted_weight_range_is_400(self, client, seed):
        slabs = [{"from_location": "Mumbai", "to_location": "Delhi", "weight_from": "50", "weight_to": "10", "rate_per_kg": "5"}]
        response = await client.post(
            f"{RATES}/contracts", json=contract_body(seed, slabs=slabs), headers=auth_headers(seed.users.admin)
        )
        assert response.status_code == 400
        assert response.json()["details"]["slab"] == 1

    async def test_missing_rate_for_basis_is_400(self, client, seed):
        slabs = [{
            "from_location": "Mumbai", "to_location": "Delhi", "weight_to": "10",
            "charge_basis": "whichever_higher", "rate_per_kg": "5",
        }]
        response = await client.post(
            f"{RATES}/contracts", json=contract_body(seed, slabs=slabs), headers=auth_headers(seed.users.admin)
        )
        assert response.status_code == 400
        assert response.json()["details"]["missing"] == "rate_per_unit"

    async def test_inverted_validity_window_is_400(self, client, seed):
        body = contract_body(seed, valid_from="2026-05-01", valid_until="2026-04-01")
        response = await client.post(f"{RATES}/contracts", json=body, headers=auth_headers(seed.users.admin))
        assert response.status_code == 400

    async def test_foreign_customer_is_404(self, client, seed):
        body = contract_body(seed, customer_id=str(seed.customers.beta.id))
        response = await client.post(f"{RATES}/contracts", json=body, headers=auth_headers(seed.users.admin))
        assert response.status_code == 404


class TestSlabs:

    async def test_add_and_deactivate_slab(self, client, seed):
        contract = await create_draft(client, seed, slabs=[])
        headers = auth_headers(seed.users.admin)

        response = await client.post(
            f"{RATES}/contracts/{contract['id']}/slabs",
            json={"slabs": [{
                "from_location": "Mumbai", "to_location": "Delhi", "weight_to": "500",
                "article_category": "general", "rate_per_kg": "20",
            }]},
            headers=headers,
        )
        assert response.status_code == 201
        slab = response.json()["slabs"][0]
        assert slab["is_active"] is True

        response = await client.delete(f"{RATES}/slabs/{slab['id']}", headers=headers)
        assert response.status_code == 200
        assert response.json()["is_active"] is False

    async def test_no_slabs_on_terminated_contract(self, client, seed):
        contract = await create_draft(client, seed)
        headers = auth_headers(seed.users.admin)
        await client.post(f"{RATES}/contracts/{contract['id']}/terminate", headers=headers)

        response = await client.post(
            f"{RATES}/contracts/{contract['id']}/slabs",
            json={"slabs": [{"from_location": "Pune", "to_location": "Goa", "weight_to": "10", "rate_per_kg": "1"}]},
            headers=headers,
        )
        assert response.status_code == 400


class TestListAndLookup:

    async def test_list_is_org_scoped(self, client, seed):
        await create_draft(client, seed)
        await create_contract(seed.customers.beta, [{}])

        body = (await client.get(f"{RATES}/contracts", headers=auth_headers(seed.users.operator_mum))).json()
        assert body["total"] == 1
        assert body["items"][0]["contract_number"] == "RC-2026-001"

        body = (await client.get(f"{RATES}/contracts", headers=auth_headers(seed.users.super_admin))).json()
        assert body["total"] == 2

    async def test_list_active_on(self, client, seed):
        await create_draft(client, seed)
        await create_contract(seed.customers.receiver, [{}])

        body = (await client.get(
            f"{RATES}/contracts?active_on={date.today().isoformat()}", headers=auth_headers(seed.users.admin)
        )).json()
        assert body["total"] == 1
        assert body["items"][0]["customer_id"] == str(seed.customers.receiver.id)

    async def test_foreign_contract_is_404(self, client, seed):
        contract = await create_contract(seed.customers.beta, [{}])
        response = await client.get(f"{RATES}/contracts/{contract.id}", headers=auth_headers(seed.users.admin))
        assert response.status_code == 404

    async def test_lookup_hit(self, client, seed):
        contract = await create_contract(seed.customers.sender, [
            {"weight_from": "0", "weight_to": "100", "rate_per_kg": Decimal("35")},
            {"weight_from": "100", "weight_to": "1000", "rate_per_kg": Decimal("30")},
        ])

        response = await client.post(
            f"{RATES}/lookup",
            json={
                "customer_id": str(seed.customers.sender.id),
                "from_location": "Mumbai",
                "to_location": "Delhi",
                "weight": "150",
            },
            headers=auth_headers(seed.users.operator_mum),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["hasContract"] is True
        assert body["hasRate"] is True
        assert body["rate_contract"]["id"] == str(contract.id)
        assert Decimal(body["rate_slab"]["rate_per_kg"]) == Decimal("30")

    async def test_lookup_without_contract(self, client, seed):
        response = await client.post(
            f"{RATES}/lookup",
            json={
                "customer_id": str(seed.customers.receiver.id),
                "from_location": "Mumbai",
                "to_location": "Delhi",
                "weight": "10",
            },
            headers=auth_headers(seed.users.admin),
        )

        body = response.json()
        assert body["hasContract"] is False
        assert body["rate_contract"] is None
        assert body["message"]

    async def test_lookup_past_date_ignores_current_contract(self, client, seed):
        await create_contract(seed.customers.sender, [{"rate_per_kg": Decimal("35")}])

        response = await client.post(
            f"{RATES}/lookup",
            json={
                "customer_id": str(seed.customers.sender.id),
                "from_location": "Mumbai",
                "to_location": "Delhi",
                "weight": "10",
                "booking_date": (date.today() - timedelta(days=365)).isoformat(),
            },
            headers=auth_headers(seed.users.admin),
        )
        assert response.json()["hasContract"] is False
