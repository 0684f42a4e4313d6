import uuid


API = "/api/v1"


def subscription_payload(municipality, **overrides):
    body = {
        "municipalityId": str(municipality.id),
        "plan": "PREMIUM",
        "validUntil": "2030-01-01T00:00:00Z",
        "amount": 499.5,
    }
    body.update(overrides)
    return body


def municipality_status(client, h, municipality):
    return client.get(f"{API}/municipalities/{municipality.id}", headers=h).json()["subscriptionStatus"]


class TestSubscriptions:
    def test_only_admin(self, client, headers, staff_a, town_a):
        h = headers(staff_a)
        assert client.get(f"{API}/subscriptions", headers=h).status_code == 403
        assert client.post(f"{API}/subscriptions", json=subscription_payload(town_a), headers=h).status_code == 403

    def test_create_defaults_to_pending(self, client, headers, admin, town_a):
        res = client.post(f"{API}/subscriptions", json=subscription_payload(town_a), headers=headers(admin))
        assert res.status_code == 201
        body = res.json()
        assert body["status"] == "PENDING"
        assert body["paymentStatus"] == "PENDING"
        assert body["amount"] == 499.5
        assert body["municipality"] == {"name": "Town A", "city": "Alpha"}

    def test_amount_must_be_positive(self, client, headers, admin, town_a):
        res = client.post(f"{API}/subscriptions", json=subscription_payload(town_a, amount=0), headers=headers(admin))
        assert res.status_code == 400

    def test_unknown_municipality(self, client, headers, admin, town_a):
        payload = subscription_payload(town_a, municipalityId=str(uuid.uuid4()))
        assert client.post(f"{API}/subscriptions", json=payload, headers=headers(admin)).status_code == 404

    def test_municipality_status_follows_latest_subscription(self, client, headers, admin, town_a, town_b):
        h = headers(admin)
        assert municipality_status(client, h, town_a) == "INACTIVE"

        created = client.post(
            f"{API}/subscriptions", json=subscription_payload(town_a, status="ACTIVE"), headers=h
        ).json()
        assert municipality_status(client, h, town_a) == "ACTIVE"
        assert municipality_status(client, h, town_b) == "INACTIVE"

        res = client.patch(f"{API}/subscriptions/{created['id']}", json={"status": "CANCELLED"}, headers=h)
        assert res.status_code == 200
        assert municipality_status(client, h, town_a) == "CANCELLED"

        listed = client.get(f"{API}/municipalities", params={"subscriptionStatus": "CANCELLED"}, headers=h).json()
        assert [m["id"] for m in listed["data"]] == [str(town_a.id)]

    def test_list_and_get(self, client, headers, admin, town_a, town_b):
        h = headers(admin)
        first = client.post(f"{API}/subscriptions", json=subscription_payload(town_a), headers=h).json()
        client.post(f"{API}/subscriptions", json=subscription_payload(town_b, plan="BASIC"), headers=h)
        body = client.get(f"{API}/subscriptions", params={"municipalityId": str(town_a.id)}, headers=h).json()
        assert [s["id"] for s in body["data"]] == [first["id"]]
        assert client.get(f"{API}/subscriptions/{first['id']}", headers=h).json()["plan"] == "PREMIUM"
        assert client.get(f"{API}/subscriptions/{uuid.uuid4()}", headers=h).status_code == 404
