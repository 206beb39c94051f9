from unittest import mock

import pytest
from django.contrib.auth import get_user_model
from django.urls import reverse
from rest_framework.test import APIClient

from billing.models import AuditLog, Charge, Plan


def _url():
    return reverse("billing:charges-generate")


@pytest.fixture
def staff_user(db):
    return get_user_model().objects.create_user(username="tesoureiro", password="secret-pass")


@pytest.fixture
def staff_client(staff_user, tenant, registry):
    tenant.staff.add(staff_user)
    api_client = APIClient()
    api_client.force_authenticate(user=staff_user)
    with mock.patch("billing.views.charges.get_gateway_registry", return_value=registry):
        yield api_client


@pytest.mark.django_db
def test_requires_authentication():
    response = APIClient().post(_url(), {}, format="json")

    assert response.status_code in (401, 403)
    assert not Charge.objects.exists()


@pytest.mark.django_db
def test_user_without_club_is_forbidden(staff_user):
    api_client = APIClient()
    api_client.force_authenticate(user=staff_user)

    response = api_client.post(_url(), {}, format="json")

    assert response.status_code == 403
    assert response.data["code"] == "no_tenant"


@pytest.mark.django_db
def test_generates_charges_for_users_club(staff_client, staff_user, make_member):
    member = make_member()

    response = staff_client.post(_url(), {"billingPeriod": "2026-03"}, format="json")

    assert response.status_code == 200
    assert response.data["generated"] == 1
    assert response.data["skipped"] == 0
    assert response.data["charges"][0]["memberId"] == str(member.id)
    assert response.data["charges"][0]["gatewayName"] == "fakepay"
    audit = AuditLog.objects.get(action=AuditLog.Action.CHARGE_GENERATED)
    assert audit.actor_id == str(staff_user.pk)


@pytest.mark.django_db
def test_second_request_skips_existing_charges(staff_client, make_member):
    make_member()

    staff_client.post(_url(), {"billingPeriod": "2026-03"}, format="json")
    response = staff_client.post(_url(), {"billingPeriod": "2026-03"}, format="json")

    assert response.status_code == 200
    assert response.data["generated"] == 0
    assert response.data["skipped"] == 1


@pytest.mark.django_db
def test_empty_body_uses_current_period(staff_client, make_member):
    make_member()

    response = staff_client.post(_url(), {}, format="json")

    assert response.status_code == 200
    assert response.data["generated"] == 1


@pytest.mark.django_db
def test_club_without_active_plan(staff_client):
    Plan.objects.update(is_active=False)

    response = staff_client.post(_url(), {"billingPeriod": "2026-03"}, format="json")

    assert response.status_code == 422
    assert response.data["code"] == "NO_ACTIVE_PLAN"


@pytest.mark.django_db
@pytest.mark.parametrize(
    "body",
    [
        {"billingPeriod": "2026-13"},
        {"billingPeriod": "march"},
        {"dueDate": "31/03/2026"},
    ],
)
def test_invalid_payload(staff_client, body):
    response = staff_client.post(_url(), body, format="json")

    assert response.status_code == 400
    assert response.data["code"] == "invalid_payload"
    assert set(response.data["details"]) == set(body)


@pytest.mark.django_db
def test_due_date_outside_billing_period_is_rejected(staff_client, make_member):
    make_member()

    response = staff_client.post(
        _url(),
        {"billingPeriod": "2026-02", "dueDate": "2026-03-10T12:00:00Z"},
        format="json",
    )

    assert response.status_code == 400
    assert response.data["code"] == "invalid_payload"
    assert "dueDate" in response.data["details"]
    assert not Charge.objects.exists()
