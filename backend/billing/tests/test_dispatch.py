import dataclasses
import uuid
from datetime import datetime, timezone as dt_timezone
from unittest import mock

import pytest
from django.db import DatabaseError

from billing.gateways import GatewayError, GatewayRegistry
from billing.models import Charge
from billing.services.dispatch import DispatchFailure, DispatchSuccess, dispatch_charge_to_gateway
from billing.tests.fakes import FakeGateway

DUE = datetime(2026, 3, 31, 23, 59, 59, tzinfo=dt_timezone.utc)


@pytest.fixture
def member(make_member):
    return make_member()


@pytest.fixture
def charge(member):
    return Charge.objects.create(member=member, amount_cents=4990, due_date=DUE)


@pytest.mark.django_db
@pytest.mark.parametrize("method", [Charge.Method.CASH, Charge.Method.BANK_TRANSFER])
def test_offline_methods_skip_gateway_and_decryption(tenant, member, fake_gateway, registry, decrypted_contact, method):
    charge = Charge.objects.create(member=member, amount_cents=4990, due_date=DUE, method=method)

    outcome = dispatch_charge_to_gateway(tenant.id, charge, member, registry=registry)

    assert outcome == DispatchSuccess(external_id="", gateway_name="", meta={})
    assert outcome.ok is True
    assert fake_gateway.calls == []
    decrypted_contact.assert_not_called()


@pytest.mark.django_db
def test_missing_gateway_for_method_is_a_failure(tenant, member, charge):
    outcome = dispatch_charge_to_gateway(tenant.id, charge, member, registry=GatewayRegistry().freeze())

    assert isinstance(outcome, DispatchFailure)
    assert outcome.ok is False
    assert "PIX" in outcome.error
    charge.refresh_from_db()
    assert charge.external_id is None


@pytest.mark.django_db
def test_gateway_error_leaves_charge_untouched(tenant, member, charge, failing_registry):
    outcome = dispatch_charge_to_gateway(tenant.id, charge, member, registry=failing_registry)

    assert outcome == DispatchFailure(error="gateway timeout")
    charge.refresh_from_db()
    assert charge.status == Charge.Status.PENDING
    assert charge.external_id is None
    assert charge.gateway_name is None


@pytest.mark.django_db
def test_unexpected_adapter_exception_is_reported_not_raised(tenant, member, charge):
    registry = GatewayRegistry()
    registry.register(FakeGateway(fail_with=KeyError("pixQrCode")))

    outcome = dispatch_charge_to_gateway(tenant.id, charge, member, registry=registry.freeze())

    assert isinstance(outcome, DispatchFailure)
    assert "pixQrCode" in outcome.error


@pytest.mark.django_db
def test_success_stores_gateway_identifiers(tenant, member, charge, registry, fake_gateway):
    outcome = dispatch_charge_to_gateway(tenant.id, charge, member, registry=registry)

    expected_external_id = f"ext_{str(charge.id)[:8]}"
    assert outcome == DispatchSuccess(
        external_id=expected_external_id,
        gateway_name="fakepay",
        meta={"pixCopyPaste": "000201br.gov.bcb.pix"},
    )
    assert charge.external_id == expected_external_id

    stored = Charge.objects.get(pk=charge.pk)
    assert stored.external_id == expected_external_id
    assert stored.gateway_name == "fakepay"
    assert stored.gateway_meta == {"pixCopyPaste": "000201br.gov.bcb.pix"}
    assert stored.status == Charge.Status.PENDING


@pytest.mark.django_db
def test_gateway_request_carries_member_contact_and_charge_id(tenant, member, charge, registry, fake_gateway):
    member.email = "maria@example.com"

    dispatch_charge_to_gateway(tenant.id, charge, member, registry=registry)

    request = fake_gateway.calls[0]
    assert request.idempotency_key == str(charge.id)
    assert request.amount_cents == 4990
    assert request.method == "PIX"
    assert request.description == "Mensalidade 03/2026"
    assert request.customer.name == "Maria Silva"
    assert request.customer.cpf == "12345678909"
    assert request.customer.phone == "+5511999990000"
    assert request.customer.email == "maria@example.com"


@pytest.mark.django_db
def test_decryption_errors_propagate(tenant, member, charge, registry, fake_gateway, decrypted_contact):
    decrypted_contact.side_effect = DatabaseError("wrong key or corrupt data")

    with pytest.raises(DatabaseError):
        dispatch_charge_to_gateway(tenant.id, charge, member, registry=registry)

    assert fake_gateway.calls == []


@pytest.mark.django_db
def test_local_persist_failure_reports_external_id(tenant, member, charge, registry):
    with mock.patch("billing.services.dispatch.tenant_scope", side_effect=DatabaseError("connection reset")):
        outcome = dispatch_charge_to_gateway(tenant.id, charge, member, registry=registry)

    assert isinstance(outcome, DispatchFailure)
    assert f"ext_{str(charge.id)[:8]}" in outcome.error
    assert "connection reset" in outcome.error
    charge.refresh_from_db()
    assert charge.external_id is None


class UnserializableMetaGateway(FakeGateway):
    def create_charge(self, data):
        result = super().create_charge(data)
        return dataclasses.replace(result, meta={"expiresAt": object()})


@pytest.mark.django_db
def test_non_database_persist_failure_reports_external_id(tenant, member, charge):
    gateway = UnserializableMetaGateway()
    registry = GatewayRegistry()
    registry.register(gateway)

    outcome = dispatch_charge_to_gateway(tenant.id, charge, member, registry=registry)

    assert isinstance(outcome, DispatchFailure)
    assert f"ext_{str(charge.id)[:8]}" in outcome.error
    assert len(gateway.calls) == 1
    charge.refresh_from_db()
    assert charge.external_id is None


@pytest.mark.django_db
def test_missing_charge_row_is_a_failure(tenant, member, registry):
    ghost = Charge(id=uuid.uuid4(), member=member, amount_cents=4990, due_date=DUE)

    outcome = dispatch_charge_to_gateway(tenant.id, ghost, member, registry=registry)

    assert isinstance(outcome, DispatchFailure)
    assert "charge row not found" in outcome.error
    assert ghost.external_id is None


@pytest.mark.django_db
def test_retry_after_gateway_failure_reuses_idempotency_key(tenant, member, charge):
    gateway = FakeGateway(fail_with=GatewayError("503"))
    registry = GatewayRegistry()
    registry.register(gateway)
    registry.freeze()

    dispatch_charge_to_gateway(tenant.id, charge, member, registry=registry)
    gateway.fail_with = None
    outcome = dispatch_charge_to_gateway(tenant.id, charge, member, registry=registry)

    assert outcome.ok
    assert [call.idempotency_key for call in gateway.calls] == [str(charge.id), str(charge.id)]
