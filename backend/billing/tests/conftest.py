from unittest import mock

import pytest
from django.core.cache import cache

from billing.gateways import GatewayError, GatewayRegistry
from billing.models import Member, MemberPlan, Plan
from billing.tests.fakes import FakeGateway
from tenants.models import Tenant


@pytest.fixture(autouse=True)
def _clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture(autouse=True)
def decrypted_contact():
    with mock.patch(
        "billing.services.dispatch.decrypt_member_contact",
        return_value=("12345678909", "+5511999990000"),
    ) as patched:
        yield patched


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
def registry(fake_gateway):
    registry = GatewayRegistry()
    registry.register(fake_gateway)
    return registry.freeze()


@pytest.fixture
def failing_registry():
    registry = GatewayRegistry()
    registry.register(FakeGateway(fail_with=GatewayError("gateway timeout")))
    return registry.freeze()


@pytest.fixture
def tenant(db):
    return Tenant.objects.create(name="Esporte Clube Teste")


@pytest.fixture
def plan(db):
    return Plan.objects.create(name="Sócio Mensal", price_cents=4990, is_active=True)


@pytest.fixture
def make_member(db, plan):
    def _make(name="Maria Silva", status=Member.Status.ACTIVE, with_plan=True, member_plan=None):
        member = Member.objects.create(name=name, cpf=b"enc-cpf", phone=b"enc-phone", status=status)
        if with_plan:
            MemberPlan.objects.create(member=member, plan=member_plan or plan)
        return member

    return _make
