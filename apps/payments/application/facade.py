from __future__ import annotations

from django.conf import settings

from apps.payments.domain.ports import TopupProviderPort
from apps.payments.infrastructure.gateways.atlantic_gateway import AtlanticGateway
from apps.payments.infrastructure.gateways.sandbox_stub import SandboxStubGateway


class PaymentGatewayFacade:
    _registry: dict[str, TopupProviderPort] = {
        AtlanticGateway.code: AtlanticGateway(),
        SandboxStubGateway.code: SandboxStubGateway(),
    }

    @classmethod
    def get(cls, provider_code: str) -> TopupProviderPort:
        key = (provider_code or "").strip().lower()
        if key not in cls._registry:
            raise ValueError(f"Unknown payment provider: {provider_code}")
        return cls._registry[key]

    @classmethod
    def active(cls) -> TopupProviderPort:
        return cls.get(getattr(settings, "PAYMENT_PROVIDER", AtlanticGateway.code))
