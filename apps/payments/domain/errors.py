from __future__ import annotations


class PaymentGatewayError(Exception):
    pass


class UpstreamBusinessError(PaymentGatewayError):
    """Provider answered with an explicit failure payload."""


class UpstreamTransportError(PaymentGatewayError):
    """Provider unreachable, timed out, or answered with an unusable body."""
