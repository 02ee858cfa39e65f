"""
OpenTelemetry instrumentation for the storefront services
"""
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource, SERVICE_NAME
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
import logging

logger = logging.getLogger(__name__)


def setup_opentelemetry(
    service_name: str,
    otlp_endpoint: str = "http://localhost:4317",
    enabled: bool = True
):
    """
    Setup OpenTelemetry tracing for the service

    Args:
        service_name: Name reported on every span (e.g., "order-service")
        otlp_endpoint: OTLP collector endpoint
        enabled: Whether to enable tracing
    """
    if not enabled:
        logger.info("OpenTelemetry disabled")
        return None

    resource = Resource(attributes={
        SERVICE_NAME: service_name
    })

    provider = TracerProvider(resource=resource)
    otlp_exporter = OTLPSpanExporter(
        endpoint=otlp_endpoint,
        insecure=True
    )
    provider.add_span_processor(
        BatchSpanProcessor(otlp_exporter)
    )
    trace.set_tracer_provider(provider)

    # Outbound calls to the payment provider
    HTTPXClientInstrumentor().instrument()

    logger.info(f"OpenTelemetry initialized for {service_name}, exporting to {otlp_endpoint}")

    return provider


def instrument_fastapi(app):
    """Instrument FastAPI application"""
    FastAPIInstrumentor.instrument_app(app)
    logger.info("FastAPI instrumented with OpenTelemetry")


def instrument_sqlalchemy(engine):
    """Instrument SQLAlchemy engine"""
    SQLAlchemyInstrumentor().instrument(engine=engine)
    logger.info("SQLAlchemy instrumented with OpenTelemetry")


def set_order_attributes(span, order):
    """Record an order's identity and both status tracks on a span"""
    span.set_attribute("order.id", order.id)
    span.set_attribute("order.user_id", order.user_id)
    span.set_attribute("order.total", str(order.total))
    span.set_attribute("order.fulfillment_status", order.fulfillment_status.value)
    span.set_attribute("order.payment_status", order.payment_status.value)
    if order.razorpay_order_id:
        span.set_attribute("payment.intent_id", order.razorpay_order_id)
