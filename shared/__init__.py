"""
Shared utilities for the property rules platform.

This package aggregates common building blocks consumed by the services:

- config: Service configuration via pydantic-settings
- logging: Structured logging with trace and scope correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Retry helpers for best-effort writes
- circuit_breaker: Resilient external call protection
- tracing: OpenTelemetry provider setup and operation spans
- base_service: FastAPI service skeleton (health, metrics, error handlers)
- test_helpers: Test data factories

Any cross-service logic should live here to avoid import cycles across
service packages. Apart from test_helpers, do not import from service_*
packages into shared/.
"""
