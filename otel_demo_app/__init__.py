"""
Flask demo service emitting OpenTelemetry traces and metrics.

Submodules are imported explicitly: otel_demo_app.proxy runs inside the nginx
image and must not pull in Flask or the OpenTelemetry SDK.
"""
