"""
tests/
------
SQS to FHIR Loader: Test Package
-----------------------------------
One module per component plus end-to-end handler scenarios. No network:
boto3 clients, requests sessions and Sentry are mocked, retry sleeps are
no-ops.

Run:
    pytest tests/ -v --tb=short
"""
