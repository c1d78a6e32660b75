"""compliance.integrations — External service gateway modules.

All outbound HTTP calls to the remote API must go through a gateway in this
package, never via bare `requests` calls in services or blueprints.

Every call is:
  - Identified (userEmail + token injected by the gateway)
  - Retried with backoff on transport faults
  - Circuit-broken to prevent cascade failures

Current gateways:
  backend_gateway.BackendGateway — spreadsheet-backed web-app API
"""
