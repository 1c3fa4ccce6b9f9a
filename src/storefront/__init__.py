"""Multi-tenant storefront platform edge: tenant routing and rate limiting."""
