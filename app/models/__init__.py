# =============================================================================
# Models Package — Pydantic V2 Schemas
# =============================================================================
# Defines request/response schemas for the API, the validated shape of a
# compliance report, and the background job payloads.
# These are SEPARATE from the database models (app/db/models.py).
#
# DESIGN DECISION: Separate API schemas from DB models:
# 1. API schemas define what clients see (camelCase public contract)
# 2. DB models define how data is stored (internal concern)
# 3. Internal fields (key hashes) are never exposed by accident
# =============================================================================
