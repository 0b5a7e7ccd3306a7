# =============================================================================
# IndiaLawAI Compliance API
# =============================================================================
# Upload contracts and agreements, get an Indian-law compliance analysis
# (GST, labour, contract validity, data protection), ask questions about
# them in English or Indian languages, and download a PDF report.
#
# Package structure:
#   app/
#   ├── api/          → FastAPI route handlers (upload, documents, analysis,
#   │                    Q&A streaming, reports, signed file downloads)
#   ├── agents/       → Prompt building and response parsing for the
#   │                    compliance analysis and Q&A model calls
#   ├── db/           → Database engine, ORM models and the owner-scoped store
#   ├── models/       → Pydantic V2 request/response and job schemas
#   ├── services/     → Business logic (extraction, translation, knowledge
#   │                    base, lifecycle, Q&A, reports, storage, auth)
#   └── workers/      → Job queue backends and Celery task definitions
# =============================================================================
