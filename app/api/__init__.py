# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
# Each module defines a FastAPI APIRouter for a specific feature:
#   - upload.py: multipart upload, returns immediately with status processing
#   - documents.py: list, status and delete
#   - analysis.py: latest analysis, re-analysis trigger (202)
#   - qa.py: Q&A session and the server-sent-events answer stream
#   - report.py: PDF report generation, returns a signed URL
#   - files.py: signed blob downloads
#   - deps.py: services container and Bearer API key authentication
# =============================================================================
