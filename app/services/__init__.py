# =============================================================================
# Services Package — Business Logic
# =============================================================================
# Contains the core business logic, separated from API handlers:
#   - extraction.py: text extraction with Docling (OCR for scans)
#   - language.py / translation.py: script detection, LLM translation,
#     legal glossary
#   - chunker.py / embedder.py / knowledge_base.py: legal reference corpus
#     in ChromaDB
#   - lifecycle.py: upload → extract → analyse pipeline and re-analysis
#   - qa.py: streaming question answering with session history
#   - report.py: PDF compliance report (fpdf2)
#   - storage.py: local blob store with HMAC-signed URLs
#   - llm.py: multi-provider LLM abstraction (Anthropic, OpenAI-compatible)
#   - auth.py: API key generation and validity rules
#   - container.py: builds and wires every service once per process
# =============================================================================
