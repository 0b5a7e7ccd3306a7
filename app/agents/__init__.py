# =============================================================================
# Agents Package — Model-Facing Logic
# =============================================================================
#   - compliance.py: analysis prompt, JSON report parsing, local scoring
#     (ComplianceAnalyzer)
#   - qa.py: Q&A prompt assembly from document text, latest analysis,
#     knowledge-base snippets and session history
# =============================================================================
