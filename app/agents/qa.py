# =============================================================================
# Grounded Q&A Agent — Prompt Construction
# =============================================================================
#
# Builds the system prompt and message list for answering a question about
# one document. Grounding material goes in the system prompt; the session
# transcript becomes prior chat turns, followed by the new question.
#
# DESIGN DECISION: Context formatted with numbered references.
# Knowledge-base snippets are presented as [1], [2], etc. so the model can
# cite them, the same way document chunks are cited elsewhere.
#
# DESIGN DECISION: The answer is generated in the default language and
# translated afterwards (see app.services.qa). The prompt therefore never
# asks the model to switch languages.
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass

from app.db.models import Analysis, ChatMessage
from app.services.knowledge_base import KnowledgeSnippet

QA_SYSTEM_PROMPT = (
    'You are the grounded legal Q&A agent of "IndiaLawAI". You answer '
    "questions about one contract using ONLY the material below.\n\n"
    "Rules:\n"
    "- Base your answer exclusively on the document text, its analysis and "
    "the legal knowledge provided\n"
    "- Cite specific Acts and sections when relevant; cite knowledge "
    "snippets as [1], [2], etc.\n"
    "- If the information is not in the material, say so clearly\n"
    "- Keep answers concise and accurate"
)


@dataclass
class QAPrompt:
    system: str
    messages: list[dict[str, str]]


def format_analysis_summary(analysis: Analysis | None) -> str:
    if analysis is None:
        return "No analysis available yet."
    categories = ", ".join(
        f"{item['category']}: {item['score']}" for item in analysis.category_scores
    )
    return (
        f"- IndiaLaw Score: {analysis.india_law_score}\n"
        f"- {len(analysis.risks)} risks identified\n"
        f"- Category Scores: {categories or 'none'}"
    )


def format_snippets(snippets: list[KnowledgeSnippet]) -> str:
    if not snippets:
        return "None"
    return "\n\n".join(f"[{i}] {snippet.render()}" for i, snippet in enumerate(snippets, 1))


def build_qa_prompt(
    question: str,
    document_text: str,
    analysis: Analysis | None,
    snippets: list[KnowledgeSnippet],
    history: list[ChatMessage],
    context_chars: int = 10_000,
) -> QAPrompt:
    """
    Args:
        question: The user's question, as asked.
        document_text: Full extracted text; only the first `context_chars`
            characters are used.
        analysis: Latest analysis of the document, if any.
        snippets: Knowledge-base snippets retrieved for the question.
        history: Prior session messages in call order.
    """
    system = (
        f"{QA_SYSTEM_PROMPT}\n\n"
        "CONTEXT:\n"
        f"1. Document Text (first {context_chars} characters):\n"
        f"---\n{document_text[:context_chars]}\n---\n\n"
        "2. Document Analysis:\n"
        f"{format_analysis_summary(analysis)}\n\n"
        "3. Relevant Legal Knowledge:\n"
        f"{format_snippets(snippets)}"
    )

    messages = [
        {"role": message.role.value, "content": message.content}
        for message in history
    ]
    messages.append({"role": "user", "content": question})
    return QAPrompt(system=system, messages=messages)
