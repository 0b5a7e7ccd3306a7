# =============================================================================
# Text Extraction — Docling Document Intelligence
# =============================================================================
#
# Turns an uploaded file into plain text plus the metadata the analysis
# step needs: detected language, page count, and names of other contract
# documents the text refers to (GCC, SCC, Safety Manual, ...).
#
# DESIGN DECISION: Docling for everything except plain text.
# 1. Legal documents arrive as PDFs, scans, DOCX and images
# 2. Built-in OCR for scanned tender documents
# 3. Table structure recovery for schedules of rates and annexures
# 4. Runs locally; no document leaves the deployment
#
# DESIGN DECISION: .txt files bypass Docling. They are decoded as UTF-8
# and split into pages on form feeds (\f), the page separator most
# text exports use.
#
# DESIGN DECISION: We return our own dataclass (ExtractedText) rather than
# Docling types, so the lifecycle and store never import Docling.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from io import BytesIO
from pathlib import PurePosixPath
from typing import Protocol

from app.exceptions import ExtractionError
from app.services.language import detect_script_language

logger = logging.getLogger(__name__)

PLAIN_TEXT_SUFFIXES = frozenset({".txt"})

# Each pattern contributes its first match once, in this order
_REFERENCE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\bGCC\b|General Conditions of Contract", re.IGNORECASE),
    re.compile(r"\bSCC\b|Special Conditions of Contract", re.IGNORECASE),
    re.compile(r"\bPCC\b|Particular Conditions of Contract", re.IGNORECASE),
    re.compile(r"Safety Manuals?", re.IGNORECASE),
    re.compile(r"Technical Specifications?", re.IGNORECASE),
)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class ExtractedText:
    """The result of extracting one document."""

    text: str
    language: str
    page_count: int
    referenced_documents: list[str] = field(default_factory=list)


class TextExtractor(Protocol):
    async def extract(self, data: bytes, file_name: str) -> ExtractedText: ...


# ---------------------------------------------------------------------------
# Heuristics
# ---------------------------------------------------------------------------


def find_referenced_documents(text: str) -> list[str]:
    """
    Names of incorporated documents mentioned in the text.

    "The GCC and the Safety Manual shall apply" → ["GCC", "Safety Manual"]
    """
    found: list[str] = []
    for pattern in _REFERENCE_PATTERNS:
        match = pattern.search(text)
        if match and match.group(0) not in found:
            found.append(match.group(0))
    return found


def _build_result(text: str, page_count: int, file_name: str) -> ExtractedText:
    text = text.strip()
    if not text:
        raise ExtractionError(f"No text could be extracted from '{file_name}'")
    return ExtractedText(
        text=text,
        language=detect_script_language(text),
        page_count=page_count,
        referenced_documents=find_referenced_documents(text),
    )


# ---------------------------------------------------------------------------
# Docling-backed extractor
# ---------------------------------------------------------------------------


class DoclingTextExtractor:
    """
    TextExtractor backed by Docling.

    The DocumentConverter loads layout and OCR models on first use (a few
    seconds), so one instance is created lazily and reused.
    """

    def __init__(self, ocr_enabled: bool = True, table_structure: bool = True) -> None:
        self._ocr_enabled = ocr_enabled
        self._table_structure = table_structure
        self._converter = None

    def _get_converter(self):
        if self._converter is None:
            from docling.datamodel.base_models import InputFormat
            from docling.datamodel.pipeline_options import PdfPipelineOptions
            from docling.document_converter import (
                DocumentConverter,
                ImageFormatOption,
                PdfFormatOption,
            )

            logger.info(
                "Initializing Docling DocumentConverter "
                "(first use, may take a few seconds)..."
            )
            pipeline_options = PdfPipelineOptions()
            pipeline_options.do_ocr = self._ocr_enabled
            pipeline_options.do_table_structure = self._table_structure

            self._converter = DocumentConverter(
                format_options={
                    InputFormat.PDF: PdfFormatOption(pipeline_options=pipeline_options),
                    InputFormat.IMAGE: ImageFormatOption(pipeline_options=pipeline_options),
                }
            )
            logger.info("Docling DocumentConverter initialized")
        return self._converter

    def _convert(self, data: bytes, file_name: str) -> tuple[str, int]:
        from docling.datamodel.base_models import DocumentStream

        converter = self._get_converter()
        source = DocumentStream(name=file_name, stream=BytesIO(data))
        try:
            result = converter.convert(source)
        except Exception as exc:
            raise ExtractionError(
                f"Docling failed to read '{file_name}': {exc}"
            ) from exc

        document = result.document
        return document.export_to_text(), len(document.pages)

    async def extract(self, data: bytes, file_name: str) -> ExtractedText:
        suffix = PurePosixPath(file_name).suffix.lower()

        if suffix in PLAIN_TEXT_SUFFIXES:
            try:
                decoded = data.decode("utf-8-sig")
            except UnicodeDecodeError as exc:
                raise ExtractionError(f"'{file_name}' is not valid UTF-8 text") from exc
            pages = [page for page in decoded.split("\f") if page.strip()]
            result = _build_result(decoded.replace("\f", "\n\n"), len(pages), file_name)
        else:
            text, page_count = await asyncio.to_thread(self._convert, data, file_name)
            result = _build_result(text, page_count, file_name)

        logger.info(
            "Extracted '%s': %d chars, %d pages, language=%s, references=%s",
            file_name,
            len(result.text),
            result.page_count,
            result.language,
            result.referenced_documents,
        )
        return result
