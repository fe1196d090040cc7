"""
PDF text extraction with PyMuPDF
Produces positioned, font-sized TextFragments for the structurer

CONSTRAINTS:
- Deterministic: Same file → same fragments
- Isolated: No LLM, no embeddings, no DB writes
- One fragment per text line; font size is the largest span size on the line
"""

import logging
from pathlib import Path
from typing import List, Optional, Union

import fitz  # PyMuPDF

from generation.errors import ExtractionError
from .schemas import TextFragment

log = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {".pdf"}


def _line_to_fragment(line: dict, page_number: int) -> Optional[TextFragment]:
    spans = [s for s in line.get("spans", []) if s.get("text", "").strip()]
    if not spans:
        return None
    text = " ".join(" ".join(s["text"].split()) for s in spans).strip()
    if not text:
        return None
    x0, y0, x1, _ = line.get("bbox", spans[0].get("bbox", (0.0, 0.0, 0.0, 0.0)))
    font_size = max(float(s.get("size", 0.0)) for s in spans)
    return TextFragment(
        text=text,
        page=page_number,
        x=round(float(x0), 2),
        y=round(float(y0), 2),
        width=round(max(0.0, float(x1) - float(x0)), 2),
        font_size=round(font_size, 2),
    )


def extract_fragments_from_document(document: "fitz.Document") -> List[TextFragment]:
    """Walk pages → blocks → lines of an open document, in reading order."""
    fragments: List[TextFragment] = []
    for page_index in range(document.page_count):
        page = document.load_page(page_index)
        page_dict = page.get_text("dict", sort=True)
        for block in page_dict.get("blocks", []):
            if block.get("type") != 0:  # images
                continue
            for line in block.get("lines", []):
                fragment = _line_to_fragment(line, page_index + 1)
                if fragment is not None:
                    fragments.append(fragment)
    return fragments


def extract_fragments(source: Union[str, Path, bytes]) -> List[TextFragment]:
    """
    Extract ordered TextFragments from a PDF path or raw PDF bytes.

    Raises:
        ExtractionError: unsupported file type, unreadable/corrupt PDF, or no text at all
            (e.g. a scanned document without a text layer)
    """
    if isinstance(source, bytes):
        label = "<bytes>"
    else:
        path = Path(source)
        label = path.name
        if path.suffix.lower() not in SUPPORTED_EXTENSIONS:
            raise ExtractionError(f"Unsupported file type: {path.suffix or 'none'} (only PDF is supported)")
        if not path.exists():
            raise ExtractionError(f"Source file not found: {path}")

    log.info(f"[EXTRACT] start file={label}")
    try:
        if isinstance(source, bytes):
            document = fitz.open(stream=source, filetype="pdf")
        else:
            document = fitz.open(str(source))
    except Exception as e:
        raise ExtractionError(f"Could not open {label}: {e}") from e

    try:
        if document.page_count == 0:
            raise ExtractionError(f"{label} has no pages")
        fragments = extract_fragments_from_document(document)
    except ExtractionError:
        raise
    except Exception as e:
        raise ExtractionError(f"Failed to read text from {label}: {e}") from e
    finally:
        document.close()

    if not fragments:
        raise ExtractionError(f"No extractable text in {label}; re-upload a text-based PDF")

    log.info(f"[EXTRACT] done file={label} fragments={len(fragments)}")
    return fragments
