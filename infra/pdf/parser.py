import os
import re
import pdfplumber

SUPPORTED_EXTENSIONS = (".pdf", ".txt", ".md")


def parse_pdf_text(path: str, max_pages: int | None = None) -> str:
    text_parts = []
    with pdfplumber.open(path) as pdf:
        pages = pdf.pages if max_pages is None else pdf.pages[:max_pages]
        for page in pages:
            text_parts.append(page.extract_text() or "")
    return re.sub(r"\s+\n", "\n", "\n".join(text_parts))


def read_job_description(path: str) -> str:
    """Load a JD from a PDF or plain-text file."""
    ext = os.path.splitext(path)[1].lower()
    if ext not in SUPPORTED_EXTENSIONS:
        raise ValueError(f"Unsupported job description file: {path}")
    if ext == ".pdf":
        return parse_pdf_text(path)
    with open(path, encoding="utf-8") as fh:
        return fh.read()
