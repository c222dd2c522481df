#!/usr/bin/env python3
"""Filter: render a PDF job document for the printer.

Usage: pdftopng.py DOCUMENT

Writes printer-ready data to stdout and INFO:/ERROR: lines to stderr. The
output type comes from OUTPUT_TYPE (image/png or application/pdf) and the
resolution from IPP_PRINTER_RESOLUTION, falling back to IPP_RENDER_DPI.
"""
import os
import re
import sys
from pathlib import Path
from typing import Optional

import pymupdf as fitz  # PyMuPDF


def _log(prefix: str, message: str) -> None:
    sys.stderr.write(f"{prefix}: {message}\n")
    sys.stderr.flush()


def _resolution_dpi(value: Optional[str], default: int) -> int:
    # "300dpi", "300x600dpi" (first value wins), "118dpcm"
    if not value:
        return default
    match = re.match(r"^(\d+)(?:x\d+)?(dpi|dpcm)$", value.strip())
    if not match:
        return default
    dpi = int(match.group(1))
    if match.group(2) == "dpcm":
        dpi = round(dpi * 2.54)
    return dpi


def render_first_page_png(pdf_bytes: bytes, dpi: int) -> bytes:
    doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    try:
        _log("INFO", f"Rendering page 1 of {doc.page_count} at {dpi}dpi")
        page = doc.load_page(0)
        pix = page.get_pixmap(dpi=dpi, alpha=False)
        return pix.tobytes("png")
    finally:
        doc.close()


def normalize_pdf(pdf_bytes: bytes) -> bytes:
    doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    try:
        _log("INFO", f"Rewriting {doc.page_count} page(s) as PDF")
        return doc.tobytes(garbage=3, deflate=True)
    finally:
        doc.close()


def main(argv=None) -> int:
    argv = sys.argv if argv is None else argv
    if len(argv) < 2:
        _log("ERROR", "Usage: pdftopng.py DOCUMENT")
        return 1

    document = Path(argv[1])
    try:
        data = document.read_bytes()
    except OSError as e:
        _log("ERROR", f"Unable to read {document}: {e}")
        return 1

    if not data.startswith(b"%PDF"):
        _log("ERROR", f"Unsupported document payload (first bytes={data[:12]!r})")
        return 1

    output_type = os.getenv("OUTPUT_TYPE") or "image/png"
    try:
        if output_type == "image/png":
            dpi = _resolution_dpi(os.getenv("IPP_PRINTER_RESOLUTION"), int(os.getenv("IPP_RENDER_DPI") or "150"))
            out = render_first_page_png(data, dpi)
        elif output_type == "application/pdf":
            out = normalize_pdf(data)
        else:
            _log("ERROR", f"Unsupported output type {output_type}")
            return 1
    except (RuntimeError, ValueError) as e:
        # PyMuPDF reports damaged documents as RuntimeError subclasses.
        _log("ERROR", f"Render failed: {e}")
        return 1

    sys.stdout.buffer.write(out)
    sys.stdout.buffer.flush()
    _log("INFO", f"Wrote {len(out)} bytes of {output_type}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
