"""Build small, valid PDF files with one text line per entry."""
from __future__ import annotations

from typing import Dict, List, Sequence


def _escape(text: str) -> str:
    return text.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")


def make_pdf(pages: Sequence[Sequence[str]]) -> bytes:
    """Return PDF bytes; each page lists its lines top to bottom (Helvetica 12pt)."""

    count = len(pages)
    page_ids = [4 + 2 * index for index in range(count)]
    content_ids = [5 + 2 * index for index in range(count)]
    kids = " ".join(f"{page_id} 0 R" for page_id in page_ids)

    objects: Dict[int, bytes] = {
        1: b"<< /Type /Catalog /Pages 2 0 R >>",
        2: f"<< /Type /Pages /Kids [{kids}] /Count {count} >>".encode("ascii"),
        3: b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    }
    for index, lines in enumerate(pages):
        operations: List[str] = ["BT", "/F1 12 Tf", "16 TL", "72 720 Td"]
        for line_number, line in enumerate(lines):
            if line_number:
                operations.append("T*")
            operations.append(f"({_escape(line)}) Tj")
        operations.append("ET")
        stream = "\n".join(operations).encode("latin-1")
        objects[content_ids[index]] = (
            f"<< /Length {len(stream)} >>\nstream\n".encode("ascii") + stream + b"\nendstream"
        )
        objects[page_ids[index]] = (
            "<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
            f"/Resources << /Font << /F1 3 0 R >> >> /Contents {content_ids[index]} 0 R >>"
        ).encode("ascii")

    output = bytearray(b"%PDF-1.4\n")
    offsets: Dict[int, int] = {}
    for number in sorted(objects):
        offsets[number] = len(output)
        output += f"{number} 0 obj\n".encode("ascii") + objects[number] + b"\nendobj\n"

    xref_offset = len(output)
    size = max(objects) + 1
    output += f"xref\n0 {size}\n".encode("ascii")
    output += b"0000000000 65535 f \n"
    for number in range(1, size):
        output += f"{offsets[number]:010d} 00000 n \n".encode("ascii")
    output += f"trailer\n<< /Size {size} /Root 1 0 R >>\nstartxref\n{xref_offset}\n%%EOF\n".encode("ascii")
    return bytes(output)
