from __future__ import annotations

import hashlib
from io import BytesIO
from pathlib import Path, PurePosixPath
from typing import Any

from flask import current_app

from pms.core.errors import NotFoundError
from pms.core.utils import money

VERIFY_PATH = "/public/verify"


def _pdf_escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")


def _simple_pdf(lines: list[str]) -> bytes:
    text_ops = ["BT", "/F1 12 Tf", "50 800 Td"]
    for line in lines:
        text_ops.append(f"({_pdf_escape(line)}) Tj")
        text_ops.append("0 -16 Td")
    text_ops.append("ET")
    stream = "\n".join(text_ops).encode("latin-1", errors="ignore")

    objects: list[bytes] = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 595 842] /Contents 5 0 R /Resources << /Font << /F1 4 0 R >> >> >>",
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
        f"<< /Length {len(stream)} >>\nstream\n".encode("ascii") + stream + b"\nendstream",
    ]

    pdf = BytesIO()
    pdf.write(b"%PDF-1.4\n")
    offsets = [0]
    for idx, obj in enumerate(objects, start=1):
        offsets.append(pdf.tell())
        pdf.write(f"{idx} 0 obj\n".encode("ascii"))
        pdf.write(obj)
        pdf.write(b"\nendobj\n")

    xref_start = pdf.tell()
    pdf.write(f"xref\n0 {len(objects) + 1}\n".encode("ascii"))
    pdf.write(b"0000000000 65535 f \n")
    for off in offsets[1:]:
        pdf.write(f"{off:010d} 00000 n \n".encode("ascii"))
    pdf.write(f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R >>\n".encode("ascii"))
    pdf.write(f"startxref\n{xref_start}\n%%EOF".encode("ascii"))
    return pdf.getvalue()


def _kind_lines(template_kind: str, snapshot: dict[str, Any]) -> list[str]:
    details = snapshot.get("details") or {}
    if template_kind in {"water", "sewerage"}:
        return [
            f"Connection category: {details.get('connection_category', '-')}",
            f"Connection fee: {money(snapshot.get('fee'))}",
        ]
    if template_kind == "transfer":
        return [
            f"Transfer type: {details.get('transfer_type', '-')}",
            f"Transferee: {snapshot.get('counterparty_name') or '-'}",
            f"Consideration: {money(details.get('consideration_amount'))}",
        ]
    if template_kind == "mortgage":
        return [
            f"Mortgagee: {details.get('mortgagee_name', '-')}",
            f"Mortgage amount: {money(details.get('mortgage_amount'))}",
        ]
    if template_kind == "registration":
        lines = [
            f"Deed type: {details.get('deed_type', '-')}",
            f"Transferee: {snapshot.get('counterparty_name') or '-'}",
            f"Consideration: {money(details.get('consideration_amount'))}",
        ]
        if details.get("valuation") is not None:
            lines.extend(
                [
                    f"Circle-rate valuation: {money(details['valuation'])}",
                    f"Stamp duty: {money(details.get('stamp_duty'))}",
                    f"Registration fee: {money(details.get('registration_fee'))}",
                    f"Total charges: {money(details.get('total_charges'))}",
                ]
            )
        return lines
    return []


def render_document(template_kind: str, snapshot: dict[str, Any]) -> bytes:
    lines = [
        snapshot["title"],
        f"Certificate No: {snapshot['certificate_number']}",
        f"Case No: {snapshot['case_number']}",
        "",
        f"Parcel No: {snapshot.get('parcel_no') or '-'}",
        f"Address: {snapshot.get('address') or '-'}",
        f"Area: {snapshot.get('area') or '-'} sq. units",
        f"Applicant: {snapshot.get('party_name') or '-'}",
    ]
    lines.extend(_kind_lines(template_kind, snapshot))

    checklist = snapshot.get("checklist") or {}
    if checklist:
        lines.append("Checklist:")
        for key, value in checklist.items():
            lines.append(f"  [{'x' if value else ' '}] {key}")

    inspection = snapshot.get("inspection")
    if inspection:
        lines.append(f"Inspection date: {inspection.get('inspected_at') or '-'}")
        if inspection.get("remarks"):
            lines.append(f"Remarks: {inspection['remarks']}")

    lines.extend(
        [
            "",
            f"Issued on: {snapshot['issued_on']}",
            f"Issued by: {snapshot.get('issued_by_name') or '-'}",
            "This document can be verified online using its SHA-256 fingerprint.",
        ]
    )
    return _simple_pdf(lines)


def sha256_hex(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


def verification_url(base_url: str, digest: str) -> str:
    return f"{(base_url or '').rstrip('/')}{VERIFY_PATH}/{digest}"


def document_path(slug: str, certificate_number: str) -> str:
    """Storage path of an issued document, relative to the instance folder."""
    base = PurePosixPath(current_app.config.get("DOCUMENT_STORAGE_DIR", "storage/documents"))
    return (base / slug / f"{slug}-{certificate_number}.pdf").as_posix()


def store_document(relative_path: str, content: bytes) -> Path:
    absolute = Path(current_app.instance_path) / relative_path
    absolute.parent.mkdir(parents=True, exist_ok=True)
    absolute.write_bytes(content)
    return absolute


def load_document(relative_path: str) -> tuple[bytes, str]:
    absolute = Path(current_app.instance_path) / relative_path
    if not absolute.exists():
        raise NotFoundError("Document file not found")
    return absolute.read_bytes(), absolute.name
