"""
portal_empleado.payroll
~~~~~~~~~~~~~~~~~~~~~~~
Turns a cached payroll payload (the JSON the payroll system exports per
employee and period) into receipt records.

One payload may list several positions ("Cargos") held by the employee in
the same period; each position becomes its own ``ReceiptDocument``. A
payload with zero or one position yields a single record whose id is the
period id.

Payload fields read (all optional)::

    Cuil, Nombre, Codigo, TotalLiquido, TotalItems, Liquido, Importe,
    TotalHaberes, TotalItemsDescuentos, FechaEmision, Moneda, Estado,
    Cargos[].{Liquido, TotalItemsHaber, TotalItemsDescuento, HorasCargo,
              LiquidoPalabras, FechaIngreso, Establecimiento.Nombre,
              FormaPago.Descripcion, Cargo.Descripcion, Antiguedad.Tipo,
              Items[]}
"""

from __future__ import annotations

import json
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from .exceptions import PayrollParseError
from .models import PayrollConcept, ReceiptDocument, ReceiptPeriod, ReceiptSummary
from .utils import normalize_cuil, parse_date, parse_decimal

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

PDF_URL_TEMPLATE = "/api/recibo-sueldo/{id}/pdf"


# ---------------------------------------------------------------------------
# JSON access helpers
# ---------------------------------------------------------------------------

def load_payload(payload_json: str) -> Dict[str, Any]:
    """
    Parse a payload into a dict. Floats are kept as ``Decimal`` so amounts
    such as ``182450.75`` survive exactly.

    Raises:
        PayrollParseError: blank text, invalid JSON or a non-object root.
    """
    if not payload_json or not payload_json.strip():
        raise PayrollParseError("Payroll payload is empty")
    try:
        root = json.loads(payload_json, parse_float=Decimal)
    except json.JSONDecodeError as exc:
        raise PayrollParseError("Payroll payload is not valid JSON", cause=exc) from exc
    if not isinstance(root, dict):
        raise PayrollParseError(f"Payroll payload root is a {type(root).__name__}, expected an object")
    return root


def _get_str(obj: Any, name: str) -> Optional[str]:
    if not isinstance(obj, dict):
        return None
    value = obj.get(name)
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


def _get_nested_str(obj: Any, outer: str, inner: str) -> Optional[str]:
    if not isinstance(obj, dict):
        return None
    return _get_str(obj.get(outer), inner)


def _get_decimal(obj: Any, name: str) -> Optional[Decimal]:
    if not isinstance(obj, dict):
        return None
    return parse_decimal(obj.get(name))


def _get_bool(obj: Any, name: str) -> Optional[bool]:
    if not isinstance(obj, dict):
        return None
    value = obj.get(name)
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    return None


def _first(*values):
    for v in values:
        if v is not None:
            return v
    return None


def _cargos(root: Dict[str, Any]) -> List[Dict[str, Any]]:
    cargos = root.get("Cargos")
    if not isinstance(cargos, list):
        return []
    return [c for c in cargos if isinstance(c, dict)]


# ---------------------------------------------------------------------------
# Concepts
# ---------------------------------------------------------------------------

def extract_concepts(cargo: Dict[str, Any], max_items: Optional[int] = None) -> List[PayrollConcept]:
    """Concept rows (haberes and descuentos) listed under ``cargo["Items"]``."""
    items = cargo.get("Items") if isinstance(cargo, dict) else None
    if not isinstance(items, list):
        return []
    if max_items is not None:
        items = items[:max_items]

    concepts: List[PayrollConcept] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        nested = item.get("Item") if isinstance(item.get("Item"), dict) else {}
        concepts.append(PayrollConcept(
            code=_first(_get_str(item, "CodigoItem"), _get_str(nested, "CodigoItem")) or "",
            description=_first(_get_str(item, "DescripcionItem"), _get_str(nested, "Descripcion")) or "Concepto",
            kind=_first(_get_str(item, "TipoItem"), _get_str(nested, "TipoItem")) or "",
            amount=_first(_get_decimal(item, "TotalMontoItem"), _get_decimal(item, "MontoItem"), Decimal(0)),
            is_deduction=bool(_first(_get_bool(item, "EsDescuento"), _get_bool(nested, "Descuento"), False)),
        ))
    return concepts


# ---------------------------------------------------------------------------
# Receipt records
# ---------------------------------------------------------------------------

def document_net_amount(root: Dict[str, Any]) -> Decimal:
    """Net pay of the whole document, trying the known total fields in order."""
    cargos = _cargos(root)
    first_cargo = cargos[0] if cargos else None
    return _first(
        _get_decimal(root, "TotalLiquido"),
        _get_decimal(root, "TotalItems"),
        _get_decimal(first_cargo, "Liquido"),
        _get_decimal(root, "Liquido"),
        _get_decimal(root, "Importe"),
        Decimal(0),
    )


def parse_receipts(
    payload_json: str,
    cuil: str,
    period: ReceiptPeriod,
    *,
    source_key: str = "",
    version: Optional[int] = None,
) -> List[ReceiptDocument]:
    """
    Build the receipt records held in one payload.

    A payload whose ``Cuil`` names a different identity yields no records.
    A payload without ``Cuil`` is attributed to the requested identity.

    Raises:
        PayrollParseError: the payload is not a JSON object.
    """
    root = load_payload(payload_json)
    requested = normalize_cuil(cuil)
    declared = normalize_cuil(_get_str(root, "Cuil"))
    if declared and declared != requested:
        logger.warning(
            "Payload %s belongs to another identity; skipping period %s", source_key, period.id,
        )
        return []

    name = _get_str(root, "Nombre")
    employee_code = _get_str(root, "Codigo")
    currency = _get_str(root, "Moneda") or "ARS"
    state = _get_str(root, "Estado") or "Emitido"
    issued_at = parse_date(root.get("FechaEmision")) or period.last_day

    cargos = _cargos(root)
    single = len(cargos) <= 1
    documents: List[ReceiptDocument] = []
    for index, cargo in enumerate(cargos or [{}], start=1):
        if single:
            receipt_id = period.id
            net = document_net_amount(root)
            earnings = _first(_get_decimal(cargo, "TotalItemsHaber"), _get_decimal(root, "TotalHaberes"))
            deductions = _first(
                _get_decimal(cargo, "TotalItemsDescuento"), _get_decimal(root, "TotalItemsDescuentos"),
            )
        else:
            receipt_id = f"{period.id}-c{index}"
            net = _get_decimal(cargo, "Liquido") or Decimal(0)
            earnings = _get_decimal(cargo, "TotalItemsHaber")
            deductions = _get_decimal(cargo, "TotalItemsDescuento")

        documents.append(ReceiptDocument(
            id=receipt_id,
            period=period,
            cuil=requested,
            net_amount=net,
            name=name,
            employee_code=employee_code,
            total_earnings=earnings,
            total_deductions=deductions,
            currency=currency,
            state=state,
            issued_at=issued_at,
            position=_get_nested_str(cargo, "Cargo", "Descripcion") or _get_str(cargo, "Cargo"),
            establishment=_get_nested_str(cargo, "Establecimiento", "Nombre"),
            payment_method=_get_nested_str(cargo, "FormaPago", "Descripcion"),
            hours=_get_decimal(cargo, "HorasCargo"),
            seniority=_get_nested_str(cargo, "Antiguedad", "Tipo"),
            hire_date=_get_str(cargo, "FechaIngreso"),
            amount_in_words=_get_str(cargo, "LiquidoPalabras"),
            concepts=extract_concepts(cargo),
            source_key=source_key,
            version=version,
        ))
    return documents


def build_summary(payload_json: str, year: int, month: int) -> Optional[ReceiptSummary]:
    """
    Compact summary of a cached payload, or ``None`` when it cannot be read.

    Missing fields fall back to the period: id ``YYYY-MM``, Spanish month
    name, issue date on the first of the month.
    """
    period = ReceiptPeriod(year, month)
    try:
        root = load_payload(payload_json)
    except PayrollParseError as exc:
        logger.warning("No summary for %s: %s", period.id, exc)
        return None

    receipt_id = _first(_get_str(root, "ID"), _get_str(root, "Id")) or period.id
    return ReceiptSummary(
        id=receipt_id,
        periodo=_get_str(root, "Periodo") or period.display,
        importe=document_net_amount(root),
        moneda=_get_str(root, "Moneda") or "ARS",
        estado=_get_str(root, "Estado") or "Emitido",
        fecha_emision=parse_date(root.get("FechaEmision")) or period.first_day,
        pdf_url=PDF_URL_TEMPLATE.format(id=quote(receipt_id, safe="")),
    )
