"""Billing statement text parser.

Pulls the supplier, statement number, billing period and the three
billing amounts out of the text of a subcontractor billing statement
(计价单). Each field has its own pattern; a pattern that does not match
leaves its field unset and never affects the others.

Amounts are returned exactly as printed (``"1,234,567.89"``), so callers
decide when to parse them.
"""

import re
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

from core.models.canonical import ExtractedFacts
from core.observability.logging import get_logger, with_correlation
from extraction.pdf_text import extract_text

logger = get_logger(__name__)


NUMBER = r"([0-9,]+\.?\d*)"

# Stops at the statement number label or the end of the line; a blank
# capture means the supplier is absent.
SUPPLIER_RE = re.compile(r"分包方[：:][ \t]*((?:(?!计价编号)[^\n])*)")
STATEMENT_NUMBER_RE = re.compile(r"计价编号[：:]\s*(\S+)")
PERIOD_RE = re.compile(r"(\d{4})\s*年\s*(\d{1,2})\s*月")
PERIOD_AMOUNT_RE = re.compile(r"本期计价金额\s*" + NUMBER + r"\s*元")
YEAR_TO_DATE_RE = re.compile(r"本年开累计价金额\s*" + NUMBER + r"\s*元")

# Ordered: a standalone cumulative figure wins over the year-cumulative
# phrasing, which the broad rule would otherwise also match.
CUMULATIVE_RULES: List[re.Pattern] = [
    re.compile(r"(?<!本年)开累计价金额\s*" + NUMBER + r"\s*元"),
    re.compile(r"开累计价金额\s*" + NUMBER + r"\s*元"),
]


def _first_group(pattern: re.Pattern, text: str) -> Optional[str]:
    match = pattern.search(text)
    if match is None:
        return None
    return match.group(1)


def _extract_supplier(text: str) -> Optional[str]:
    raw = _first_group(SUPPLIER_RE, text)
    if raw is None:
        return None
    supplier = raw.strip()
    return supplier or None


def _extract_statement_number(text: str) -> Optional[str]:
    return _first_group(STATEMENT_NUMBER_RE, text)


def _extract_period(text: str) -> Optional[str]:
    match = PERIOD_RE.search(text)
    if match is None:
        return None
    month = int(match.group(2))
    if not 1 <= month <= 12:
        return None
    return f"{match.group(1)}-{month:02d}"


def _extract_period_amount(text: str) -> Optional[str]:
    return _first_group(PERIOD_AMOUNT_RE, text)


def _extract_year_to_date(text: str) -> Optional[str]:
    return _first_group(YEAR_TO_DATE_RE, text)


def _extract_cumulative(text: str) -> Optional[str]:
    for pattern in CUMULATIVE_RULES:
        value = _first_group(pattern, text)
        if value is not None:
            return value
    return None


# Field name -> rule; year-to-date runs before the cumulative rules.
FIELD_RULES: List[Tuple[str, Callable[[str], Optional[str]]]] = [
    ("supplier", _extract_supplier),
    ("contract_number", _extract_statement_number),
    ("statement_period", _extract_period),
    ("period_amount", _extract_period_amount),
    ("year_to_date_amount", _extract_year_to_date),
    ("cumulative_amount", _extract_cumulative),
]


def extract_facts(text: str) -> ExtractedFacts:
    """Extract billing facts from statement text.

    Never raises; text with no recognisable content yields empty facts.
    """
    if not isinstance(text, str) or not text:
        return ExtractedFacts()

    values = {}
    for field_name, rule in FIELD_RULES:
        value = rule(text)
        if value is not None:
            values[field_name] = value
    return ExtractedFacts(**values)


def extract_facts_from_pdf(pdf_path: Union[str, Path]) -> ExtractedFacts:
    """Read a statement PDF and extract its billing facts."""
    pdf_path = Path(pdf_path)
    with with_correlation(source_document=pdf_path.name, stage="extract"):
        text = extract_text(pdf_path)
        facts = extract_facts(text)
        found = facts.found_fields()
        if found:
            logger.info(
                "Extracted statement facts",
                extra_fields={"fields": found, "supplier": facts.supplier},
            )
        else:
            logger.warning("No billing facts recognised in document")
    return facts
