from __future__ import annotations

import logging
import math
import re
from dataclasses import asdict
from pathlib import Path

from flask import Flask, jsonify, request, send_file

from sepp_model import (
    DEFAULT_SCENARIO,
    DEFAULT_TAX_TABLE,
    MARRIED_FILING_JOINTLY,
    ScenarioInputs,
    assumptions_reference,
    format_currency,
    get_tax_table,
    project_scenario,
    round_currency,
)


logger = logging.getLogger(__name__)

app = Flask(__name__)

_NON_NUMERIC = re.compile(r"[^0-9.\-]")


def parse_currency(value: object, previous: float) -> float:
    if value is None:
        return previous
    if isinstance(value, bool):
        logger.debug("Discarding boolean input %r, keeping %s", value, previous)
        return previous
    if isinstance(value, (int, float)):
        text = value
    else:
        text = _NON_NUMERIC.sub("", str(value))
        if text == "":
            return previous
    try:
        number = float(text)
    except (ValueError, OverflowError):
        logger.debug("Discarding non-numeric input %r, keeping %s", value, previous)
        return previous
    if not math.isfinite(number):
        logger.debug("Discarding out-of-range input %r, keeping %s", value, previous)
        return previous
    return number


_PAYLOAD_FIELDS: dict[str, str] = {
    "brokerageIncome": "brokerage_income",
    "rothBasis": "roth_basis",
    "seppBalance": "sepp_balance",
    "helocAmount": "heloc_amount",
    "helocRate": "heloc_rate",
    "annualGrowth": "annual_growth",
}


def _parse_payload(payload: dict) -> tuple[ScenarioInputs, dict[str, int | str]]:
    # "previous" is the last set of inputs the client accepted.
    previous_raw = payload.get("previous")
    previous = previous_raw if isinstance(previous_raw, dict) else {}

    values: dict[str, float] = {}
    for key, field in _PAYLOAD_FIELDS.items():
        fallback = parse_currency(previous.get(key), getattr(DEFAULT_SCENARIO, field))
        values[field] = parse_currency(payload.get(key), fallback)
    inputs = ScenarioInputs(**values)

    tax_year_raw = payload.get("taxYear")
    tax_year = DEFAULT_TAX_TABLE.tax_year if tax_year_raw in (None, "") else int(parse_currency(tax_year_raw, DEFAULT_TAX_TABLE.tax_year))
    filing_status = str(payload.get("filingStatus") or MARRIED_FILING_JOINTLY)

    metadata: dict[str, int | str] = {
        "taxYear": tax_year,
        "filingStatus": filing_status,
    }
    return inputs, metadata


def _json_number(value: float) -> float | None:
    return value if math.isfinite(value) else None


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


@app.get("/")
def home():
    return send_file(Path(__file__).with_name("income_planner.html"))


@app.get("/api/assumptions")
def assumptions():
    return jsonify(assumptions_reference())


@app.post("/api/projection")
def projection():
    payload = request.get_json(silent=True) or {}

    try:
        inputs, metadata = _parse_payload(payload)
        tax_table = get_tax_table(int(metadata["taxYear"]), str(metadata["filingStatus"]))
        logger.debug("Projection request %s (%s/%s)", inputs, tax_table.tax_year, tax_table.filing_status)

        result = project_scenario(inputs, tax_table=tax_table)
        rows = [
            {_camel(key): _json_number(value) for key, value in asdict(row.rounded()).items()}
            for row in result.rows
        ]
        formatted_rows = [
            {
                _camel(key): value if key == "year" else format_currency(value)
                for key, value in asdict(row).items()
            }
            for row in result.rows
        ]

        return jsonify(
            {
                "inputs": {_camel(key): value for key, value in asdict(inputs).items()},
                "seppAnnualPayment": _json_number(round_currency(result.sepp_annual_payment)),
                "helocAnnualInterest": _json_number(round_currency(result.heloc_annual_interest)),
                "seppAnnualPaymentFormatted": format_currency(result.sepp_annual_payment),
                "helocAnnualInterestFormatted": format_currency(result.heloc_annual_interest),
                "rows": rows,
                "formattedRows": formatted_rows,
                "assumptions": assumptions_reference(tax_table=tax_table),
            }
        )
    except (ValueError, OverflowError) as error:
        return jsonify({"error": str(error)}), 400


if __name__ == "__main__":
    app.run(debug=True)
