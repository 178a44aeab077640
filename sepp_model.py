from __future__ import annotations

import argparse
import logging
import math
from dataclasses import dataclass, replace
from pathlib import Path


logger = logging.getLogger(__name__)

PROJECTION_YEARS = 5
MONTHS_PER_YEAR = 12
MARRIED_FILING_JOINTLY = "married_filing_jointly"


@dataclass(frozen=True)
class SeppAssumptions:
    interest_rate: float
    life_expectancy: float
    age: int
    table: str


# 72(t) amortization method: 4.86% rate assumption, 38.8-year single-life
# divisor for age 45.
DEFAULT_SEPP_ASSUMPTIONS = SeppAssumptions(
    interest_rate=0.0486,
    life_expectancy=38.8,
    age=45,
    table="IRS Single Life Expectancy Table (Treas. Reg. 1.401(a)(9)-9)",
)


@dataclass(frozen=True)
class TaxTable:
    tax_year: int
    filing_status: str
    ordinary_brackets: tuple[tuple[float, float], ...]
    capital_gains_brackets: tuple[tuple[float, float], ...]
    standard_deduction: float
    child_tax_credit: float


TAX_TABLES: dict[tuple[int, str], TaxTable] = {
    (2025, MARRIED_FILING_JOINTLY): TaxTable(
        tax_year=2025,
        filing_status=MARRIED_FILING_JOINTLY,
        ordinary_brackets=(
            (23200.0, 0.10),
            (94300.0, 0.12),
            (201050.0, 0.22),
            (383900.0, 0.24),
            (487450.0, 0.32),
            (731200.0, 0.35),
            (float("inf"), 0.37),
        ),
        capital_gains_brackets=(
            (94050.0, 0.00),
            (583750.0, 0.15),
            (float("inf"), 0.20),
        ),
        standard_deduction=29200.0,
        # 4 dependents at $2,000 each
        child_tax_credit=8000.0,
    ),
}

DEFAULT_TAX_TABLE = TAX_TABLES[(2025, MARRIED_FILING_JOINTLY)]

PLANNING_NOTES: list[str] = [
    "SEPP calculated using Single Life Amortization method for age 45 (38.8 year life expectancy)",
    "MAGI excludes HELOC proceeds (borrowed funds, not taxable income)",
    "Roth basis withdrawals are tax-free and included in total income but may affect MAGI for ACA subsidies",
    "SEPP payments remain constant throughout the 5-year period",
    "Annual growth rate applies to Brokerage distributions only (Roth basis remains constant)",
    "Monthly income is calculated as Total Annual Income / 12",
    "Tax calculations assume MFJ status, 2025 brackets, $29,200 standard deduction, and $8,000 child tax credit (4 dependents)",
    "Brokerage income treated as LTCG (0% rate up to $94,050 for MFJ), SEPP as ordinary income",
    "Want to maximize ACA subsidies? Favor HELOC draws.",
    "Want to harvest LTCGs or qualify for tax-free capital gains? Favor brokerage.",
    "Need to optimize for lender income? Blend both to hit target MAGI.",
]


@dataclass
class ScenarioInputs:
    brokerage_income: float
    roth_basis: float
    sepp_balance: float
    heloc_amount: float
    heloc_rate: float
    annual_growth: float


DEFAULT_SCENARIO = ScenarioInputs(
    brokerage_income=65000.0,
    roth_basis=20000.0,
    sepp_balance=550000.0,
    heloc_amount=70000.0,
    heloc_rate=7.5,
    annual_growth=2.0,
)


@dataclass(frozen=True)
class TaxResult:
    taxable_income: float
    total_tax: float
    ordinary_tax: float = 0.0
    capital_gains_tax: float = 0.0


@dataclass
class YearProjection:
    year: int
    brokerage: float
    roth: float
    sepp: float
    heloc: float
    monthly_income: float
    total_income: float
    magi: float
    taxable_income: float
    tax_liability: float

    def rounded(self) -> YearProjection:
        return replace(
            self,
            brokerage=round_currency(self.brokerage),
            roth=round_currency(self.roth),
            sepp=round_currency(self.sepp),
            heloc=round_currency(self.heloc),
            monthly_income=round_currency(self.monthly_income),
            total_income=round_currency(self.total_income),
            magi=round_currency(self.magi),
            taxable_income=round_currency(self.taxable_income),
            tax_liability=round_currency(self.tax_liability),
        )


@dataclass
class ScenarioProjection:
    rows: list[YearProjection]
    sepp_annual_payment: float
    heloc_annual_interest: float


def get_tax_table(tax_year: int, filing_status: str = MARRIED_FILING_JOINTLY) -> TaxTable:
    try:
        return TAX_TABLES[(tax_year, filing_status)]
    except KeyError:
        supported = ", ".join(f"{year}/{status}" for year, status in sorted(TAX_TABLES))
        raise ValueError(
            f"No tax table for {tax_year}/{filing_status}. Supported: {supported}"
        ) from None


def sepp_payment(balance: float, assumptions: SeppAssumptions = DEFAULT_SEPP_ASSUMPTIONS) -> float:
    """Level annual withdrawal under the 72(t) amortization method.

    PMT = P * r(1+r)^n / ((1+r)^n - 1), with r the assumed interest rate and
    n the life-expectancy divisor.
    """
    r = assumptions.interest_rate
    n = assumptions.life_expectancy
    if r == 0:
        return balance / n
    try:
        growth = (1 + r) ** n
    except OverflowError:
        # r(1+r)^n / ((1+r)^n - 1) tends to r as (1+r)^n grows without bound
        return balance * r
    return balance * (r * growth) / (growth - 1)


def compound(amount: float, rate: float, periods: int) -> float:
    try:
        return amount * ((1 + rate) ** periods)
    except OverflowError:
        if amount == 0:
            return 0.0
        negative = (amount < 0) != (1 + rate < 0 and periods % 2 == 1)
        return -math.inf if negative else math.inf


def heloc_annual_interest(principal: float, rate_percent: float) -> float:
    # interest-only payments
    return principal * rate_percent / 100.0


def progressive_tax(amount: float, brackets: tuple[tuple[float, float], ...]) -> float:
    tax_value = 0.0
    lower = 0.0
    for upper, rate in brackets:
        if amount <= lower:
            break
        taxable_at_rate = min(amount, upper) - lower
        tax_value += taxable_at_rate * rate
        lower = upper
    return tax_value


def estimate_tax(ordinary_income: float, capital_gains: float, table: TaxTable = DEFAULT_TAX_TABLE) -> TaxResult:
    """Approximate federal tax for one year of SEPP (ordinary) plus brokerage (LTCG) income.

    Gains stack on top of taxable ordinary income: whatever headroom is left
    under the first capital-gains threshold is taxed at 0%, the next band at
    the middle rate, and any excess at the top rate.
    """
    taxable_ordinary = max(0.0, ordinary_income - table.standard_deduction)
    ordinary_tax = progressive_tax(taxable_ordinary, table.ordinary_brackets)

    gains = max(0.0, capital_gains)
    capital_gains_tax = 0.0
    remaining = gains
    lower = 0.0
    for index, (upper, rate) in enumerate(table.capital_gains_brackets):
        if remaining <= 0:
            break
        if index == 0:
            band = max(0.0, upper - taxable_ordinary)
        else:
            band = upper - lower
        in_band = min(remaining, band)
        capital_gains_tax += in_band * rate
        remaining -= in_band
        lower = upper

    total_tax = max(0.0, ordinary_tax + capital_gains_tax - table.child_tax_credit)
    return TaxResult(
        taxable_income=taxable_ordinary + gains,
        total_tax=total_tax,
        ordinary_tax=ordinary_tax,
        capital_gains_tax=capital_gains_tax,
    )


def build_projection(
    inputs: ScenarioInputs,
    sepp_assumptions: SeppAssumptions = DEFAULT_SEPP_ASSUMPTIONS,
    tax_table: TaxTable = DEFAULT_TAX_TABLE,
    years: int = PROJECTION_YEARS,
) -> list[YearProjection]:
    growth = inputs.annual_growth / 100.0
    sepp = sepp_payment(inputs.sepp_balance, sepp_assumptions)

    rows: list[YearProjection] = []
    for year in range(1, years + 1):
        brokerage = compound(inputs.brokerage_income, growth, year - 1)
        roth = inputs.roth_basis
        heloc = inputs.heloc_amount

        total_income = brokerage + roth + sepp + heloc
        tax = estimate_tax(sepp, brokerage, tax_table)

        rows.append(
            YearProjection(
                year=year,
                brokerage=brokerage,
                roth=roth,
                sepp=sepp,
                heloc=heloc,
                monthly_income=total_income / MONTHS_PER_YEAR,
                total_income=total_income,
                magi=brokerage + roth + sepp,
                taxable_income=tax.taxable_income,
                tax_liability=tax.total_tax,
            )
        )
    return rows


def project_scenario(
    inputs: ScenarioInputs,
    sepp_assumptions: SeppAssumptions = DEFAULT_SEPP_ASSUMPTIONS,
    tax_table: TaxTable = DEFAULT_TAX_TABLE,
) -> ScenarioProjection:
    return ScenarioProjection(
        rows=build_projection(inputs, sepp_assumptions, tax_table),
        sepp_annual_payment=sepp_payment(inputs.sepp_balance, sepp_assumptions),
        heloc_annual_interest=heloc_annual_interest(inputs.heloc_amount, inputs.heloc_rate),
    )


def round_currency(value: float) -> float:
    """Round half up to a whole currency unit; inf and nan pass through unchanged."""
    if not math.isfinite(value):
        return value
    whole = math.floor(value)
    return whole + 1 if value - whole >= 0.5 else whole


def format_currency(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "-$∞" if value < 0 else "$∞"
    amount = round_currency(value)
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,}"


def assumptions_reference(
    sepp_assumptions: SeppAssumptions = DEFAULT_SEPP_ASSUMPTIONS,
    tax_table: TaxTable = DEFAULT_TAX_TABLE,
) -> dict[str, object]:
    def serialize(brackets: tuple[tuple[float, float], ...]) -> list[dict[str, float | None]]:
        rows: list[dict[str, float | None]] = []
        for upper, rate in brackets:
            rows.append(
                {
                    "upTo": None if upper == float("inf") else upper,
                    "rate": rate,
                }
            )
        return rows

    return {
        "sepp": {
            "interestRate": sepp_assumptions.interest_rate,
            "lifeExpectancy": sepp_assumptions.life_expectancy,
            "age": sepp_assumptions.age,
            "table": sepp_assumptions.table,
        },
        "tax": {
            "taxYear": tax_table.tax_year,
            "filingStatus": tax_table.filing_status,
            "standardDeduction": tax_table.standard_deduction,
            "childTaxCredit": tax_table.child_tax_credit,
            "ordinaryBrackets": serialize(tax_table.ordinary_brackets),
            "capitalGainsBrackets": serialize(tax_table.capital_gains_brackets),
        },
        "notes": list(PLANNING_NOTES),
    }


PROJECTION_COLUMNS: list[tuple[str, str]] = [
    ("Year", "year"),
    ("Brokerage", "brokerage"),
    ("Roth", "roth"),
    ("SEPP", "sepp"),
    ("HELOC", "heloc"),
    ("Monthly", "monthly_income"),
    ("Total", "total_income"),
    ("MAGI", "magi"),
    ("Taxable", "taxable_income"),
    ("Tax", "tax_liability"),
]


def projection_table(projection: ScenarioProjection) -> str:
    cells: list[list[str]] = [[header for header, _ in PROJECTION_COLUMNS]]
    for row in projection.rows:
        line: list[str] = []
        for _, field in PROJECTION_COLUMNS:
            value = getattr(row, field)
            line.append(str(value) if field == "year" else format_currency(value))
        cells.append(line)

    widths = [max(len(line[i]) for line in cells) for i in range(len(PROJECTION_COLUMNS))]
    rendered = ["  ".join(cell.rjust(width) for cell, width in zip(line, widths)) for line in cells]
    rendered.insert(1, "  ".join("-" * width for width in widths))
    return "\n".join(rendered)


def plot_projection(projection: ScenarioProjection, output_path: Path) -> None:
    import plotly.graph_objects as go

    years = [row.year for row in projection.rows]
    sources = [
        ("Brokerage (LTCG)", [row.brokerage for row in projection.rows], "#2563eb"),
        ("Roth Basis", [row.roth for row in projection.rows], "#16a34a"),
        ("SEPP", [row.sepp for row in projection.rows], "#7c3aed"),
        ("HELOC Draw", [row.heloc for row in projection.rows], "#f59e0b"),
    ]

    fig = go.Figure()
    for name, values, color in sources:
        fig.add_trace(
            go.Bar(
                x=years,
                y=values,
                name=name,
                marker={"color": color},
            )
        )
    fig.add_trace(
        go.Scatter(
            x=years,
            y=[row.magi for row in projection.rows],
            mode="lines+markers",
            name="MAGI",
            line={"color": "#111827", "width": 3, "dash": "dash"},
        )
    )
    fig.add_trace(
        go.Scatter(
            x=years,
            y=[row.tax_liability for row in projection.rows],
            mode="lines+markers",
            name="Tax Liability",
            line={"color": "#dc2626", "width": 3},
        )
    )

    fig.update_layout(
        title=(
            f"5-Year Income Projection (Annual SEPP {format_currency(projection.sepp_annual_payment)}, "
            f"HELOC Interest {format_currency(projection.heloc_annual_interest)})"
        ),
        barmode="stack",
        margin={"l": 70, "r": 40, "t": 60, "b": 120},
        xaxis={"title": "Year", "dtick": 1},
        yaxis={"title": "Annual Amount (USD)", "tickprefix": "$", "separatethousands": True},
        legend={"orientation": "h", "x": 0.5, "xanchor": "center", "y": -0.2, "yanchor": "top"},
        template="plotly_white",
    )

    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig.write_html(str(output_path), include_plotlyjs="cdn")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Five-year early-retirement income projection with SEPP and HELOC draws.")
    parser.add_argument("--brokerage", type=float, default=DEFAULT_SCENARIO.brokerage_income, help="Year-1 brokerage distribution, taxed as LTCG (USD)")
    parser.add_argument("--roth-basis", type=float, default=DEFAULT_SCENARIO.roth_basis, help="Annual Roth basis withdrawal (USD)")
    parser.add_argument("--sepp-balance", type=float, default=DEFAULT_SCENARIO.sepp_balance, help="IRA balance used for the SEPP calculation (USD)")
    parser.add_argument("--heloc", type=float, default=DEFAULT_SCENARIO.heloc_amount, help="Annual HELOC draw (USD)")
    parser.add_argument("--heloc-rate", type=float, default=DEFAULT_SCENARIO.heloc_rate, help="HELOC interest rate percentage")
    parser.add_argument("--growth", type=float, default=DEFAULT_SCENARIO.annual_growth, help="Annual growth percentage applied to brokerage distributions")
    parser.add_argument("--tax-year", type=int, default=DEFAULT_TAX_TABLE.tax_year, help="Tax table year")
    parser.add_argument("--output", type=Path, default=Path("outputs/income_projection.html"), help="Output HTML path")
    parser.add_argument("--no-plot", action="store_true", help="Skip writing the HTML chart")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    inputs = ScenarioInputs(
        brokerage_income=args.brokerage,
        roth_basis=args.roth_basis,
        sepp_balance=args.sepp_balance,
        heloc_amount=args.heloc,
        heloc_rate=args.heloc_rate,
        annual_growth=args.growth,
    )
    table = get_tax_table(args.tax_year)
    logger.debug("Projecting %s with %s/%s tax table", inputs, table.tax_year, table.filing_status)

    projection = project_scenario(inputs, tax_table=table)

    print(projection_table(projection))
    print()
    print(f"Annual SEPP: {format_currency(projection.sepp_annual_payment)} "
          f"(using {DEFAULT_SEPP_ASSUMPTIONS.interest_rate * 100:.2f}% rate assumption)")
    print(f"HELOC annual interest: {format_currency(projection.heloc_annual_interest)}")
    if not args.no_plot:
        plot_projection(projection, args.output)
        print(f"Saved plot: {args.output}")


if __name__ == "__main__":
    main()
