"""
Price calculator — final unit prices and best-price selection.

The final price of an offer is the pack price after discount and tax,
divided by the pack's net quantity in base units:

    final_price = pack_price × (1 − discount_pct) × (1 + tax_pct) / pack_net_qty

Within each ingredient, every offer whose final price equals the minimum is
flagged best; ties are all flagged.

Public API:
    calculate_final_price(pack_price, discount_pct, tax_pct, pack_net_qty) → float | None
    flag_best_prices(dataframe) → pd.DataFrame
    summarize_ingredient_prices(dataframe) → pd.DataFrame
"""

import logging

import numpy as np
import pandas as pd

from config.schema import PRICE_TIE_TOLERANCE

logger = logging.getLogger(__name__)

# Columns flag_best_prices() needs in its input.
PRICE_COLUMNS: list[str] = [
    "ingredient_id",
    "pack_price",
    "discount_pct",
    "tax_pct",
    "pack_net_qty",
]


# ═══════════════════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════════════════

def calculate_final_price(
    pack_price: float | None,
    discount_pct: float | None,
    tax_pct: float | None,
    pack_net_qty: float | None,
) -> float | None:
    """
    Discount- and tax-adjusted price per base unit.

    Args:
        pack_price: Price of the whole pack.
        discount_pct: Discount as a fraction (0.1 = 10 %); None → 0.
        tax_pct: Tax as a fraction (0.07 = 7 %); None → 0.
        pack_net_qty: Pack content in base units.

    Returns:
        Final price, or None when the price or quantity is missing or the
        quantity is not positive.
    """
    if pd.isna(pack_price) or pd.isna(pack_net_qty) or float(pack_net_qty) <= 0:
        return None

    discount = 0.0 if pd.isna(discount_pct) else float(discount_pct)
    tax = 0.0 if pd.isna(tax_pct) else float(tax_pct)

    return float(pack_price) * (1 - discount) * (1 + tax) / float(pack_net_qty)


def flag_best_prices(dataframe: pd.DataFrame) -> pd.DataFrame:
    """
    Add final_price and is_best columns.

    Args:
        dataframe: One row per offer with PRICE_COLUMNS.

    Returns:
        A copy with "final_price" (NaN when not computable) and "is_best"
        (True for every offer tying the ingredient's minimum).

    Raises:
        ValueError: A required column is missing.
    """
    _validate_required_columns(dataframe, PRICE_COLUMNS)

    result_df = dataframe.copy()
    if result_df.empty:
        result_df["final_price"] = pd.Series(dtype=float)
        result_df["is_best"] = pd.Series(dtype=bool)
        return result_df

    result_df["final_price"] = [
        np.nan if value is None else value
        for value in (
            calculate_final_price(row.pack_price, row.discount_pct, row.tax_pct, row.pack_net_qty)
            for row in result_df[PRICE_COLUMNS].itertuples(index=False)
        )
    ]

    group_min = result_df.groupby("ingredient_id")["final_price"].transform("min")
    result_df["is_best"] = (
        result_df["final_price"].notna()
        & np.isclose(
            result_df["final_price"].fillna(np.inf),
            group_min.fillna(-np.inf),
            rtol=0.0,
            atol=PRICE_TIE_TOLERANCE,
        )
    )

    logger.info(
        f"Best prices flagged: {int(result_df['is_best'].sum())} best offers "
        f"across {result_df['ingredient_id'].nunique()} ingredients"
    )
    return result_df


def summarize_ingredient_prices(dataframe: pd.DataFrame) -> pd.DataFrame:
    """
    Per-ingredient price statistics from flagged offers.

    Args:
        dataframe: Output of flag_best_prices(); a "supplier_id" column is
                   used for the supplier count when present.

    Returns:
        DataFrame indexed by ingredient_id with best_price, worst_price,
        avg_price, supplier_count, and savings_pct
        ((worst − best) / worst × 100).
    """
    if "final_price" not in dataframe.columns:
        dataframe = flag_best_prices(dataframe)

    priced = dataframe[dataframe["final_price"].notna()]
    supplier_column = "supplier_id" if "supplier_id" in priced.columns else "final_price"

    grouped = priced.groupby("ingredient_id")
    summary = pd.DataFrame({
        "best_price": grouped["final_price"].min(),
        "worst_price": grouped["final_price"].max(),
        "avg_price": grouped["final_price"].mean(),
        "supplier_count": grouped[supplier_column].nunique(),
    })
    summary["savings_pct"] = np.where(
        summary["worst_price"] > 0,
        (summary["worst_price"] - summary["best_price"]) / summary["worst_price"] * 100,
        0.0,
    )
    return summary


# ═══════════════════════════════════════════════════════════════════════════
# Internal helpers
# ═══════════════════════════════════════════════════════════════════════════

def _validate_required_columns(df: pd.DataFrame, required: list[str]) -> None:
    missing = [col for col in required if col not in df.columns]
    if missing:
        raise ValueError(
            f"Missing required columns: {missing}. "
            f"Available columns: {list(df.columns)}"
        )
