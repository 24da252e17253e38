"""Formatting utilities for currency and text display."""

from __future__ import annotations

from typing import Union


def escape_markdown_dollars(text: str) -> str:
    """Escape dollar signs so ``st.markdown`` doesn't read them as LaTeX.

    Example:
        >>> escape_markdown_dollars("Top up $5")
        'Top up \\\\$5'
    """
    return text.replace("$", "\\$")


def escape_dollar_for_markdown(amount: float) -> str:
    """Format a dollar amount and escape the dollar sign for markdown rendering.

    Streamlit markdown treats ``$`` as a LaTeX math delimiter, so amounts shown
    through ``st.markdown`` must be escaped.

    Example:
        >>> escape_dollar_for_markdown(1234.56)
        '\\\\$1,234.56'
    """
    return escape_markdown_dollars(format_currency(amount))


def format_currency(amount: Union[float, int], include_sign: bool = True) -> str:
    """Format a currency amount with proper formatting.

    Negative amounts keep the minus sign in front of the dollar sign.

    Example:
        >>> format_currency(1234.56)
        '$1,234.56'
        >>> format_currency(-50)
        '-$50.00'
        >>> format_currency(1234.56, include_sign=False)
        '1,234.56'
    """
    formatted = f"{abs(amount):,.2f}"
    sign = "-" if amount < 0 else ""
    return f"{sign}${formatted}" if include_sign else f"{sign}{formatted}"
