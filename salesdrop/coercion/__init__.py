from .values import coerce_date, coerce_numeric, is_blank, is_iso_date, normalize_dmy_date, render_text

__all__ = [
    "coerce_date",
    "coerce_numeric",
    "is_blank",
    "is_iso_date",
    "normalize_dmy_date",
    "render_text",
]
