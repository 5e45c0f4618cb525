"""Transcript extraction: pattern library and data extractor."""

from .data_extractor import DataExtractor, validate_data
from .patterns import convert_to_monthly, normalize_amount

__all__ = ["DataExtractor", "validate_data", "convert_to_monthly", "normalize_amount"]
