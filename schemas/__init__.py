"""
Ordino - Pydantic Schemas

Data models for AI-extracted RFP data.
"""

from schemas.rfp import (
    RfpListing,
    RfpScore,
    DEFAULT_SCORE,
    KeyDate,
    ExtractedRfp,
)

__all__ = [
    "RfpListing",
    "RfpScore",
    "DEFAULT_SCORE",
    "KeyDate",
    "ExtractedRfp",
]
