from __future__ import annotations

import logging
import math

from .models import AnalysisConfig
from .parser import FIELDS_PER_POP, Header

logger = logging.getLogger(__name__)


def validate_config(config: AnalysisConfig) -> None:
    """Reject thresholds that cannot be compared meaningfully; raise ValueError."""
    if not math.isfinite(config.min_nc) or config.min_nc < 0:
        raise ValueError(f"min_Nc must be a finite, non-negative number (got {config.min_nc})")
    if not math.isfinite(config.cv):
        raise ValueError(f"cv must be a finite number (got {config.cv})")
    if not config.missing_token or any(c.isspace() for c in config.missing_token):
        raise ValueError(f"missing token must be a non-empty word (got {config.missing_token!r})")


def check_header(header: Header) -> None:
    """Log problems with the header shape that do not stop the scan."""
    if header.trailing_tokens:
        logger.warning(
            "Header has %d trailing column(s) that do not form a complete group of %d; "
            "they are ignored.",
            header.trailing_tokens,
            FIELDS_PER_POP,
        )
    if header.num_pops == 0:
        logger.warning("Header declares no populations; no private alleles can be found.")
    elif header.num_pops == 1:
        logger.info("Only one population in the input; private alleles need at least two.")
