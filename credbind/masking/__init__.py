"""Secret masking for output produced inside a bound scope."""

from credbind.masking.masker import (
    DEFAULT_PLACEHOLDER,
    MaskingTextWriter,
    OutputMasker,
    build_pattern,
    mask_text,
)

__all__ = [
    "DEFAULT_PLACEHOLDER",
    "MaskingTextWriter",
    "OutputMasker",
    "build_pattern",
    "mask_text",
]
