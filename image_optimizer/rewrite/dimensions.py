"""
Resolves the display dimensions of one asset reference.

Sources are tried in a fixed order and at most one of them applies:

1. explicit width and height (element attributes, icon ``sizes``)
2. a ``-WxH`` suffix in the filename
3. a trailing ``Nw`` width descriptor (candidate list entries only)
4. nothing, the CDN picks the size itself

When tiers 1 or 2 apply the filename suffix is removed so the CDN receives
the original, unsized upload.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from image_optimizer.rewrite.patterns import (
    WIDTH_AND_HEIGHT_IN_FILENAME,
    WIDTH_AND_HEIGHT_STRIP,
    WIDTH_DESCRIPTOR,
)


@dataclass(frozen=True)
class DimensionHint:
    width: Optional[str] = None
    height: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.width and not self.height


NO_HINT = DimensionHint()


def strip_size_suffix(reference: str) -> str:
    return WIDTH_AND_HEIGHT_STRIP.sub("", reference, count=1)


def _present(value: Optional[str]) -> bool:
    return value is not None and value.strip() != ""


def infer_dimensions(
    reference: str,
    width: Optional[str] = None,
    height: Optional[str] = None,
    descriptor: Optional[str] = None,
) -> Tuple[str, DimensionHint]:
    """
    Pick the dimension hint for ``reference``.

    Args:
        reference: The asset reference as found in the markup
        width: Explicit width, if the context provides one
        height: Explicit height, if the context provides one
        descriptor: Size token of a candidate list entry ("300w"), if any

    Returns:
        Tuple of the reference to hand to the URL builder (size suffix
        removed where a size was taken) and the chosen hint.
    """
    if _present(width) and _present(height):
        return strip_size_suffix(reference), DimensionHint(width.strip(), height.strip())

    match = WIDTH_AND_HEIGHT_IN_FILENAME.search(reference)
    if match:
        return strip_size_suffix(reference), DimensionHint(match.group(1), match.group(2))

    if descriptor:
        match = WIDTH_DESCRIPTOR.search(descriptor)
        if match:
            return reference, DimensionHint(width=match.group(1))

    return reference, NO_HINT
