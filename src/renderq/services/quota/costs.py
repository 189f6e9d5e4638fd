"""Static cost table: quota units charged per produced asset."""

from renderq.errors.exceptions import ValidationError
from renderq.models.enums import AssetKind

# Carousels and videos cost more than a single image to reflect compute cost.
UNIT_RATES: dict[AssetKind, int] = {
    AssetKind.IMAGE: 1,
    AssetKind.CAROUSEL_SLIDE: 2,
    AssetKind.VIDEO: 25,
    AssetKind.TEXT: 0,
    AssetKind.UPLOAD: 0,
    AssetKind.THUMBNAIL: 0,
}


def cost(asset_kind: AssetKind | str, quantity: int = 1) -> int:
    """Units charged for ``quantity`` assets of ``asset_kind``. Pure."""
    if quantity < 0:
        raise ValidationError(f"quantity must be >= 0, got {quantity}")
    try:
        rate = UNIT_RATES[AssetKind(asset_kind)]
    except ValueError:
        raise ValidationError(f"Unknown asset kind '{asset_kind}'") from None
    return rate * quantity
