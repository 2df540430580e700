"""Variant-to-variant stock conversion.

A variant with ``auto_convert`` set can top up a shortage by breaking down
units of its ``conversion_source`` (1 roll -> 12 pieces). Sources may convert
from their own sources, so shortages are resolved bottom-up along the chain.
"""
import logging

from catalog.models import ProductVariant
from core.exceptions import CircularConversion, EntityNotFound, InvalidConversion

logger = logging.getLogger(__name__)


def validate_conversion_assignment(product_id, candidate_source_id, variant_id=None):
    """Check that ``candidate_source_id`` may become the conversion source of a variant of ``product_id``.

    ``variant_id`` is passed for updates of an existing variant; the chain above
    the candidate is then walked to make sure it never leads back to the variant.
    Read only. The walk is not atomic with the caller's later write, so a
    concurrent edit can still close a cycle between validation and commit.
    """
    if not candidate_source_id:
        return None

    source = ProductVariant.objects.filter(pk=candidate_source_id).first()
    if source is None:
        raise EntityNotFound(
            "Conversion source variant not found",
            conversion_source_id=candidate_source_id,
        )

    if str(source.product_id) != str(product_id):
        raise InvalidConversion(
            conversion_source_id=candidate_source_id,
            source_product_id=source.product_id,
            product_id=product_id,
        )

    if variant_id:
        _assert_no_cycle(variant_id, source)

    return source


def _assert_no_cycle(variant_id, source):
    target = str(variant_id)
    visited = set()
    current_id = str(source.pk)
    next_id = source.conversion_source_id

    while True:
        if current_id == target:
            raise CircularConversion(variant_id=variant_id, conversion_source_id=source.pk)
        if current_id in visited:
            # the existing chain is already broken; stop instead of looping forever
            raise CircularConversion(
                "Conversion chain already contains a cycle",
                variant_id=variant_id,
                conversion_source_id=source.pk,
                revisited_variant_id=current_id,
            )
        visited.add(current_id)
        if not next_id:
            return
        current_id = str(next_id)
        next_id = (
            ProductVariant.objects.filter(pk=next_id).values_list("conversion_source_id", flat=True).first()
        )


def ensure_stock(variant, required_quantity, visiting=frozenset()):
    """Convert source units into ``variant`` until it holds ``required_quantity``, if it can.

    Must run inside the caller's transaction. Sources are locked with
    ``select_for_update`` and converted in whole units, so the variant can end
    up to ``conversion_quantity - 1`` units above the requirement. The
    requirement is not guaranteed: callers re-check ``variant.quantity``.
    Performs no write when nothing needs converting.
    """
    if not _needs_conversion(variant, required_quantity):
        return variant
    max_depth = ProductVariant.objects.filter(product_id=variant.product_id).count()
    return _ensure_stock(variant, required_quantity, frozenset(visiting), max_depth)


def _needs_conversion(variant, required_quantity):
    return bool(
        variant.auto_convert
        and variant.conversion_source_id
        and required_quantity > 0
        and variant.quantity < required_quantity
    )


def _ensure_stock(variant, required_quantity, visiting, max_depth):
    if not _needs_conversion(variant, required_quantity):
        return variant

    if variant.pk in visiting or len(visiting) >= max_depth:
        raise CircularConversion(
            "Circular conversion detected",
            variant_id=variant.pk,
            chain=sorted(str(pk) for pk in visiting),
        )

    conversion_quantity = max(1, variant.conversion_quantity or 1)
    shortage = required_quantity - variant.quantity
    source_units_needed = -(-shortage // conversion_quantity)

    source = ProductVariant.objects.select_for_update().filter(pk=variant.conversion_source_id).first()
    if source is None:
        return variant

    _ensure_stock(source, source_units_needed, visiting | {variant.pk}, max_depth)

    # one source unit at a time until the requirement is covered or the source runs dry
    converted = min(source_units_needed, source.quantity)
    if converted <= 0:
        return variant

    source.quantity -= converted
    variant.quantity += converted * conversion_quantity
    source.save(update_fields=["quantity", "updated_at"])
    variant.save(update_fields=["quantity", "updated_at"])

    logger.info(
        "Converted %s unit(s) of variant=%s into %s unit(s) of variant=%s",
        converted,
        source.pk,
        converted * conversion_quantity,
        variant.pk,
    )
    return variant
