from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from app.schemas.routing import SearchParams
from app.services.catalog import BrandRef, CatalogStore, StateRef

logger = logging.getLogger(__name__)


@dataclass
class LegalityFact:
    state: str
    brand: str
    product: str
    is_legal: bool
    details: str


def _resolve_state(store: CatalogStore, name: str) -> Optional[StateRef]:
    states = store.find_states(name)
    if not states:
        states = store.find_states(name, fuzzy=True)
    return states[0] if states else None


def _resolve_brands(store: CatalogStore, name: str) -> list[BrandRef]:
    """
    Exact match first, then "contains". Every candidate is kept: several fuzzy
    matches constrain products to the union of their ids.
    """
    brands = store.find_brands(name)
    if brands:
        return brands
    return store.find_brands(name, fuzzy=True)


def resolve_legality(params: SearchParams, store: CatalogStore) -> list[LegalityFact]:
    """
    Resolve {state, brand, product} against the allow-list.

    Only allow-list rows become facts and each is asserted legal; a missing row
    means "not asserted", never "prohibited". Output keeps allow-list order.
    """
    if not (params.state or params.brand or params.product):
        logger.info("legality.skip reason=no_params")
        return []

    state_id: Optional[int] = None
    if params.state:
        state = _resolve_state(store, params.state)
        if state is None:
            logger.info("legality.abort reason=state_not_found state=%s", params.state)
            return []
        state_id = state.id

    brand_ids: Optional[list[int]] = None
    if params.brand:
        brands = _resolve_brands(store, params.brand)
        if not brands:
            logger.info("legality.abort reason=brand_not_found brand=%s", params.brand)
            return []
        brand_ids = [b.id for b in brands]
        if len(brands) > 1:
            logger.info("legality.brand_candidates brand=%s n=%d", params.brand, len(brands))

    rows = store.query_allow_list(
        state_id=state_id,
        brand_ids=brand_ids,
        product_contains=params.product,
    )

    facts = [
        LegalityFact(
            state=r.state_name,
            brand=r.brand_name or "",
            product=r.product_name,
            is_legal=True,
            details=(
                f"{r.product_name}"
                + (f" ({r.brand_name})" if r.brand_name else "")
                + f" is on the allowed-products list for {r.state_name}."
            ),
        )
        for r in rows
    ]
    logger.info(
        "legality.resolved state=%s brand_ids=%s product=%s facts=%d",
        state_id,
        brand_ids or [],
        params.product or "",
        len(facts),
    )
    return facts
