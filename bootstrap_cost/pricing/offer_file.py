"""
AWS Price List offer file reader.

An offer file is the bulk pricing catalog for one service (optionally one region):

    {
        "formatVersion": "v1.0",
        "publicationDate": "...",
        "products": {"<sku>": {"sku": ..., "productFamily": ..., "attributes": {...}}},
        "terms": {"OnDemand": {"<sku>": {"<offerTermCode>": {"priceDimensions": {...}}}}}
    }

Only the fields above are read; anything else in the document is ignored so
schema additions on the AWS side do not break lookups.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from bootstrap_cost.domain.cost_models import PriceQuery, PriceResult, PriceTier
from bootstrap_cost.pricing.aws_region_map import get_location_names


logger = logging.getLogger(__name__)

# Attribute values AWS spells with inconsistent casing across catalogs
CASE_INSENSITIVE_ATTRIBUTES = {"databaseengine", "operatingsystem", "enginename", "volumetype"}


class OfferFile:
    """
    Read-only view of a parsed offer file.

    Product matching for a PriceQuery:
      1. productFamily must equal the query's product family
      2. regionCode must equal the query's region (or, for catalogs without
         regionCode, location must be the region's location name)
      3. among the survivors, the product matching the most declared query
         attributes wins; ties go to the first product in catalog order
    """

    def __init__(self, data: Dict[str, Any]):
        """
        Args:
            data: Parsed offer file JSON
        """
        if not isinstance(data, dict):
            raise ValueError("Offer file must be a JSON object")
        products = data.get("products")
        self.products: Dict[str, Any] = products if isinstance(products, dict) else {}
        terms = data.get("terms")
        on_demand = terms.get("OnDemand") if isinstance(terms, dict) else None
        self.on_demand_terms: Dict[str, Any] = on_demand if isinstance(on_demand, dict) else {}
        self.publication_date: Optional[str] = data.get("publicationDate")

    @staticmethod
    def _product_family(product: Dict[str, Any]) -> str:
        family = product.get("productFamily")
        if family:
            return str(family)
        attributes = product.get("attributes")
        if not isinstance(attributes, dict):
            return ""
        return str(attributes.get("productFamily") or "")

    @staticmethod
    def _matches_region(attributes: Dict[str, Any], region: str, locations: List[str]) -> bool:
        region_code = attributes.get("regionCode")
        if region_code:
            return region_code == region
        return attributes.get("location") in locations

    @staticmethod
    def _attribute_score(attributes: Dict[str, Any], wanted: Dict[str, str]) -> int:
        score = 0
        for key, value in wanted.items():
            actual = attributes.get(key)
            if actual is None:
                continue
            if key.lower() in CASE_INSENSITIVE_ATTRIBUTES:
                if str(actual).lower() == str(value).lower():
                    score += 1
            elif str(actual) == str(value):
                score += 1
        return score

    def find_matching_sku(self, query: PriceQuery) -> Optional[str]:
        """
        Select the product for a query.

        Args:
            query: Pricing query (service is implied by the offer file)

        Returns:
            Matching SKU, or None when no product has the family and region
        """
        locations = get_location_names(query.region)
        best_sku: Optional[str] = None
        best_score = -1

        for sku, product in self.products.items():
            if not isinstance(product, dict):
                continue
            if self._product_family(product) != query.product_family:
                continue
            attributes = product.get("attributes")
            if not isinstance(attributes, dict):
                continue
            if not self._matches_region(attributes, query.region, locations):
                continue

            score = self._attribute_score(attributes, query.attributes)
            # Strictly greater: the earliest product wins a tie
            if score > best_score:
                best_sku = product.get("sku") or sku
                best_score = score
                if score == len(query.attributes):
                    break

        return best_sku

    def get_on_demand_tiers(self, sku: str) -> List[PriceTier]:
        """
        Read the price dimensions of the SKU's first on-demand term.

        Returns:
            Tiers in catalog order; empty when the SKU has no usable price
        """
        sku_terms = self.on_demand_terms.get(sku)
        if not isinstance(sku_terms, dict) or not sku_terms:
            return []

        first_term = next(iter(sku_terms.values()))
        dimensions = first_term.get("priceDimensions") if isinstance(first_term, dict) else None
        if not isinstance(dimensions, dict):
            return []

        tiers = []
        for dimension in dimensions.values():
            tier = self._parse_dimension(dimension)
            if tier is not None:
                tiers.append(tier)
        return tiers

    @staticmethod
    def _parse_dimension(dimension: Any) -> Optional[PriceTier]:
        if not isinstance(dimension, dict):
            return None
        prices = dimension.get("pricePerUnit")
        if not isinstance(prices, dict):
            return None
        price_per_unit = prices.get("USD")
        if price_per_unit in (None, ""):
            return None
        try:
            unit_price = float(price_per_unit)
            begin_range = float(dimension.get("beginRange") or 0)
            end_raw = dimension.get("endRange")
            end_range = None if end_raw in (None, "", "Inf") else float(end_raw)
        except (TypeError, ValueError) as error:
            logger.debug(f"Skipping unparseable price dimension: {error}")
            return None
        return PriceTier(
            begin_range=begin_range,
            end_range=end_range,
            unit=str(dimension.get("unit", "")),
            unit_price=unit_price,
            description=str(dimension.get("description", "")),
        )

    def resolve(self, query: PriceQuery) -> Tuple[Optional[str], Optional[PriceResult]]:
        """
        Find the product for a query and read its on-demand price.

        Returns:
            (sku, result); sku is None when nothing matched, result is None
            when the matched SKU carries no on-demand price
        """
        sku = self.find_matching_sku(query)
        if sku is None:
            return None, None

        tiers = self.get_on_demand_tiers(sku)
        if not tiers:
            return sku, None

        first = tiers[0]
        return sku, PriceResult(
            sku=sku,
            unit_price=first.unit_price,
            unit=first.unit,
            tiers=sorted(tiers, key=lambda tier: tier.begin_range),
        )
