"""
AWS Price List client.
Resolves usage estimates into monthly costs from the public bulk pricing
catalogs (no authentication required), backed by an injected price cache.
"""
from typing import Dict, List, Optional, Tuple
import asyncio
import logging

import httpx

from bootstrap_cost.core.config import config
from bootstrap_cost.domain.cost_models import PriceQuery, PriceResult, ResourceUsage
from bootstrap_cost.pricing.offer_file import OfferFile
from bootstrap_cost.pricing.price_cache import PriceCache
from bootstrap_cost.resilience.circuit_breaker import get_circuit_breaker


logger = logging.getLogger(__name__)


class AWSPricingError(Exception):
    """Raised when a resource cannot be priced."""
    pass


class PricingUnavailableError(AWSPricingError):
    """The pricing catalog could not be fetched (network, timeout, HTTP error, cancellation)."""
    pass


class NoMatchingSKUError(AWSPricingError):
    """The catalog has no priced product for the query's family and region."""
    pass


class AWSPricingClient:
    """Client for the AWS Price List bulk API."""

    def __init__(
        self,
        cache: PriceCache,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_concurrent_fetches: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize the pricing client.

        Args:
            cache: Price cache handle (file-backed, in-memory or disabled)
            base_url: Offer file base URL (default: config.AWS_PRICING_BASE_URL)
            timeout: Hard per-download timeout in seconds
            max_concurrent_fetches: Upper bound on parallel catalog downloads
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.cache = cache
        self.base_url = (base_url or config.AWS_PRICING_BASE_URL).rstrip("/")
        self.timeout = timeout or config.PRICING_FETCH_TIMEOUT_SECONDS
        self.max_concurrent_fetches = max_concurrent_fetches or config.PRICING_MAX_CONCURRENT_FETCHES
        self._transport = transport
        self.cache_hits = 0
        self.cache_misses = 0

    def _catalog_url(self, service_code: str, region: str) -> str:
        """Regional offer file: {base}/{service}/current/{region}/index.json"""
        return f"{self.base_url}/{service_code}/current/{region}/index.json"

    def _http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            transport=self._transport,
            follow_redirects=True,
        )

    @staticmethod
    def _monthly_cost(usage: ResourceUsage, result: PriceResult) -> float:
        return result.price_for_quantity(usage.quantity) * usage.quantity

    async def _fetch_offer_file(
        self,
        client: httpx.AsyncClient,
        semaphore: asyncio.Semaphore,
        service_code: str,
        region: str
    ) -> OfferFile:
        """
        Download and parse one regional offer file.

        Raises:
            PricingUnavailableError: On timeout, HTTP/network error, invalid
                JSON, or while the catalog's circuit breaker is open
        """
        breaker = get_circuit_breaker(f"aws_pricing:{service_code}:{region}")
        if not breaker.allow_request():
            raise PricingUnavailableError(
                f"{service_code} pricing catalog temporarily unavailable (circuit breaker open)"
            )

        url = self._catalog_url(service_code, region)
        try:
            async with semaphore:
                logger.info(f"Downloading {service_code} pricing catalog for {region}")
                response = await asyncio.wait_for(client.get(url), timeout=self.timeout)
                response.raise_for_status()
                offer_file = OfferFile(response.json())
        except asyncio.CancelledError:
            breaker.release_trial()
            raise
        except (asyncio.TimeoutError, httpx.TimeoutException) as error:
            breaker.record_failure()
            logger.warning(f"Timed out fetching {url} after {self.timeout}s")
            raise PricingUnavailableError(
                f"Timed out fetching {service_code} pricing catalog after {self.timeout:g}s"
            ) from error
        except httpx.HTTPStatusError as error:
            breaker.record_failure()
            logger.warning(f"Pricing catalog HTTP error for {url}: {error.response.status_code}")
            raise PricingUnavailableError(
                f"{service_code} pricing catalog returned HTTP {error.response.status_code}"
            ) from error
        except httpx.RequestError as error:
            breaker.record_failure()
            logger.warning(f"Pricing catalog request error for {url}: {error}")
            raise PricingUnavailableError(
                f"Failed to fetch {service_code} pricing catalog: {error}"
            ) from error
        except ValueError as error:
            breaker.record_failure()
            logger.warning(f"Invalid pricing catalog at {url}: {error}")
            raise PricingUnavailableError(
                f"{service_code} pricing catalog is not valid JSON"
            ) from error

        breaker.record_success()
        logger.debug(
            f"Loaded {len(offer_file.products)} products for {service_code}/{region} "
            f"(published {offer_file.publication_date})"
        )
        return offer_file

    @staticmethod
    def _resolve(offer_file: OfferFile, query: PriceQuery) -> PriceResult:
        sku, result = offer_file.resolve(query)
        if sku is None:
            raise NoMatchingSKUError(
                f"No {query.service} product for family '{query.product_family}' in {query.region}"
            )
        if result is None:
            raise NoMatchingSKUError(f"No on-demand price for {query.service} SKU {sku}")
        return result

    async def _price_group(
        self,
        client: httpx.AsyncClient,
        semaphore: asyncio.Semaphore,
        service_code: str,
        usages: List[ResourceUsage],
        region: str,
        costs: Dict[str, float],
        errors: Dict[str, AWSPricingError]
    ) -> None:
        """
        Price every cache-missing usage of one service from a single download.

        Results are written into `costs`/`errors` as soon as they resolve so a
        cancelled batch keeps whatever finished.
        """
        try:
            offer_file = await self._fetch_offer_file(client, semaphore, service_code, region)
        except PricingUnavailableError as error:
            for usage in usages:
                errors[usage.logical_id] = error
            return

        for usage in usages:
            query = usage.price_query(region)
            try:
                result = self._resolve(offer_file, query)
            except NoMatchingSKUError as error:
                logger.warning(f"No SKU for {usage.logical_id} ({usage.resource_type}): {error}")
                errors[usage.logical_id] = error
                continue
            except (AttributeError, KeyError, TypeError, ValueError) as error:
                # Catalog entry shaped differently than expected
                logger.warning(
                    f"Unreadable {service_code} catalog entry for {usage.logical_id}: "
                    f"{type(error).__name__}: {error}"
                )
                errors[usage.logical_id] = NoMatchingSKUError(
                    f"{service_code} catalog entry for '{query.product_family}' could not be read"
                )
                continue

            self.cache.put(query.cache_key(), result)
            costs[usage.logical_id] = self._monthly_cost(usage, result)

    @staticmethod
    async def _cancel_unfinished(tasks: List["asyncio.Task[None]"]) -> None:
        unfinished = [task for task in tasks if not task.done()]
        for task in unfinished:
            task.cancel()
        if unfinished:
            await asyncio.gather(*unfinished, return_exceptions=True)

    async def _wait_for_groups(
        self,
        tasks: List["asyncio.Task[None]"],
        cancel_event: Optional[asyncio.Event]
    ) -> None:
        cancel_waiter = asyncio.ensure_future(cancel_event.wait()) if cancel_event is not None else None
        remaining = set(tasks)
        try:
            if cancel_waiter is None:
                await asyncio.gather(*tasks)
                return

            while remaining:
                done, _ = await asyncio.wait(
                    remaining | {cancel_waiter},
                    return_when=asyncio.FIRST_COMPLETED
                )
                for task in done:
                    if task is not cancel_waiter:
                        remaining.discard(task)
                        task.result()
                if cancel_waiter in done and remaining:
                    logger.warning(f"Pricing cancelled with {len(remaining)} catalog download(s) pending")
                    break
        finally:
            # Sibling downloads must not outlive the shared HTTP client
            await self._cancel_unfinished(tasks)
            if cancel_waiter is not None:
                cancel_waiter.cancel()

    async def get_prices(
        self,
        usages: List[ResourceUsage],
        region: str,
        cancel_event: Optional[asyncio.Event] = None
    ) -> Tuple[Dict[str, float], Dict[str, AWSPricingError]]:
        """
        Price a batch of usages.

        Cache hits are resolved first; remaining usages are grouped by service
        and each service catalog is downloaded once, in parallel across
        services. One resource failing never aborts the batch.

        Args:
            usages: Usage estimates keyed by their logical IDs
            region: AWS region code, passed through to the catalog lookup
            cancel_event: When set, pending downloads are abandoned

        Returns:
            (monthly cost by logical ID, pricing error by logical ID)
        """
        costs: Dict[str, float] = {}
        errors: Dict[str, AWSPricingError] = {}
        pending: Dict[str, List[ResourceUsage]] = {}

        for usage in usages:
            if not usage.service_code or not usage.product_family:
                errors[usage.logical_id] = NoMatchingSKUError(
                    f"No pricing query defined for {usage.resource_type}"
                )
                continue

            query = usage.price_query(region)
            cached, hit = self.cache.get(query.cache_key())
            if hit:
                self.cache_hits += 1
                costs[usage.logical_id] = self._monthly_cost(usage, cached)
                continue

            self.cache_misses += 1
            pending.setdefault(query.service, []).append(usage)

        if not pending:
            return costs, errors

        if cancel_event is not None and cancel_event.is_set():
            logger.warning("Pricing cancelled before any catalog download started")
        else:
            semaphore = asyncio.Semaphore(self.max_concurrent_fetches)
            async with self._http_client() as client:
                tasks = [
                    asyncio.ensure_future(
                        self._price_group(client, semaphore, service_code, group, region, costs, errors)
                    )
                    for service_code, group in pending.items()
                ]
                await self._wait_for_groups(tasks, cancel_event)

        for group in pending.values():
            for usage in group:
                if usage.logical_id not in costs and usage.logical_id not in errors:
                    errors[usage.logical_id] = PricingUnavailableError(
                        "Pricing cancelled before the catalog was fetched"
                    )

        return costs, errors

    async def get_price(self, usage: ResourceUsage, region: str) -> float:
        """
        Get the monthly cost of a single usage estimate.

        Raises:
            PricingUnavailableError: If the catalog could not be fetched
            NoMatchingSKUError: If no catalog product matches
        """
        costs, errors = await self.get_prices([usage], region)
        if usage.logical_id in errors:
            raise errors[usage.logical_id]
        return costs[usage.logical_id]
