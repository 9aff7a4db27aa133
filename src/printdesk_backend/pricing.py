"""
Pricing resolution and per-shop pricing configuration management.

A shop configures one PricingConfig per medium (paper type x print type),
each carrying a single-sided and a double-sided unit price. The resolver
turns a medium, sidedness, page total and copy count into a job cost; the
management operations keep the one-row-per-medium invariant intact.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import replace
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Tuple
from uuid import uuid4

from .database import PrintDeskDatabase
from .errors import ConfigurationNotFound, DuplicateConfiguration, NotFound, ValidationError
from .models import PaperType, PrintSide, PrintType
from .records import PricingConfigRecord
from .utils import utcnow

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


def calculate_cost(config: PricingConfigRecord, print_side: PrintSide, total_pages: int, copies: int) -> Decimal:
    """
    Compute ``unit_price x total_pages x copies`` rounded half-up to cents.

    Example:
        >>> calculate_cost(a4_bw, PrintSide.SINGLE_SIDED, total_pages=10, copies=3)
        Decimal('60.00')
    """
    unit_price = config.unit_price(print_side)
    return (unit_price * total_pages * copies).quantize(CENTS, rounding=ROUND_HALF_UP)


def _positive_price(value: Decimal, field: str) -> Decimal:
    price = Decimal(str(value))
    if not price.is_finite() or price <= 0:
        raise ValidationError(field, f"'{field}' must be a positive number")
    return price


class PricingService:
    """
    Resolves job costs and manages pricing rows for shops.

    Uniqueness of (shop, paper type, print type) is checked before insert
    and before update; the database's UNIQUE constraint backs the check
    against concurrent writers.
    """

    def __init__(self, database: PrintDeskDatabase) -> None:
        self.database = database

    def resolve_config(self, shop_id: str, paper_type: PaperType, print_type: PrintType) -> PricingConfigRecord:
        config = self.database.find_pricing_config(shop_id, paper_type, print_type)
        if config is None:
            raise ConfigurationNotFound(shop_id, paper_type.value, print_type.value)
        return config

    def resolve_unit_price(
        self, shop_id: str, paper_type: PaperType, print_type: PrintType, print_side: PrintSide
    ) -> Decimal:
        return self.resolve_config(shop_id, paper_type, print_type).unit_price(print_side)

    def resolve_cost(
        self,
        shop_id: str,
        paper_type: PaperType,
        print_type: PrintType,
        print_side: PrintSide,
        total_pages: int,
        copies: int,
    ) -> Decimal:
        """
        Compute the total cost of a job for a shop's configured medium.

        Raises:
            ConfigurationNotFound: If the shop has no row for the medium
        """
        config = self.resolve_config(shop_id, paper_type, print_type)
        return calculate_cost(config, print_side, total_pages, copies)

    def create_config(
        self,
        shop_id: str,
        paper_type: PaperType,
        print_type: PrintType,
        single_sided: Decimal,
        double_sided: Decimal,
    ) -> Tuple[PricingConfigRecord, List[PricingConfigRecord]]:
        """
        Create a pricing row for a shop.

        Returns:
            The created row and every row of the shop, ordered by medium

        Raises:
            NotFound: If the shop does not exist
            ValidationError: If a price is not positive
            DuplicateConfiguration: If the shop already prices this medium
        """
        if self.database.get_shop(shop_id) is None:
            raise NotFound("Shop", shop_id)

        single = _positive_price(single_sided, "single_sided")
        double = _positive_price(double_sided, "double_sided")

        if self.database.find_pricing_config(shop_id, paper_type, print_type) is not None:
            raise DuplicateConfiguration(shop_id, paper_type.value, print_type.value)

        now = utcnow()
        record = PricingConfigRecord(
            id=str(uuid4()),
            shop_id=shop_id,
            paper_type=paper_type,
            print_type=print_type,
            single_sided=single,
            double_sided=double,
            created_at=now,
            updated_at=now,
        )
        try:
            self.database.insert_pricing_config(record)
        except sqlite3.IntegrityError as exc:
            raise DuplicateConfiguration(shop_id, paper_type.value, print_type.value) from exc

        logger.info(f"Created pricing {paper_type.value}/{print_type.value} for shop {shop_id}")
        return record, self.database.list_pricing_configs(shop_id)

    def list_configs(self, shop_id: str) -> List[PricingConfigRecord]:
        return self.database.list_pricing_configs(shop_id)

    def get_config(self, config_id: str) -> PricingConfigRecord:
        config = self.database.get_pricing_config(config_id)
        if config is None:
            raise NotFound("Pricing configuration", config_id)
        return config

    def update_config(
        self,
        config_id: str,
        paper_type: PaperType,
        print_type: PrintType,
        single_sided: Decimal,
        double_sided: Decimal,
    ) -> Tuple[PricingConfigRecord, List[PricingConfigRecord]]:
        """
        Update a pricing row in place; its shop never changes.

        Raises:
            NotFound: If the row does not exist
            DuplicateConfiguration: If another row of the same shop already
                prices the target medium
        """
        existing = self.get_config(config_id)
        single = _positive_price(single_sided, "single_sided")
        double = _positive_price(double_sided, "double_sided")

        collision = self.database.find_pricing_config(existing.shop_id, paper_type, print_type, exclude_id=config_id)
        if collision is not None:
            raise DuplicateConfiguration(existing.shop_id, paper_type.value, print_type.value)

        updated = replace(
            existing,
            paper_type=paper_type,
            print_type=print_type,
            single_sided=single,
            double_sided=double,
            updated_at=utcnow(),
        )
        try:
            self.database.update_pricing_config(updated)
        except sqlite3.IntegrityError as exc:
            raise DuplicateConfiguration(existing.shop_id, paper_type.value, print_type.value) from exc

        logger.info(f"Updated pricing {config_id} for shop {existing.shop_id}")
        return updated, self.database.list_pricing_configs(existing.shop_id)

    def delete_config(self, config_id: str) -> PricingConfigRecord:
        existing = self.get_config(config_id)
        self.database.delete_pricing_config(config_id)
        logger.info(f"Deleted pricing {config_id} for shop {existing.shop_id}")
        return existing
