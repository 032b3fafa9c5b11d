"""
Loyalty tools - vouchers, campaigns, membership tiers and customers per project.

Backed by an in-memory ledger; a deployment would point these handlers at
the loyalty service instead.
"""

import asyncio
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Literal

import structlog
from pydantic import Field

from .base import Tool, ToolArgs

logger = structlog.get_logger()


@dataclass
class Voucher:
    project_id: str
    code: str
    name: str
    discount_type: str
    discount_value: float
    start_date: datetime
    end_date: datetime
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    redeemed_by: list[str] = field(default_factory=list)

    def is_active(self, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return self.start_date <= now <= self.end_date


@dataclass
class Campaign:
    project_id: str
    name: str
    description: str | None = None
    type: str = "STANDARD"
    id: str = field(default_factory=lambda: str(uuid.uuid4()))


@dataclass
class Tier:
    project_id: str
    name: str
    level: int
    id: str = field(default_factory=lambda: str(uuid.uuid4()))


@dataclass
class Customer:
    project_id: str
    id: str
    tier_level: int | None = None
    tier_name: str | None = None


class LoyaltyLedger:
    """In-memory loyalty data, keyed by project."""

    def __init__(self):
        self._lock = asyncio.Lock()
        self.vouchers: dict[str, dict[str, Voucher]] = {}
        self.campaigns: dict[str, list[Campaign]] = {}
        self.tiers: dict[str, list[Tier]] = {}
        self.customers: dict[str, dict[str, Customer]] = {}

    async def add_voucher(self, voucher: Voucher) -> Voucher:
        async with self._lock:
            project_vouchers = self.vouchers.setdefault(voucher.project_id, {})
            if voucher.code in project_vouchers:
                raise ValueError(f"Voucher code {voucher.code} already exists in project {voucher.project_id}")
            project_vouchers[voucher.code] = voucher
        logger.info("Voucher created", project_id=voucher.project_id, code=voucher.code)
        return voucher

    async def list_vouchers(self, project_id: str, only_active: bool = True) -> list[Voucher]:
        async with self._lock:
            vouchers = list(self.vouchers.get(project_id, {}).values())
        if only_active:
            vouchers = [v for v in vouchers if v.is_active()]
        return vouchers

    async def get_voucher(self, project_id: str, code: str) -> Voucher | None:
        async with self._lock:
            return self.vouchers.get(project_id, {}).get(code)

    async def add_campaign(self, campaign: Campaign) -> Campaign:
        async with self._lock:
            self.campaigns.setdefault(campaign.project_id, []).append(campaign)
        return campaign

    async def list_campaigns(self, project_id: str) -> list[Campaign]:
        async with self._lock:
            return list(self.campaigns.get(project_id, []))

    async def add_tier(self, tier: Tier) -> Tier:
        async with self._lock:
            tiers = self.tiers.setdefault(tier.project_id, [])
            if any(t.level == tier.level for t in tiers):
                raise ValueError(f"Tier level {tier.level} already exists in project {tier.project_id}")
            tiers.append(tier)
            tiers.sort(key=lambda t: t.level)
        return tier

    async def list_tiers(self, project_id: str) -> list[Tier]:
        async with self._lock:
            return list(self.tiers.get(project_id, []))

    async def get_customer(self, project_id: str, customer_id: str) -> Customer | None:
        async with self._lock:
            return self.customers.get(project_id, {}).get(customer_id)

    async def assign_tier(self, project_id: str, customer_id: str, level: int) -> Customer:
        """Put a customer on the tier at ``level``, registering the customer if new."""
        async with self._lock:
            tier = next((t for t in self.tiers.get(project_id, []) if t.level == level), None)
            if tier is None:
                raise ValueError(f"No tier at level {level} in project {project_id}")
            customers = self.customers.setdefault(project_id, {})
            customer = customers.setdefault(customer_id, Customer(project_id=project_id, id=customer_id))
            customer.tier_level = tier.level
            customer.tier_name = tier.name
        logger.info("Tier assigned", project_id=project_id, customer_id=customer_id, level=level)
        return customer


class ProjectArgs(ToolArgs):
    project_id: str = Field(min_length=1, description="Project the data belongs to")


class CreateVoucherArgs(ProjectArgs):
    code: str | None = Field(default=None, description="Voucher code; generated when omitted")
    name: str | None = None
    discount_type: Literal["PERCENTAGE", "FIXED_AMOUNT"] = "PERCENTAGE"
    discount_value: float = Field(default=10, gt=0)
    valid_days: int = Field(default=30, ge=1)


class GetVouchersArgs(ProjectArgs):
    only_active: bool = True


class ValidateVoucherArgs(ProjectArgs):
    code: str = Field(min_length=1)
    customer_id: str | None = None


class CreateCampaignArgs(ProjectArgs):
    name: str = Field(min_length=1)
    description: str | None = None
    type: str = "STANDARD"


class CreateTierArgs(ProjectArgs):
    name: str = Field(min_length=1)
    level: int = Field(default=1, ge=1)


class CustomerArgs(ProjectArgs):
    customer_id: str = Field(min_length=1)


class AssignTierArgs(CustomerArgs):
    level: int = Field(ge=1)


def _voucher_dict(voucher: Voucher) -> dict[str, Any]:
    data = asdict(voucher)
    data["start_date"] = voucher.start_date.isoformat()
    data["end_date"] = voucher.end_date.isoformat()
    return data


def create_loyalty_tools(ledger: LoyaltyLedger) -> list[Tool]:
    """Create the loyalty tools bound to ``ledger``."""

    async def create_voucher(args: CreateVoucherArgs) -> dict[str, Any]:
        code = (args.code or f"V{uuid.uuid4().hex[:8]}").upper()
        now = datetime.now(timezone.utc)
        voucher = await ledger.add_voucher(Voucher(
            project_id=args.project_id,
            code=code,
            name=args.name or f"Voucher {code}",
            discount_type=args.discount_type,
            discount_value=args.discount_value,
            start_date=now,
            end_date=now + timedelta(days=args.valid_days),
        ))
        return {"voucher": _voucher_dict(voucher)}

    async def get_vouchers(args: GetVouchersArgs) -> dict[str, Any]:
        vouchers = await ledger.list_vouchers(args.project_id, args.only_active)
        return {"vouchers": [_voucher_dict(v) for v in vouchers], "count": len(vouchers)}

    async def validate_voucher(args: ValidateVoucherArgs) -> dict[str, Any]:
        voucher = await ledger.get_voucher(args.project_id, args.code.upper())
        if voucher is None:
            return {"valid": False, "reason": "Voucher not found"}
        if not voucher.is_active():
            return {"valid": False, "reason": "Voucher is not active"}
        if args.customer_id and args.customer_id in voucher.redeemed_by:
            return {"valid": False, "reason": "Voucher already redeemed by customer"}
        return {"valid": True, "voucher": _voucher_dict(voucher)}

    async def create_campaign(args: CreateCampaignArgs) -> dict[str, Any]:
        campaign = await ledger.add_campaign(Campaign(
            project_id=args.project_id,
            name=args.name,
            description=args.description,
            type=args.type,
        ))
        return {"campaign": asdict(campaign)}

    async def get_campaigns(args: ProjectArgs) -> dict[str, Any]:
        campaigns = await ledger.list_campaigns(args.project_id)
        return {"campaigns": [asdict(c) for c in campaigns], "count": len(campaigns)}

    async def create_tier(args: CreateTierArgs) -> dict[str, Any]:
        tier = await ledger.add_tier(Tier(project_id=args.project_id, name=args.name, level=args.level))
        return {"tier": asdict(tier)}

    async def get_tiers(args: ProjectArgs) -> dict[str, Any]:
        tiers = await ledger.list_tiers(args.project_id)
        return {"tiers": [asdict(t) for t in tiers], "count": len(tiers)}

    async def get_customer(args: CustomerArgs) -> dict[str, Any]:
        customer = await ledger.get_customer(args.project_id, args.customer_id)
        if customer is None:
            return {"found": False, "reason": "Customer not found"}
        return {"found": True, "customer": asdict(customer)}

    async def assign_tier(args: AssignTierArgs) -> dict[str, Any]:
        customer = await ledger.assign_tier(args.project_id, args.customer_id, args.level)
        return {"customer": asdict(customer)}

    return [
        Tool(
            name="create-voucher",
            description="Create a discount voucher for a project.",
            args_model=CreateVoucherArgs,
            handler=create_voucher,
        ),
        Tool(
            name="get-vouchers",
            description="List the vouchers of a project.",
            args_model=GetVouchersArgs,
            handler=get_vouchers,
        ),
        Tool(
            name="validate-voucher",
            description="Check whether a voucher code is valid for a customer.",
            args_model=ValidateVoucherArgs,
            handler=validate_voucher,
        ),
        Tool(
            name="create-campaign",
            description="Create a marketing campaign for a project.",
            args_model=CreateCampaignArgs,
            handler=create_campaign,
        ),
        Tool(
            name="get-campaigns",
            description="List the campaigns of a project.",
            args_model=ProjectArgs,
            handler=get_campaigns,
        ),
        Tool(
            name="create-tier",
            description="Create a membership tier for a project.",
            args_model=CreateTierArgs,
            handler=create_tier,
        ),
        Tool(
            name="get-tiers",
            description="List the membership tiers of a project.",
            args_model=ProjectArgs,
            handler=get_tiers,
        ),
        Tool(
            name="get-customer",
            description="Look up a customer of a project and their membership tier.",
            args_model=CustomerArgs,
            handler=get_customer,
        ),
        Tool(
            name="assign-tier",
            description="Assign a customer to the membership tier at a given level.",
            args_model=AssignTierArgs,
            handler=assign_tier,
        ),
    ]
