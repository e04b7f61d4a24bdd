"""
Built-in catalog of default SLA configurations.

Used when seeding an organization and no `sla_config.yaml` is available.
"""

from config import SlaDomain, TargetUnit
from sla.domain import DefaultConfigurationSeed, SeedCatalog

BH = TargetUnit.BUSINESS_HOURS
BD = TargetUnit.BUSINESS_DAYS


def _seed(
    name: str,
    description: str,
    response: tuple,
    resolution: tuple,
    at_risk: int,
    escalate: bool,
    priority: int,
    is_default: bool = False
) -> DefaultConfigurationSeed:
    return DefaultConfigurationSeed(
        name=name,
        description=description,
        response_target_value=response[0],
        response_target_unit=response[1],
        resolution_target_value=resolution[0],
        resolution_target_unit=resolution[1],
        at_risk_threshold_percent=at_risk,
        escalate_on_breach=escalate,
        priority_order=priority,
        is_default=is_default,
    )


DEFAULT_SEED_CATALOG = SeedCatalog(
    domains={
        SlaDomain.SUPPORT: [
            _seed(
                "Critical Support",
                "SLA for critical priority support issues. Requires immediate response and fast resolution.",
                (1, TargetUnit.HOURS), (4, BH), 25, True, 10,
            ),
            _seed(
                "High Priority Support",
                "SLA for high priority support issues. Fast response with same-day resolution target.",
                (4, BH), (8, BH), 25, True, 20,
            ),
            _seed(
                "Standard Support",
                "Default SLA for standard support issues. Balanced response and resolution times.",
                (8, BH), (3, BD), 25, False, 50, is_default=True,
            ),
            _seed(
                "Low Priority Support",
                "SLA for low priority support issues. Extended timeframes for non-urgent matters.",
                (24, BH), (5, BD), 20, False, 80,
            ),
        ],
        SlaDomain.WARRANTY: [
            _seed(
                "Manufacturer Warranty Claim",
                "SLA for processing manufacturer warranty claims. Standard processing times.",
                (24, BH), (10, BD), 25, False, 50, is_default=True,
            ),
            _seed(
                "Extended Warranty Claim",
                "SLA for extended warranty claims. Faster processing for premium customers.",
                (8, BH), (5, BD), 25, True, 30,
            ),
            _seed(
                "VIP Warranty Service",
                "Priority SLA for VIP customers with active warranty. Expedited handling.",
                (4, BH), (3, BD), 30, True, 10,
            ),
        ],
        SlaDomain.JOBS: [
            _seed(
                "Emergency Job",
                "SLA for emergency service jobs. Immediate response required.",
                (30, TargetUnit.MINUTES), (4, TargetUnit.HOURS), 30, True, 5,
            ),
            _seed(
                "Priority Installation",
                "SLA for priority installation jobs. Fast scheduling and completion.",
                (4, BH), (2, BD), 25, True, 20,
            ),
            _seed(
                "Standard Installation",
                "Default SLA for standard installation and service jobs.",
                (24, BH), (5, BD), 25, False, 50, is_default=True,
            ),
            _seed(
                "Scheduled Maintenance",
                "SLA for pre-scheduled maintenance jobs. Flexible timeframes.",
                (48, BH), (10, BD), 20, False, 80,
            ),
        ],
    }
)
