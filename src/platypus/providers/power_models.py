# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Instance-type wattage and regional grid carbon intensity tables.

Power estimates approximate average draw at moderate utilisation, not
peak or idle.  Carbon intensities are annual grid averages.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Instance power estimates (watts)
# ---------------------------------------------------------------------------

AWS_INSTANCE_POWER: dict[str, float] = {
    "t3.medium": 12.0,
    "t3.large": 18.0,
    "t3.xlarge": 30.0,
    "m5.large": 25.0,
    "m5.xlarge": 50.0,
    "m5.2xlarge": 95.0,
    "m5.4xlarge": 180.0,
    "m5.8xlarge": 340.0,
    "m5.24xlarge": 950.0,
    "c5.2xlarge": 105.0,
    "c5.4xlarge": 200.0,
    "c5.24xlarge": 1100.0,
    "r5.4xlarge": 190.0,
    "r5.24xlarge": 1020.0,
    "g4dn.xlarge": 120.0,
    "p3.2xlarge": 350.0,
    "p3.8xlarge": 1200.0,
}

_PROVIDER_TABLES: dict[str, dict[str, float]] = {
    "aws": AWS_INSTANCE_POWER,
}

_DEFAULT_POWER_WATTS: float = 150.0

# ---------------------------------------------------------------------------
# Grid carbon intensity (kg CO2 per kWh)
# ---------------------------------------------------------------------------

REGION_CARBON_INTENSITY: dict[str, float] = {
    "us-east-1": 0.38,
    "us-west-2": 0.12,
    "eu-west-1": 0.28,
    "eu-north-1": 0.01,
    "ap-southeast-1": 0.41,
}

_DEFAULT_CARBON_INTENSITY: float = 0.40


def estimate_power(provider: str, instance_type: str) -> float:
    """Return estimated power draw in watts for a given instance type.

    Falls back to 150 W if the instance type is not in the lookup table.
    """
    table = _PROVIDER_TABLES.get(provider.lower(), {})
    return table.get(instance_type, _DEFAULT_POWER_WATTS)


def carbon_intensity(region: str) -> float:
    """Grid carbon intensity for *region* in kg CO2 per kWh."""
    return REGION_CARBON_INTENSITY.get(region, _DEFAULT_CARBON_INTENSITY)


def carbon_for_interval(power_watts: float, region: str, hours: float) -> float:
    """kg CO2 emitted drawing *power_watts* for *hours* in *region*."""
    return power_watts / 1000.0 * hours * carbon_intensity(region)
