"""
Display names of AWS regions.
"""

from types import MappingProxyType
from typing import Mapping

REGION_NAMES: Mapping[str, str] = MappingProxyType({
    "us-east-1": "US East (N. Virginia)",
    "us-east-2": "US East (Ohio)",
    "us-west-1": "US West (N. California)",
    "us-west-2": "US West (Oregon)",
    "ca-central-1": "Canada (Central)",
    "eu-west-1": "EU West (Dublin)",
    "eu-west-2": "EU West (London)",
    "eu-west-3": "EU West (Paris)",
    "eu-central-1": "EU Central (Frankfurt)",
    "eu-north-1": "EU North (Stockholm)",
    "sa-east-1": "South America (Sao Paulo)",
    "ap-northeast-1": "Asia Pacific (Tokyo)",
    "ap-northeast-2": "Asia Pacific (Seoul)",
    "ap-south-1": "Asia Pacific (Mumbai)",
    "ap-southeast-1": "Asia Pacific (Singapore)",
    "ap-southeast-2": "Asia Pacific (Sydney)",
    "us-gov-west-1": "AWS GovCloud (US)",
    "cn-north-1": "China (Beijing)",
})


def region_display_name(region_code: str) -> str:
    """Human readable region name, or the code itself for unknown regions."""
    return REGION_NAMES.get(region_code, region_code)


def all_regions() -> Mapping[str, str]:
    return REGION_NAMES
