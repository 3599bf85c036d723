"""
AWS region code to Price List location mapping.
Regional offer files tag products with both a `regionCode` and a human-readable
`location`; older files only carry `location`, so product matching falls back to it.
"""
from typing import Dict, List


AWS_REGION_TO_LOCATION: Dict[str, str] = {
    # US
    "us-east-1": "US East (N. Virginia)",
    "us-east-2": "US East (Ohio)",
    "us-west-1": "US West (N. California)",
    "us-west-2": "US West (Oregon)",

    # Asia Pacific
    "ap-south-1": "Asia Pacific (Mumbai)",
    "ap-southeast-1": "Asia Pacific (Singapore)",
    "ap-southeast-2": "Asia Pacific (Sydney)",
    "ap-southeast-3": "Asia Pacific (Jakarta)",
    "ap-northeast-1": "Asia Pacific (Tokyo)",
    "ap-northeast-2": "Asia Pacific (Seoul)",
    "ap-northeast-3": "Asia Pacific (Osaka)",
    "ap-east-1": "Asia Pacific (Hong Kong)",

    # Europe
    "eu-west-1": "EU (Ireland)",
    "eu-west-2": "EU (London)",
    "eu-west-3": "EU (Paris)",
    "eu-central-1": "EU (Frankfurt)",
    "eu-central-2": "Europe (Zurich)",
    "eu-north-1": "EU (Stockholm)",
    "eu-south-1": "EU (Milan)",
    "eu-south-2": "Europe (Spain)",

    # Middle East / Africa
    "me-south-1": "Middle East (Bahrain)",
    "me-central-1": "Middle East (UAE)",
    "af-south-1": "Africa (Cape Town)",

    # Americas
    "sa-east-1": "South America (Sao Paulo)",
    "ca-central-1": "Canada (Central)",
}


def get_location_names(region_code: str) -> List[str]:
    """
    Get the location strings a catalog may use for a region.

    Both the "EU (...)" and "Europe (...)" spellings occur across catalog
    versions, so European regions return both.

    Args:
        region_code: AWS region code (e.g., 'eu-west-1')

    Returns:
        Possible location strings; empty if the region is not mapped
    """
    location = AWS_REGION_TO_LOCATION.get(region_code)
    if location is None:
        return []
    names = [location]
    if location.startswith("EU ("):
        names.append("Europe (" + location[len("EU ("):])
    elif location.startswith("Europe ("):
        names.append("EU (" + location[len("Europe ("):])
    return names
