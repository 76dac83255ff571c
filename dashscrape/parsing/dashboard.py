"""
Dashboard parser.

Turns the rendered account dashboard into structured data. Pure function of
the HTML; no browser access.
"""

import re
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup, Tag


BALANCE_PATTERN = re.compile(r"\$?\s*-?\d+[,.]?\d*")
USAGE_PATTERN = re.compile(r"([\d.]+)\s*/\s*([\d.]+)\s*(GB|MB)", re.IGNORECASE)
PHONE_PATTERN = re.compile(r"^\d{8,}$")


def parse_dashboard(html: str) -> Dict[str, Any]:
    """
    Extract balance and consumption from the account dashboard.

    Args:
        html: Rendered dashboard page

    Returns:
        Dict with balance, consumptions, total_consumption

    Raises:
        ValueError: The page is not a dashboard
    """
    soup = BeautifulSoup(html, "lxml")

    container = soup.select_one("#consumption-container")
    circles = soup.select("#consumptions .circle")
    if container is None and not circles:
        raise ValueError("no dashboard markers found")

    consumptions = [c for c in (extract_circle(circle) for circle in circles) if c]

    return {
        "balance": extract_balance(container) if container else None,
        "consumptions": consumptions,
        "total_consumption": extract_total_consumption(consumptions),
    }


def extract_balance(container: Tag) -> Optional[str]:
    """Current balance from the heading inside the consumption container."""
    heading = container.select_one(".text-center h2.white") or container.select_one("h2.white")
    if heading:
        text = heading.get_text(strip=True)
        match = BALANCE_PATTERN.search(text)
        return match.group(0).strip() if match else text or None

    # Fallback: "Current Balance ... $12.34" anywhere in the container
    match = re.search(
        r"Current\s+Balance[\s\S]{0,50}?(\$?\s*-?\d+[,.]?\d*)",
        container.get_text(" ", strip=True),
        re.IGNORECASE,
    )
    return match.group(1).strip() if match else None


def extract_circle(circle: Tag) -> Dict[str, Any]:
    """
    Extract one consumption circle.

    Looks for:
    - .c100 span with "used / total UNIT"
    - pNN class on .c100 for the percentage
    - .title with plan name and an optional phone number
    """
    data: Dict[str, Any] = {}

    span = circle.select_one(".c100 span")
    if span:
        text = span.get_text(strip=True)
        match = USAGE_PATTERN.search(text)
        if match:
            used, total, unit = match.groups()
            data["used"] = used
            data["total"] = f"{total} {unit.upper()}"
            data["usage"] = f"{used} / {total} {unit.upper()}"

    c100 = circle.select_one(".c100")
    if c100:
        for cls in c100.get("class", []):
            if re.fullmatch(r"p\d{1,3}", cls):
                data["percentage"] = int(cls[1:])
                break

    title = circle.select_one(".title")
    if title:
        lines = [line.strip() for line in title.get_text("\n").split("\n") if line.strip()]
        if lines:
            data["plan_name"] = lines[0]
        for candidate in lines[1:] + [s.get_text(strip=True) for s in title.select(".light")]:
            if PHONE_PATTERN.match(candidate):
                data["phone_number"] = candidate

    if data.get("plan_name") or data.get("usage"):
        return data
    return {}


def extract_total_consumption(consumptions: List[Dict[str, Any]]) -> Optional[str]:
    """Usage of the shared "Total Bundle" circle, if present."""
    for circle in consumptions:
        name = circle.get("plan_name", "")
        if "Total Bundle" in name or "U-Share Total" in name:
            return circle.get("usage")
    return None
