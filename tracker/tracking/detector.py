"""
Carrier detection from tracking number format.
"""

import re
from typing import NamedTuple

from tracker.models import CarrierTag


class DetectionRule(NamedTuple):
    carrier: CarrierTag
    pattern: re.Pattern
    description: str


# Evaluated in order; the first full match wins.
DETECTION_RULES: tuple[DetectionRule, ...] = (
    DetectionRule(
        CarrierTag.UPS,
        re.compile(r"1Z[A-Z0-9]{16}", re.IGNORECASE),
        "1Z followed by 16 letters or digits",
    ),
    DetectionRule(
        CarrierTag.FEDEX,
        re.compile(r"[0-9]{12}|[0-9]{15}"),
        "12 or 15 digits",
    ),
    DetectionRule(
        CarrierTag.DHL,
        re.compile(r"[A-Z]{2}[0-9]{9}[A-Z]{2}", re.IGNORECASE),
        "2 letters, 9 digits, 2 letters",
    ),
    DetectionRule(
        CarrierTag.USPS,
        re.compile(r"9[2-5][0-9]{20,22}"),
        "9, then 2-5, then 20-22 digits",
    ),
    DetectionRule(
        CarrierTag.AMAZON,
        re.compile(r"[0-9A-Z]{3}-[0-9A-Z]{7}-[0-9A-Z]{7}", re.IGNORECASE),
        "Amazon order id XXX-XXXXXXX-XXXXXXX",
    ),
)


def detect_carrier(tracking_number: str) -> CarrierTag:
    """
    Detect the carrier owning a tracking number.

    Returns CarrierTag.UNKNOWN when no format matches; that is a normal
    result, not an error.
    """
    for rule in DETECTION_RULES:
        if rule.pattern.fullmatch(tracking_number):
            return rule.carrier
    return CarrierTag.UNKNOWN
