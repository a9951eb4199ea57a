from .placement import (
    GeminiZoneClassifier,
    PlacementClassifierChain,
    ZoneClassifier,
    create_classifier_from_config,
    parse_zone_response,
)

__all__ = [
    "GeminiZoneClassifier",
    "PlacementClassifierChain",
    "ZoneClassifier",
    "create_classifier_from_config",
    "parse_zone_response",
]
