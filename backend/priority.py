"""
Priority classification for incoming detections.

A detection is high priority when any of its objects is a person or a
livestock animal; those are the events a farmer wants to be alerted about.
"""
from typing import Iterable, Sequence

from config import DEFAULT_PRIORITY_CLASSES
from models import DetectedObject, Priority

PRIORITY_CLASSES = frozenset(DEFAULT_PRIORITY_CLASSES)


def is_priority_object(obj: DetectedObject, classes: frozenset = PRIORITY_CLASSES) -> bool:
    """Check both the local-language and the English name, case-insensitively."""
    if obj.name and obj.name.lower() in classes:
        return True
    return bool(obj.english_name) and obj.english_name.lower() in classes


def classify(objects: Sequence[DetectedObject], priority_classes: Iterable[str] = PRIORITY_CLASSES) -> Priority:
    """
    Map a list of detected objects to a priority level.

    Args:
        objects: Objects reported in one detection event
        priority_classes: Lower-case labels that make an event high priority

    Returns:
        Priority.HIGH if at least one object matches, else Priority.NORMAL
    """
    classes = frozenset(c.lower() for c in priority_classes)
    if any(is_priority_object(obj, classes) for obj in objects):
        return Priority.HIGH
    return Priority.NORMAL
