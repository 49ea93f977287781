# Parsing subpackage - JSON extraction and repair for model output
from .json import extract_json_object, iter_json_objects, repair_and_parse_json

__all__ = [
    "extract_json_object",
    "iter_json_objects",
    "repair_and_parse_json",
]
