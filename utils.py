# utils.py

import dataclasses

import numpy as np

def _convert_to_json_serializable(obj):
    """Recursively converts objects to be JSON serializable."""
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, (np.floating, np.integer)):
        return obj.item()
    if isinstance(obj, np.bool_):
        return bool(obj)
    if isinstance(obj, tuple) and hasattr(obj, '_fields'): # Check for namedtuple
        return {field: _convert_to_json_serializable(getattr(obj, field)) for field in obj._fields}
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: _convert_to_json_serializable(getattr(obj, f.name)) for f in dataclasses.fields(obj)}
    if isinstance(obj, (list, tuple)):
        return [_convert_to_json_serializable(item) for item in obj]
    if isinstance(obj, dict):
        return {key: _convert_to_json_serializable(value) for key, value in obj.items()}
    return obj

def safe_ratio(numerator, denominator) -> float:
    return float(numerator) / float(denominator) if denominator else 0.0
