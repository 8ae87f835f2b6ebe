# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

# Use true lazy loading for all submodules
__version__ = "0.1.0"

# Cache for lazy-loaded submodules
_submodules = {}


def __getattr__(name):
    """Lazy load submodules only when accessed"""
    if name in [
        "autofill",
        "bedrock",
        "classification",
        "config",
        "exceptions",
        "image",
        "metrics",
        "models",
        "ocr",
        "pipeline",
        "render",
        "tables",
        "utils",
    ]:
        if name not in _submodules:
            _submodules[name] = __import__(f"formfill_common.{name}", fromlist=[name])
        return _submodules[name]

    # Handle specific imports from models
    if name in [
        "BoundingBox",
        "Candidate",
        "ClassifiedField",
        "FieldMapping",
        "FieldType",
        "MappingSource",
        "UserContext",
    ]:
        if "models" not in _submodules:
            _submodules["models"] = __import__(
                "formfill_common.models", fromlist=["models"]
            )
        return getattr(_submodules["models"], name)

    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")


# Define what should be available when using "from formfill_common import *"
__all__ = [
    "autofill",
    "bedrock",
    "classification",
    "config",
    "exceptions",
    "image",
    "metrics",
    "models",
    "ocr",
    "pipeline",
    "render",
    "tables",
    "utils",
    "BoundingBox",
    "Candidate",
    "ClassifiedField",
    "FieldMapping",
    "FieldType",
    "MappingSource",
    "UserContext",
]
