# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Classification module for the form-fill package.

Provides a service for classifying grouped candidates into form fields.
"""

from formfill_common.classification.models import (
    ClassificationEntry,
    ClassificationResult,
)
from formfill_common.classification.providers import (
    BedrockClassificationProvider,
    ClassificationProvider,
    HeuristicClassificationProvider,
)
from formfill_common.classification.service import FieldClassificationService

__all__ = [
    "BedrockClassificationProvider",
    "ClassificationEntry",
    "ClassificationProvider",
    "ClassificationResult",
    "FieldClassificationService",
    "HeuristicClassificationProvider",
]
