# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Auto-fill module for the form-fill package.

Resolves field values from a user's profile, saved dates and household.
"""

from formfill_common.autofill.context import (
    InMemoryUserContextStore,
    ProfileWriter,
    UserContextProvider,
)
from formfill_common.autofill.models import AutoFillResult
from formfill_common.autofill.service import AutoFillService

__all__ = [
    "AutoFillResult",
    "AutoFillService",
    "InMemoryUserContextStore",
    "ProfileWriter",
    "UserContextProvider",
]
